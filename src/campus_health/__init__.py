"""
Campus Health
=============

Campus-operations health service: facility issues carry severity and SLA
deadlines, and a deterministic scoring engine turns each campus's issue set
into a bounded 0-100 health score with SLA compliance and trend.
"""

__version__ = "1.0.0"
