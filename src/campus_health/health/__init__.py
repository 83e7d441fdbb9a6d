"""
Campus Health Module
====================

Bounded context for campus operational health.

Responsibilities:
- Score a campus from its full issue snapshot (0-100, decay-based recovery)
- Track per-issue SLA deadlines and detect breaches
- Recompute and cache the campus summary on every issue mutation
- Sweep open issues for overdue SLAs on a schedule
- Keep an audit trail of issue lifecycle events
"""
