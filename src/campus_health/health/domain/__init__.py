"""
Health Domain Layer
===================

Contains:
- Entities: Issue, Campus, HealthSummary, AuditLogEntry
- Value Objects: SLAPolicy
- Domain Services: HealthCalculator (the scoring engine)

This layer has no dependencies on infrastructure - pure Python business logic.
"""

from campus_health.health.domain.entities import (
    Issue,
    Campus,
    HealthSummary,
    AuditLogEntry,
    normalize_severity,
    normalize_status,
    ensure_utc,
)
from campus_health.health.domain.value_objects import (
    HealthCalculator,
    SLAPolicy,
    BASE_PENALTIES,
    BREACH_PENALTIES,
    RESOLUTION_HALF_LIFE_HOURS,
    round_half_up,
)

__all__ = [
    # Entities
    "Issue",
    "Campus",
    "HealthSummary",
    "AuditLogEntry",
    "normalize_severity",
    "normalize_status",
    "ensure_utc",
    # Value Objects & Services
    "HealthCalculator",
    "SLAPolicy",
    "BASE_PENALTIES",
    "BREACH_PENALTIES",
    "RESOLUTION_HALF_LIFE_HOURS",
    "round_half_up",
]
