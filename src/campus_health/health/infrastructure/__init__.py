"""
Health Infrastructure Layer
============================

Infrastructure implementations for campus health:
- Models: SQLAlchemy ORM models
- Repositories: Data access layer
- Timestamps: store timestamp normalisation
- External: SLA policy file, Slack notifier, sweep scheduler
"""

from campus_health.health.infrastructure.models import CampusModel, IssueModel, AuditLogModel
from campus_health.health.infrastructure.repositories import (
    SQLAlchemyIssueRepository,
    SQLAlchemyCampusRepository,
    SQLAlchemyAuditLogRepository,
)
from campus_health.health.infrastructure.timestamps import to_instant, issue_from_record
from campus_health.health.infrastructure.external import (
    SLAPolicyManager,
    SlackBreachNotifier,
    SLASweepScheduler,
)

__all__ = [
    "CampusModel",
    "IssueModel",
    "AuditLogModel",
    "SQLAlchemyIssueRepository",
    "SQLAlchemyCampusRepository",
    "SQLAlchemyAuditLogRepository",
    "to_instant",
    "issue_from_record",
    "SLAPolicyManager",
    "SlackBreachNotifier",
    "SLASweepScheduler",
]
