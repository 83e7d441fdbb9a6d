"""
Health Infrastructure Models
=============================

SQLAlchemy ORM models for the campus health module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime, timezone
from typing import Any, Optional
from uuid import UUID, uuid4

from sqlalchemy import String, DateTime, Text, Uuid, JSON
from sqlalchemy.orm import Mapped, mapped_column

from campus_health.infrastructure.database import Base
from campus_health.config import Severity, IssueStatus, SLAStatus


def _new_id() -> str:
    return uuid4().hex


class CampusModel(Base):
    """
    Database model for Campus entity.

    Maps to the 'campuses' table. The health summary is a cached JSON
    document overwritten by every health sync.
    """
    __tablename__ = "campuses"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    location: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    health_summary: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    last_health_update: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class IssueModel(Base):
    """
    Database model for Issue entity.

    Maps to the 'issues' table.
    """
    __tablename__ = "issues"

    id: Mapped[str] = mapped_column(String(64), primary_key=True, default=_new_id)
    campus_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    severity: Mapped[str] = mapped_column(String(50), nullable=False, default=Severity.MEDIUM)
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True, default=IssueStatus.OPEN)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reported_by: Mapped[str] = mapped_column(String(255), nullable=False, default="Anonymous User")
    timeline: Mapped[list[dict[str, Any]]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
    # Write-once; resolved penalties decay from this instant
    resolved_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    sla_deadline: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    sla_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True, default=SLAStatus.WITHIN_SLA)

    escalation_status: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    escalation_level: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    escalated_to: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    escalated_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)


class AuditLogModel(Base):
    """
    Database model for audit trail entries.

    Maps to the 'issue_audit_logs' table. Rows are insert-only.
    """
    __tablename__ = "issue_audit_logs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    issue_id: Mapped[str] = mapped_column(String(64), index=True, nullable=False)

    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[str] = mapped_column(String(255), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(50), nullable=False)

    previous_state: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    new_state: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))
