"""
Health Domain Entities
=======================

Pure Python domain entities for campus health tracking.

Following Domain-Driven Design principles, these entities contain
business logic and are free of infrastructure concerns. Instants are
timezone-aware datetimes; converting a store's native timestamp type
is the job of the infrastructure layer.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional

from campus_health.config import (
    Severity, IssueStatus, SLAStatus, Trend, EscalationStatus, VALID_SEVERITIES
)
from campus_health.core import DomainException


def normalize_severity(value: Optional[str]) -> str:
    """Lower-cased severity; missing or unrecognised values become medium."""
    if not isinstance(value, str):
        return Severity.MEDIUM
    severity = value.strip().lower()
    return severity if severity in VALID_SEVERITIES else Severity.MEDIUM


def normalize_status(value: Optional[str]) -> str:
    """Lower-cased status; missing values become open."""
    if not isinstance(value, str) or not value.strip():
        return IssueStatus.OPEN
    return value.strip().lower()


def ensure_utc(value: Any) -> Optional[datetime]:
    """
    Aware instant for the engine; naive values are taken as UTC.

    Anything that is not a date or datetime is treated as missing.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return None


@dataclass
class Issue:
    """
    Issue entity representing a reported facility problem on a campus.

    Severity and status are kept as received from the store; use the
    normalised properties when making decisions.
    """

    id: str
    campus_id: str
    severity: Optional[str] = Severity.MEDIUM
    status: Optional[str] = IssueStatus.OPEN

    # Timestamps
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None

    # SLA tracking; no deadline means no SLA is tracked
    sla_deadline: Optional[datetime] = None
    sla_status: Optional[str] = None

    # Descriptive fields
    title: str = ""
    description: str = ""
    reported_by: str = "Anonymous User"
    timeline: List[Dict[str, Any]] = field(default_factory=list)

    # External escalation to an outside authority
    escalation_status: Optional[str] = None
    escalation_level: Optional[str] = None
    escalated_to: Optional[Dict[str, Any]] = None
    escalated_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)
        self.resolved_at = ensure_utc(self.resolved_at)
        self.sla_deadline = ensure_utc(self.sla_deadline)
        self.escalated_at = ensure_utc(self.escalated_at)

    @property
    def severity_level(self) -> str:
        return normalize_severity(self.severity)

    @property
    def status_value(self) -> str:
        return normalize_status(self.status)

    @property
    def is_resolved(self) -> bool:
        """Only `resolved` (any casing) counts as closed; all else is open."""
        return self.status_value == IssueStatus.RESOLVED

    @property
    def is_externally_escalated(self) -> bool:
        return self.escalation_status == EscalationStatus.ACTIVE

    @property
    def is_flagged_breached(self) -> bool:
        """Whether the store explicitly marked the SLA as breached."""
        return isinstance(self.sla_status, str) and self.sla_status.lower() == SLAStatus.BREACHED

    def add_timeline_event(self, status: str, message: str, timestamp: datetime) -> None:
        self.timeline.append({
            "status": status.upper(),
            "message": message,
            "timestamp": timestamp.isoformat()
        })

    def transition(self, status: str, message: str, timestamp: Optional[datetime] = None) -> None:
        """
        Move the issue to another open status.

        Raises:
            DomainException: If the issue is already resolved
        """
        if self.is_resolved:
            raise DomainException(
                f"Issue {self.id} is resolved and cannot change status",
                {"issue_id": self.id, "requested_status": normalize_status(status)}
            )
        timestamp = timestamp or datetime.now(timezone.utc)
        self.status = normalize_status(status)
        self.add_timeline_event(self.status, message, timestamp)

    def mark_breached(self, timestamp: Optional[datetime] = None) -> None:
        """Flag the SLA as breached and escalate the issue."""
        timestamp = timestamp or datetime.now(timezone.utc)
        self.transition(
            IssueStatus.ESCALATED,
            "SYSTEM: SLA breach detected. Issue automatically escalated for priority resolution.",
            timestamp
        )
        self.sla_status = SLAStatus.BREACHED

    def escalate_externally(
        self,
        level: str,
        authority: Dict[str, Any],
        timestamp: Optional[datetime] = None
    ) -> None:
        """Forward the issue to an outside authority and escalate it."""
        timestamp = timestamp or datetime.now(timezone.utc)
        self.transition(
            IssueStatus.ESCALATED,
            f"Official notice forwarded to {authority['name']}",
            timestamp
        )
        self.escalation_status = EscalationStatus.ACTIVE
        self.escalation_level = level
        self.escalated_to = dict(authority)
        self.escalated_at = timestamp

    def mark_resolved(self, sla_status: str, timestamp: Optional[datetime] = None) -> None:
        """
        Resolve the issue with its final SLA assessment.

        resolved_at is write-once: decay of a resolved issue's penalty is
        recomputed from it on every scoring pass.
        """
        if self.is_resolved or self.resolved_at is not None:
            raise DomainException(
                f"Issue {self.id} is already resolved",
                {"issue_id": self.id, "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None}
            )
        timestamp = timestamp or datetime.now(timezone.utc)
        self.resolved_at = timestamp
        self.sla_status = sla_status
        self.status = IssueStatus.RESOLVED
        self.add_timeline_event(
            IssueStatus.RESOLVED,
            f"Issue verified and marked as resolved. SLA {sla_status.upper()}",
            timestamp
        )


@dataclass
class HealthSummary:
    """
    Health summary of one campus.

    Produced fresh by every scoring pass and cached on the campus record;
    it has no identity of its own.
    """

    score: int
    trend: str
    sla_compliance: int
    resolved_percentage: int
    total_issues: int
    severity_breakdown: Dict[str, int]
    last_updated: datetime

    # Descriptive, not inputs to the score
    resolved_issues: int = 0
    open_issues: int = 0
    breached_issues: int = 0
    total_penalty: int = 0

    @classmethod
    def empty(cls, now: datetime) -> "HealthSummary":
        """Identity result for a campus with no issues."""
        return cls(
            score=100,
            trend=Trend.STABLE,
            sla_compliance=100,
            resolved_percentage=100,
            total_issues=0,
            severity_breakdown={s: 0 for s in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)},
            last_updated=now,
        )

    def to_dict(self) -> dict:
        """Convert to dictionary for persistence and API responses."""
        return {
            "score": self.score,
            "trend": self.trend,
            "sla_compliance": self.sla_compliance,
            "resolved_percentage": self.resolved_percentage,
            "total_issues": self.total_issues,
            "resolved_issues": self.resolved_issues,
            "open_issues": self.open_issues,
            "breached_issues": self.breached_issues,
            "total_penalty": self.total_penalty,
            "severity_breakdown": dict(self.severity_breakdown),
            "last_updated": self.last_updated.isoformat()
        }

    @classmethod
    def from_dict(cls, data: dict) -> "HealthSummary":
        """Rebuild a cached summary; last_updated may be an ISO string."""
        last_updated = data.get("last_updated")
        if isinstance(last_updated, str):
            last_updated = datetime.fromisoformat(last_updated.replace("Z", "+00:00"))
        return cls(
            score=int(data["score"]),
            trend=data.get("trend", Trend.STABLE),
            sla_compliance=int(data.get("sla_compliance", 100)),
            resolved_percentage=int(data.get("resolved_percentage", 100)),
            total_issues=int(data.get("total_issues", 0)),
            severity_breakdown=dict(data.get("severity_breakdown", {})),
            last_updated=last_updated or datetime.now(timezone.utc),
            resolved_issues=int(data.get("resolved_issues", 0)),
            open_issues=int(data.get("open_issues", 0)),
            breached_issues=int(data.get("breached_issues", 0)),
            total_penalty=int(data.get("total_penalty", 0)),
        )


@dataclass
class Campus:
    """Campus entity carrying its cached health summary."""

    id: str
    name: str
    location: Dict[str, Any] = field(default_factory=dict)
    health_summary: Optional[HealthSummary] = None
    last_health_update: Optional[datetime] = None

    @property
    def previous_score(self) -> int:
        """Score used as the trend baseline; 100 before the first computation."""
        if self.health_summary is None:
            return 100
        return self.health_summary.score


@dataclass
class AuditLogEntry:
    """Immutable record of an issue lifecycle event."""

    issue_id: str
    action: str
    actor_id: str
    actor_role: str
    new_state: Dict[str, Any]
    previous_state: Optional[Dict[str, Any]] = None
    message: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: Optional[str] = None
