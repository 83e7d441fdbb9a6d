"""
Health Application DTOs
========================

Data Transfer Objects for the campus health API layer.

These Pydantic models handle serialization/deserialization and validation
for API requests and responses.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, Dict, List, Optional, Literal
from datetime import datetime

from campus_health.config import EscalationLevel, Severity, VALID_SEVERITIES
from campus_health.health.domain import (
    HealthSummary, Issue, Campus, AuditLogEntry, RESOLUTION_HALF_LIFE_HOURS
)


# ========== Type Aliases for Literals ==========
SeverityStr = Literal["critical", "high", "medium", "low"]
TrendStr = Literal["up", "down", "stable"]


# ========== Request DTOs ==========

class IssueCreateRequest(BaseModel):
    """Request model for reporting an issue."""
    campus_id: str = Field(..., min_length=1, description="Campus the issue belongs to")
    title: str = Field(..., min_length=1, description="Short issue title")
    description: str = Field(default="", description="Free-form description")
    severity: SeverityStr = Field(default=Severity.MEDIUM, description="Issue severity")
    user_id: Optional[str] = Field(None, description="Reporting user id")
    reported_by: Optional[str] = Field(None, description="Display name of the reporter")

    @field_validator("severity", mode="before")
    @classmethod
    def normalize_severity(cls, v: Any) -> str:
        """Accept any casing; unknown or empty severities become medium."""
        if not isinstance(v, str) or v.strip().lower() not in VALID_SEVERITIES:
            return Severity.MEDIUM
        return v.strip().lower()


class IssueStatusUpdateRequest(BaseModel):
    """Request model for a manual status transition."""
    status: str = Field(..., min_length=1, description="Target status (escalated or actioned)")
    message: Optional[str] = Field(None, description="Timeline message")


class EscalationRequest(BaseModel):
    """Request model for forwarding an issue to an outside authority."""
    level: str = Field(default=EscalationLevel.DISTRICT, description="Authority level (district or university)")


class CampusCreateRequest(BaseModel):
    """Request model for registering a campus."""
    name: str = Field(..., min_length=1, description="Campus name")
    location: Dict[str, Any] = Field(default_factory=dict, description="Free-form location data")


# ========== Response DTOs ==========

class HealthSummaryResponse(BaseModel):
    """Response model for a campus health summary."""
    score: int = Field(..., ge=0, le=100, description="Health score")
    trend: TrendStr = Field(..., description="Direction against the previous score")
    sla_compliance: int = Field(..., ge=0, le=100, description="Percentage of issues not breached")
    resolved_percentage: int = Field(..., ge=0, le=100)
    total_issues: int
    resolved_issues: int
    open_issues: int
    breached_issues: int
    total_penalty: int = Field(..., description="Rounded sum of current issue penalties")
    severity_breakdown: Dict[str, int]
    last_updated: datetime

    @classmethod
    def from_domain(cls, summary: HealthSummary) -> "HealthSummaryResponse":
        return cls(
            score=summary.score,
            trend=summary.trend,
            sla_compliance=summary.sla_compliance,
            resolved_percentage=summary.resolved_percentage,
            total_issues=summary.total_issues,
            resolved_issues=summary.resolved_issues,
            open_issues=summary.open_issues,
            breached_issues=summary.breached_issues,
            total_penalty=summary.total_penalty,
            severity_breakdown=summary.severity_breakdown,
            last_updated=summary.last_updated
        )


class CampusResponse(BaseModel):
    """Response model for a campus with its health summary."""
    id: str
    name: str
    location: Dict[str, Any] = Field(default_factory=dict)
    health_summary: Optional[HealthSummaryResponse] = None
    last_health_update: Optional[datetime] = None

    @classmethod
    def from_domain(cls, campus: Campus) -> "CampusResponse":
        return cls(
            id=campus.id,
            name=campus.name,
            location=campus.location,
            health_summary=(
                HealthSummaryResponse.from_domain(campus.health_summary)
                if campus.health_summary else None
            ),
            last_health_update=campus.last_health_update
        )


class CampusHealthResponse(BaseModel):
    """Response model for a freshly recomputed campus health."""
    campus_id: str
    previous_score: int
    current_health: HealthSummaryResponse
    restoration_half_life_minutes: int = round(RESOLUTION_HALF_LIFE_HOURS * 60)


class IssueResponse(BaseModel):
    """Response model for an issue."""
    id: str
    campus_id: str
    title: str
    description: str
    severity: SeverityStr
    status: str
    sla_status: Optional[str] = None
    sla_deadline: Optional[datetime] = None
    created_at: Optional[datetime] = None
    resolved_at: Optional[datetime] = None
    reported_by: str
    age_in_days: int = 0
    is_aged: bool = False
    escalation_status: Optional[str] = None
    escalation_level: Optional[str] = None
    escalated_to: Optional[Dict[str, Any]] = None
    escalated_at: Optional[datetime] = None
    timeline: List[Dict[str, Any]] = Field(default_factory=list)

    @classmethod
    def from_domain(cls, issue: Issue, age_in_days: int = 0, is_aged: bool = False) -> "IssueResponse":
        return cls(
            id=issue.id,
            campus_id=issue.campus_id,
            title=issue.title,
            description=issue.description,
            severity=issue.severity_level,
            status=issue.status_value,
            sla_status=issue.sla_status,
            sla_deadline=issue.sla_deadline,
            created_at=issue.created_at,
            resolved_at=issue.resolved_at,
            reported_by=issue.reported_by,
            age_in_days=age_in_days,
            is_aged=is_aged,
            timeline=issue.timeline,
            escalation_status=issue.escalation_status,
            escalation_level=issue.escalation_level,
            escalated_to=issue.escalated_to,
            escalated_at=issue.escalated_at
        )


class IssueCreatedResponse(BaseModel):
    """Response model for issue creation."""
    success: bool = True
    issue_id: str
    sla_deadline: datetime
    message: str = "Issue reported successfully."


class IssueListResponse(BaseModel):
    issues: List[IssueResponse]


class SweepResponse(BaseModel):
    """Response model for an SLA sweep run."""
    success: bool = True
    processed_count: int = Field(..., description="Issues inspected")
    breached: int = Field(..., description="Issues newly flagged as breached")
    escalated: int = Field(..., description="Issues escalated by the sweep")
    campuses_synced: List[str] = Field(default_factory=list)
    timestamp: datetime


class AuditLogResponse(BaseModel):
    """Response model for an audit trail entry."""
    id: Optional[str] = None
    issue_id: str
    action: str
    actor_id: str
    actor_role: str
    previous_state: Optional[Dict[str, Any]] = None
    new_state: Dict[str, Any]
    message: Optional[str] = None
    timestamp: datetime

    @classmethod
    def from_domain(cls, entry: AuditLogEntry) -> "AuditLogResponse":
        return cls(
            id=entry.id,
            issue_id=entry.issue_id,
            action=entry.action,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            previous_state=entry.previous_state,
            new_state=entry.new_state,
            message=entry.message,
            timestamp=entry.timestamp
        )


class ActivityItem(BaseModel):
    """One entry of a public activity feed. Carries no personal data."""
    id: str
    status: str
    severity: SeverityStr
    timestamp: Optional[datetime] = None
    escalated: bool = False
    campus_id: Optional[str] = None

    @classmethod
    def from_domain(cls, issue: Issue, short_id: bool = False, with_campus: bool = False) -> "ActivityItem":
        return cls(
            id=issue.id[:8] if short_id else issue.id,
            status=issue.status_value,
            severity=issue.severity_level,
            timestamp=issue.created_at,
            escalated=issue.is_externally_escalated,
            campus_id=issue.campus_id if with_campus else None
        )


class GlobalStatsResponse(BaseModel):
    """Response model for aggregate statistics across campuses."""
    total_campuses: int
    total_issues: int
    resolution_rate: int = Field(..., ge=0, le=100)
    severity_breakdown: Dict[str, int]
    global_health: int = Field(..., ge=0, le=100, description="Mean campus score")
    generated_at: datetime
    recent_activity: List[ActivityItem] = Field(default_factory=list, description="Newest issues first")


class PublicCampusStatsResponse(BaseModel):
    """Anonymised transparency record of one campus."""
    generated_at: datetime
    disclaimer: str = "Public transparency record. Personal data removed."
    campus: Dict[str, Any]
    transparency_score: int = Field(..., ge=0, le=100, description="Current health score")
    resolution_rate: int = Field(..., ge=0, le=100)
    sla_compliance: int = Field(..., ge=0, le=100)
    total_issues_logged: int
    breakdown: Dict[str, int]
    recent_activity: List[ActivityItem] = Field(default_factory=list, description="Newest issues first")
