"""
Health Value Objects
=====================

The campus health scoring engine and the SLA policy.

HealthCalculator is a stateless domain service: every call is fully
determined by (issues, previous_score, now). It never raises on bad
issue data; missing or malformed fields are replaced with defaults so
one broken record cannot take down scoring for a whole campus.
Naive datetimes are read as UTC.

Scoring model:
    - Open issues cost base(severity) + whole hours open, plus a breach
      penalty when the SLA is breached. Cost grows while the issue sits.
    - Resolved issues cost what they cost at resolution time, decayed
      with a 10 minute half-life. Below 0.1 the cost is exactly 0, so a
      fully resolved campus returns to 100 within about an hour.
    - score = clamp(round(100 - sum(costs)), 0, 100)
"""

import math
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, Field, field_validator

from campus_health.config import (
    Severity, IssueStatus, SLAStatus, Trend, VALID_SEVERITIES
)
from campus_health.health.domain.entities import (
    Issue, HealthSummary, ensure_utc, normalize_severity
)


BASE_PENALTIES: Dict[str, int] = {
    Severity.CRITICAL: 40,
    Severity.HIGH: 15,
    Severity.MEDIUM: 5,
    Severity.LOW: 1,
}

BREACH_PENALTIES: Dict[str, int] = {
    Severity.CRITICAL: 50,
    Severity.HIGH: 30,
    Severity.MEDIUM: 15,
    Severity.LOW: 5,
}

PERFECT_SCORE = 100
RESOLUTION_HALF_LIFE_HOURS = 1 / 6
RESIDUAL_PENALTY_FLOOR = 0.1
SECONDS_PER_HOUR = 3600


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (not banker's rounding)."""
    return int(math.floor(value + 0.5))


class HealthCalculator:
    """
    Pure functions for campus health scoring.

    Stateless utility class - all scoring logic in one place.
    """

    @staticmethod
    def normalize_severity(severity: Optional[str]) -> str:
        return normalize_severity(severity)

    @staticmethod
    def is_resolved(issue: Issue) -> bool:
        return issue.is_resolved

    @staticmethod
    def hours_between(start: Optional[datetime], end: datetime) -> int:
        """Whole hours from start to end, never negative. Missing start means end."""
        if start is None:
            return 0
        return max(0, math.floor((ensure_utc(end) - ensure_utc(start)).total_seconds() / SECONDS_PER_HOUR))

    @staticmethod
    def is_breached(issue: Issue, now: datetime) -> bool:
        """
        Breach rule.

        Explicit `breached` flag wins. Otherwise an open issue is breached
        once now is past its deadline. A resolved issue without the flag is
        not breached even if it was resolved late: the final assessment made
        at resolution time is trusted.
        """
        if issue.is_flagged_breached:
            return True
        deadline = ensure_utc(issue.sla_deadline)
        if issue.is_resolved or deadline is None:
            return False
        return ensure_utc(now) > deadline

    @staticmethod
    def decayed_penalty(initial_penalty: float, hours_since_resolved: float) -> float:
        """Exponential decay with a 10 minute half-life, floored to 0 below 0.1."""
        hours = max(0.0, hours_since_resolved)
        penalty = initial_penalty * math.pow(0.5, hours / RESOLUTION_HALF_LIFE_HOURS)
        if penalty < RESIDUAL_PENALTY_FLOOR:
            return 0.0
        return penalty

    @staticmethod
    def issue_penalty(issue: Issue, now: datetime) -> float:
        """Current penalty contribution of a single issue (always >= 0)."""
        severity = issue.severity_level
        base_penalty = BASE_PENALTIES[severity]
        breach_penalty = BREACH_PENALTIES[severity]
        now = ensure_utc(now)
        created_at = ensure_utc(issue.created_at) or now

        if not issue.is_resolved:
            penalty = base_penalty + HealthCalculator.hours_between(created_at, now)
            if HealthCalculator.is_breached(issue, now):
                penalty += breach_penalty
            return float(penalty)

        resolved_at = ensure_utc(issue.resolved_at) or now
        at_resolution = (
            base_penalty
            + HealthCalculator.hours_between(created_at, resolved_at)
            + (breach_penalty if issue.is_flagged_breached else 0)
        )
        hours_since_resolved = (now - resolved_at).total_seconds() / SECONDS_PER_HOUR
        return HealthCalculator.decayed_penalty(at_resolution, hours_since_resolved)

    @staticmethod
    def compute_sla_compliance(issues: List[Issue], now: datetime) -> int:
        """Percentage of issues not breached; 100 for an empty list."""
        if not issues:
            return PERFECT_SCORE
        breached = sum(1 for issue in issues if HealthCalculator.is_breached(issue, now))
        return round_half_up(100 * (len(issues) - breached) / len(issues))

    @staticmethod
    def compute_trend(score: int, previous_score: int) -> str:
        if score > previous_score:
            return Trend.UP
        if score < previous_score:
            return Trend.DOWN
        return Trend.STABLE

    @staticmethod
    def severity_breakdown(issues: Iterable[Issue]) -> Dict[str, int]:
        breakdown = {s: 0 for s in (Severity.LOW, Severity.MEDIUM, Severity.HIGH, Severity.CRITICAL)}
        for issue in issues:
            breakdown[issue.severity_level] += 1
        return breakdown

    @staticmethod
    def compute_health(
        issues: List[Issue],
        previous_score: Optional[int] = PERFECT_SCORE,
        now: Optional[datetime] = None
    ) -> HealthSummary:
        """
        Compute the health summary of a campus from its full issue snapshot.

        Args:
            issues: Every issue of the campus, open and resolved
            previous_score: Last cached score, the trend baseline (default 100)
            now: Evaluation instant (defaults to current UTC time)

        Returns:
            HealthSummary
        """
        now = ensure_utc(now) or datetime.now(timezone.utc)
        if previous_score is None:
            previous_score = PERFECT_SCORE
        issues = list(issues or [])

        # Identity result, trend is stable whatever the baseline
        if not issues:
            return HealthSummary.empty(now)

        total_penalty = sum(HealthCalculator.issue_penalty(issue, now) for issue in issues)
        score = max(0, min(PERFECT_SCORE, round_half_up(PERFECT_SCORE - total_penalty)))

        total = len(issues)
        resolved = sum(1 for issue in issues if HealthCalculator.is_resolved(issue))
        breached = sum(1 for issue in issues if HealthCalculator.is_breached(issue, now))

        return HealthSummary(
            score=score,
            trend=HealthCalculator.compute_trend(score, previous_score),
            sla_compliance=HealthCalculator.compute_sla_compliance(issues, now),
            resolved_percentage=round_half_up(100 * resolved / total),
            total_issues=total,
            severity_breakdown=HealthCalculator.severity_breakdown(issues),
            last_updated=now,
            resolved_issues=resolved,
            open_issues=total - resolved,
            breached_issues=breached,
            total_penalty=round_half_up(total_penalty),
        )


DEFAULT_RESOLUTION_HOURS: Dict[str, float] = {
    Severity.CRITICAL: 1,
    Severity.HIGH: 4,
    Severity.MEDIUM: 12,
    Severity.LOW: 48,
}


class SLAPolicy(BaseModel):
    """
    SLA policy loaded from YAML.

    Deadline = created_at + resolution window of the issue's severity.
    This is a value object - immutable and defined by its attributes.
    """
    resolution_hours: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_RESOLUTION_HOURS),
        description="Resolution window in hours by severity"
    )
    aged_issue_days: int = Field(
        default=7,
        ge=1,
        description="Open issues older than this are flagged as aged"
    )
    sweep_statuses: List[str] = Field(
        default_factory=lambda: [IssueStatus.OPEN, IssueStatus.ACTIONED],
        description="Statuses the SLA sweep inspects"
    )

    model_config = {"frozen": True}

    @field_validator("resolution_hours")
    @classmethod
    def validate_resolution_hours(cls, v: Dict[str, float]) -> Dict[str, float]:
        """Lower-case keys, reject non-positive windows, fill missing severities."""
        hours = {str(k).lower(): float(h) for k, h in v.items()}
        for severity, window in hours.items():
            if window <= 0:
                raise ValueError(f"resolution window for {severity} must be positive")
        for severity in VALID_SEVERITIES:
            hours.setdefault(severity, DEFAULT_RESOLUTION_HOURS[severity])
        return hours

    @field_validator("sweep_statuses")
    @classmethod
    def validate_sweep_statuses(cls, v: List[str]) -> List[str]:
        return [s.lower() for s in v]

    def resolution_window(self, severity: Optional[str]) -> timedelta:
        return timedelta(hours=self.resolution_hours[normalize_severity(severity)])

    def deadline_for(self, severity: Optional[str], created_at: datetime) -> datetime:
        return created_at + self.resolution_window(severity)

    @staticmethod
    def final_sla_status(
        current_status: Optional[str],
        deadline: Optional[datetime],
        resolved_at: datetime
    ) -> str:
        """
        SLA assessment made once, at resolution time.

        Breached stays breached; resolving after the deadline is a breach;
        anything else met the SLA.
        """
        if isinstance(current_status, str) and current_status.lower() == SLAStatus.BREACHED:
            return SLAStatus.BREACHED
        deadline = ensure_utc(deadline)
        if deadline is not None and ensure_utc(resolved_at) > deadline:
            return SLAStatus.BREACHED
        return SLAStatus.MET

    def is_aged(self, issue: Issue, now: datetime) -> bool:
        created_at = ensure_utc(issue.created_at)
        if issue.is_resolved or created_at is None:
            return False
        return (ensure_utc(now) - created_at).days > self.aged_issue_days
