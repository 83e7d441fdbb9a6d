"""
Health Application Services
============================

Application services orchestrate the scoring engine and coordinate
between domain entities and repositories.

Every issue mutation (creation, status transition, resolution, external
escalation, SLA sweep) ends by re-reading the campus's full issue set and
recomputing its summary. Recomputation is idempotent, so concurrent triggers for
the same campus are harmless: the last write wins and reflects a full
snapshot.

Following SOLID principles:
- Single Responsibility: Each service has one clear purpose
- Dependency Inversion: Depend on abstractions (repositories), not concrete implementations
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from campus_health.config import (
    AuditAction, EscalationLevel, IssueStatus, SLAStatus, MANUAL_STATUS_TRANSITIONS,
    ESCALATION_AUTHORITIES, ESCALATION_ROLE, SYSTEM_ACTOR_ID, SYSTEM_ACTOR_ROLE
)
from campus_health.core import (
    ApplicationException, PermissionDeniedException, ResourceNotFoundException,
    ValidationException
)
from campus_health.health.domain import (
    AuditLogEntry, Campus, HealthCalculator, HealthSummary, Issue, SLAPolicy,
    normalize_status, round_half_up
)
from campus_health.health.application.dto import (
    ActivityItem, CampusCreateRequest, GlobalStatsResponse, IssueCreateRequest,
    IssueResponse, PublicCampusStatsResponse
)
from campus_health.shared.infrastructure.logging import get_logger, log_latency

logger = get_logger(__name__)

PUBLIC_ACTIVITY_LIMIT = 10
GLOBAL_ACTIVITY_LIMIT = 50


def newest_first(issues: List[Issue]) -> List[Issue]:
    oldest = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(issues, key=lambda i: i.created_at or oldest, reverse=True)


# ========== Repository Interfaces (Dependency Inversion) ==========

class IIssueRepository(ABC):
    """Interface for issue data access."""

    @abstractmethod
    async def get_by_id(self, issue_id: str) -> Optional[Issue]:
        """Get issue by ID."""

    @abstractmethod
    async def list_by_campus(self, campus_id: str) -> List[Issue]:
        """All issues of a campus, open and resolved."""

    @abstractmethod
    async def list_all(self) -> List[Issue]:
        """All issues across campuses."""

    @abstractmethod
    async def list_sweep_candidates(self, statuses: List[str]) -> List[Issue]:
        """Issues in one of `statuses` whose SLA is still within_sla."""

    @abstractmethod
    async def create(self, issue: Issue) -> Issue:
        """Create new issue; returns it with its assigned id."""

    @abstractmethod
    async def update(self, issue: Issue) -> Issue:
        """Persist a mutated issue."""


class ICampusRepository(ABC):
    """Interface for campus data access."""

    @abstractmethod
    async def get_by_id(self, campus_id: str) -> Optional[Campus]:
        """Get campus by ID."""

    @abstractmethod
    async def list_all(self) -> List[Campus]:
        """List all campuses."""

    @abstractmethod
    async def create(self, campus: Campus) -> Campus:
        """Create new campus."""

    @abstractmethod
    async def save_health_summary(
        self,
        campus_id: str,
        summary: HealthSummary,
        updated_at: datetime
    ) -> None:
        """Merge the summary onto the campus record, leaving other fields untouched."""


class IAuditLogRepository(ABC):
    """Interface for the issue audit trail."""

    @abstractmethod
    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        """Append an entry; entries are never updated."""

    @abstractmethod
    async def list_for_issue(self, issue_id: str) -> List[AuditLogEntry]:
        """Entries of one issue, oldest first."""


class ISLAPolicyProvider(ABC):
    """Interface for SLA policy access."""

    @abstractmethod
    def get_policy(self) -> SLAPolicy:
        """Get current SLA policy."""


class IBreachNotifier(ABC):
    """Interface for out-of-band breach notifications."""

    @abstractmethod
    async def notify_breach(self, issue: Issue) -> bool:
        """Send a notification; returns whether it was delivered."""


# ========== Application Services ==========

class HealthSyncService:
    """
    Recomputes and persists the health summary of a campus.

    The single entry point every trigger goes through.
    """

    def __init__(
        self,
        campus_repository: ICampusRepository,
        issue_repository: IIssueRepository
    ):
        self._campus_repo = campus_repository
        self._issue_repo = issue_repository

    async def sync_campus_health(
        self,
        campus_id: str,
        now: Optional[datetime] = None
    ) -> Optional[HealthSummary]:
        """
        Recalculate and persist the health summary for one campus.

        Args:
            campus_id: Campus to recompute
            now: Evaluation instant (defaults to current UTC time)

        Returns:
            The new HealthSummary, or None if the campus does not exist
        """
        if not campus_id:
            return None

        campus = await self._campus_repo.get_by_id(campus_id)
        if campus is None:
            logger.warning("Campus not found, skipping health sync", extra={"campus_id": campus_id})
            return None

        now = now or datetime.now(timezone.utc)
        issues = await self._issue_repo.list_by_campus(campus_id)

        with log_latency(logger, "health_computation", campus_id=campus_id, issue_count=len(issues)):
            summary = HealthCalculator.compute_health(issues, campus.previous_score, now)

        await self._campus_repo.save_health_summary(campus_id, summary, now)

        logger.info(
            "Campus health synchronized",
            extra={
                "campus_id": campus_id,
                "score": summary.score,
                "trend": summary.trend,
                "sla_compliance": summary.sla_compliance
            }
        )
        return summary

    async def sync_after_mutation(
        self,
        campus_id: str,
        now: Optional[datetime] = None
    ) -> Optional[HealthSummary]:
        """
        Sync triggered by a completed mutation.

        A failed recomputation must not undo or fail the mutation; the
        cached summary is repaired by the next trigger.
        """
        try:
            return await self.sync_campus_health(campus_id, now)
        except ApplicationException as e:
            logger.error(
                "Health sync failed after mutation",
                extra={"campus_id": campus_id, "error": e.message}
            )
            return None


class IssueService:
    """
    Service for the issue lifecycle: creation, status transitions, resolution.

    Each mutation appends an audit entry and triggers a health sync.
    """

    def __init__(
        self,
        issue_repository: IIssueRepository,
        campus_repository: ICampusRepository,
        audit_repository: IAuditLogRepository,
        policy_provider: ISLAPolicyProvider,
        sync_service: HealthSyncService
    ):
        self._issue_repo = issue_repository
        self._campus_repo = campus_repository
        self._audit_repo = audit_repository
        self._policy_provider = policy_provider
        self._sync = sync_service

    async def _get_issue(self, issue_id: str) -> Issue:
        issue = await self._issue_repo.get_by_id(issue_id)
        if issue is None:
            raise ResourceNotFoundException("Issue", issue_id)
        return issue

    async def create_issue(
        self,
        request: IssueCreateRequest,
        actor_role: str = "anonymous",
        now: Optional[datetime] = None
    ) -> Issue:
        """
        Report a new issue with an SLA deadline derived from its severity.

        Raises:
            ResourceNotFoundException: If the campus does not exist
        """
        if await self._campus_repo.get_by_id(request.campus_id) is None:
            raise ResourceNotFoundException("Campus", request.campus_id)

        now = now or datetime.now(timezone.utc)
        policy = self._policy_provider.get_policy()

        issue = Issue(
            id="",
            campus_id=request.campus_id,
            severity=request.severity,
            status=IssueStatus.OPEN,
            created_at=now,
            sla_deadline=policy.deadline_for(request.severity, now),
            sla_status=SLAStatus.WITHIN_SLA,
            title=request.title,
            description=request.description,
            reported_by=request.reported_by or "Anonymous User",
        )
        issue.add_timeline_event("CREATED", "Incident reported and logged in system.", now)
        issue = await self._issue_repo.create(issue)

        await self._audit_repo.append(AuditLogEntry(
            issue_id=issue.id,
            action=AuditAction.ISSUE_CREATED,
            actor_id=request.user_id or "anonymous",
            actor_role=actor_role,
            new_state={"status": issue.status, "severity": issue.severity, "title": issue.title},
            timestamp=now
        ))

        logger.info(
            "Issue created",
            extra={"issue_id": issue.id, "campus_id": issue.campus_id, "severity": issue.severity}
        )

        await self._sync.sync_after_mutation(issue.campus_id, now)
        return issue

    async def update_status(
        self,
        issue_id: str,
        status: str,
        message: Optional[str] = None,
        actor_id: str = "unknown",
        actor_role: str = "staff",
        now: Optional[datetime] = None
    ) -> Issue:
        """
        Manual transition to escalated or actioned.

        Raises:
            ValidationException: If the target status is not allowed
            ResourceNotFoundException: If the issue does not exist
            DomainException: If the issue is already resolved
        """
        target = normalize_status(status)
        if target not in MANUAL_STATUS_TRANSITIONS:
            raise ValidationException(
                f"Invalid status '{status}'",
                {"allowed": list(MANUAL_STATUS_TRANSITIONS)}
            )

        issue = await self._get_issue(issue_id)
        now = now or datetime.now(timezone.utc)
        previous_status = issue.status_value
        default_message = (
            "Issue escalated to senior management."
            if target == IssueStatus.ESCALATED
            else "Field unit deployed; taking corrective action."
        )

        issue.transition(target, message or default_message, now)
        await self._issue_repo.update(issue)

        await self._audit_repo.append(AuditLogEntry(
            issue_id=issue.id,
            action=AuditAction.STATUS_UPDATED,
            actor_id=actor_id,
            actor_role=actor_role,
            previous_state={"status": previous_status},
            new_state={"status": target, "message": message},
            timestamp=now
        ))

        await self._sync.sync_after_mutation(issue.campus_id, now)
        return issue

    async def resolve_issue(
        self,
        issue_id: str,
        actor_id: str = "unknown",
        actor_role: str = "staff",
        now: Optional[datetime] = None
    ) -> Issue:
        """
        Resolve an issue and record its final SLA assessment.

        Raises:
            ResourceNotFoundException: If the issue does not exist
            DomainException: If the issue is already resolved
        """
        issue = await self._get_issue(issue_id)
        now = now or datetime.now(timezone.utc)
        previous_state = {"status": issue.status_value, "sla_status": issue.sla_status}

        final_status = SLAPolicy.final_sla_status(issue.sla_status, issue.sla_deadline, now)
        issue.mark_resolved(final_status, now)
        await self._issue_repo.update(issue)

        await self._audit_repo.append(AuditLogEntry(
            issue_id=issue.id,
            action=AuditAction.ISSUE_RESOLVED,
            actor_id=actor_id,
            actor_role=actor_role,
            previous_state=previous_state,
            new_state={"status": IssueStatus.RESOLVED, "sla_status": final_status},
            timestamp=now
        ))

        logger.info(
            "Issue resolved",
            extra={"issue_id": issue.id, "campus_id": issue.campus_id, "sla_status": final_status}
        )

        await self._sync.sync_after_mutation(issue.campus_id, now)
        return issue

    async def escalate_external(
        self,
        issue_id: str,
        level: Optional[str] = EscalationLevel.DISTRICT,
        actor_id: str = "unknown",
        actor_role: str = "staff",
        now: Optional[datetime] = None
    ) -> Issue:
        """
        Forward an issue to an outside authority (admins only).

        Unknown levels fall back to the district authority.

        Raises:
            PermissionDeniedException: If the actor is not an admin
            ResourceNotFoundException: If the issue does not exist
            DomainException: If the issue is already resolved
        """
        if actor_role != ESCALATION_ROLE:
            raise PermissionDeniedException(
                "Only admins can escalate to an outside authority",
                {"actor_role": actor_role}
            )

        issue = await self._get_issue(issue_id)
        now = now or datetime.now(timezone.utc)
        level = (level or "").strip().lower()
        if level not in ESCALATION_AUTHORITIES:
            level = EscalationLevel.DISTRICT
        authority = ESCALATION_AUTHORITIES[level]
        previous_status = issue.status_value

        issue.escalate_externally(level, authority, now)
        await self._issue_repo.update(issue)

        await self._audit_repo.append(AuditLogEntry(
            issue_id=issue.id,
            action=AuditAction.EXTERNAL_ESCALATION,
            actor_id=actor_id,
            actor_role=actor_role,
            previous_state={"status": previous_status},
            new_state={
                "status": IssueStatus.ESCALATED,
                "escalation_status": issue.escalation_status,
                "escalation_level": level,
                "escalated_to": authority,
            },
            message=f"Official notice forwarded to {authority['name']}.",
            timestamp=now
        ))

        logger.info(
            "Issue escalated to outside authority",
            extra={"issue_id": issue.id, "campus_id": issue.campus_id, "level": level}
        )

        await self._sync.sync_after_mutation(issue.campus_id, now)
        return issue

    async def list_issues(
        self,
        campus_id: Optional[str] = None,
        now: Optional[datetime] = None
    ) -> List[IssueResponse]:
        """List issues newest first with their age and aged flag."""
        now = now or datetime.now(timezone.utc)
        policy = self._policy_provider.get_policy()

        if campus_id:
            issues = await self._issue_repo.list_by_campus(campus_id)
        else:
            issues = await self._issue_repo.list_all()

        issues = newest_first(issues)

        return [
            IssueResponse.from_domain(
                issue,
                age_in_days=max(0, (now - (issue.created_at or now)).days),
                is_aged=policy.is_aged(issue, now)
            )
            for issue in issues
        ]

    async def get_audit_trail(self, issue_id: str) -> List[AuditLogEntry]:
        await self._get_issue(issue_id)
        return await self._audit_repo.list_for_issue(issue_id)


@dataclass
class SweepResult:
    """Outcome of one SLA sweep."""
    processed_count: int
    breached: int
    escalated: int
    timestamp: datetime
    campuses_synced: List[str] = field(default_factory=list)


class SLASweepService:
    """
    Periodic scan that flips overdue open issues to breached.

    Run on a schedule and on demand. Each affected campus is re-synced once
    after all flips, so its summary reflects every new breach.
    """

    def __init__(
        self,
        issue_repository: IIssueRepository,
        audit_repository: IAuditLogRepository,
        policy_provider: ISLAPolicyProvider,
        sync_service: HealthSyncService,
        notifier: Optional[IBreachNotifier] = None
    ):
        self._issue_repo = issue_repository
        self._audit_repo = audit_repository
        self._policy_provider = policy_provider
        self._sync = sync_service
        self._notifier = notifier

    async def run_sweep(self, now: Optional[datetime] = None) -> SweepResult:
        now = now or datetime.now(timezone.utc)
        policy = self._policy_provider.get_policy()

        candidates = await self._issue_repo.list_sweep_candidates(policy.sweep_statuses)
        affected_campuses: List[str] = []
        breached = 0

        for issue in candidates:
            if issue.sla_deadline is None or now <= issue.sla_deadline:
                continue

            previous_state = {"status": issue.status_value, "sla_status": issue.sla_status}
            issue.mark_breached(now)
            await self._issue_repo.update(issue)

            await self._audit_repo.append(AuditLogEntry(
                issue_id=issue.id,
                action=AuditAction.STATUS_UPDATED,
                actor_id=SYSTEM_ACTOR_ID,
                actor_role=SYSTEM_ACTOR_ROLE,
                previous_state=previous_state,
                new_state={"status": IssueStatus.ESCALATED, "sla_status": SLAStatus.BREACHED},
                message="Automatic escalation due to SLA breach.",
                timestamp=now
            ))

            if self._notifier is not None:
                await self._notifier.notify_breach(issue)

            breached += 1
            if issue.campus_id not in affected_campuses:
                affected_campuses.append(issue.campus_id)

        for campus_id in affected_campuses:
            await self._sync.sync_after_mutation(campus_id, now)

        logger.info(
            "SLA sweep complete",
            extra={
                "processed_count": len(candidates),
                "breached": breached,
                "campuses_synced": len(affected_campuses)
            }
        )

        return SweepResult(
            processed_count=len(candidates),
            breached=breached,
            escalated=breached,
            timestamp=now,
            campuses_synced=affected_campuses
        )


class CampusService:
    """Service for campus registration and health read models."""

    def __init__(
        self,
        campus_repository: ICampusRepository,
        issue_repository: IIssueRepository,
        sync_service: HealthSyncService
    ):
        self._campus_repo = campus_repository
        self._issue_repo = issue_repository
        self._sync = sync_service

    async def create_campus(self, request: CampusCreateRequest) -> Campus:
        campus = Campus(id=str(uuid.uuid4()), name=request.name, location=request.location)
        campus = await self._campus_repo.create(campus)
        logger.info("Campus created", extra={"campus_id": campus.id})
        return campus

    async def list_campuses(self, now: Optional[datetime] = None) -> List[Campus]:
        """
        List campuses with a freshly computed summary each.

        Summaries are computed for display only and not persisted.
        """
        now = now or datetime.now(timezone.utc)
        campuses = await self._campus_repo.list_all()
        for campus in campuses:
            issues = await self._issue_repo.list_by_campus(campus.id)
            campus.health_summary = HealthCalculator.compute_health(issues, campus.previous_score, now)
        return campuses

    async def get_campus_health(
        self,
        campus_id: str,
        now: Optional[datetime] = None
    ) -> tuple[int, HealthSummary]:
        """
        Recompute, persist and return the health of one campus.

        Returns:
            Tuple of (previous_score, summary)

        Raises:
            ResourceNotFoundException: If the campus does not exist
        """
        campus = await self._campus_repo.get_by_id(campus_id)
        if campus is None:
            raise ResourceNotFoundException("Campus", campus_id)

        previous_score = campus.previous_score
        summary = await self._sync.sync_campus_health(campus_id, now)
        if summary is None:
            raise ResourceNotFoundException("Campus", campus_id)
        return previous_score, summary

    async def global_stats(self, now: Optional[datetime] = None) -> GlobalStatsResponse:
        """Aggregate statistics across every campus."""
        now = now or datetime.now(timezone.utc)
        campuses = await self.list_campuses(now)
        issues = await self._issue_repo.list_all()

        total = len(issues)
        resolved = sum(1 for issue in issues if issue.is_resolved)
        scores = [c.health_summary.score for c in campuses if c.health_summary]

        return GlobalStatsResponse(
            total_campuses=len(campuses),
            total_issues=total,
            resolution_rate=round_half_up(100 * resolved / total) if total else 100,
            severity_breakdown=HealthCalculator.severity_breakdown(issues),
            global_health=round_half_up(sum(scores) / len(scores)) if scores else 100,
            generated_at=now,
            recent_activity=[
                ActivityItem.from_domain(issue, with_campus=True)
                for issue in newest_first(issues)[:GLOBAL_ACTIVITY_LIMIT]
            ]
        )

    async def public_stats(
        self,
        campus_id: str,
        now: Optional[datetime] = None
    ) -> PublicCampusStatsResponse:
        """
        Anonymised transparency record of one campus.

        The summary is computed for display and not persisted. The activity
        feed carries truncated ids and no reporter data.

        Raises:
            ResourceNotFoundException: If the campus does not exist
        """
        campus = await self._campus_repo.get_by_id(campus_id)
        if campus is None:
            raise ResourceNotFoundException("Campus", campus_id)

        now = now or datetime.now(timezone.utc)
        issues = await self._issue_repo.list_by_campus(campus_id)
        summary = HealthCalculator.compute_health(issues, campus.previous_score, now)

        return PublicCampusStatsResponse(
            generated_at=now,
            campus={"name": campus.name, "location": campus.location},
            transparency_score=summary.score,
            resolution_rate=summary.resolved_percentage,
            sla_compliance=summary.sla_compliance,
            total_issues_logged=summary.total_issues,
            breakdown=summary.severity_breakdown,
            recent_activity=[
                ActivityItem.from_domain(issue, short_id=True)
                for issue in newest_first(issues)[:PUBLIC_ACTIVITY_LIMIT]
            ]
        )
