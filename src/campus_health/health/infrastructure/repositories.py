"""
Health Infrastructure Repositories
===================================

Concrete implementations of repository interfaces using SQLAlchemy.

This layer contains the data access logic - how we store and retrieve
entities from the database. Rows are converted to domain entities on
the way out, including timestamp normalisation.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from campus_health.config import SLAStatus
from campus_health.core import RepositoryException
from campus_health.health.application import (
    IIssueRepository, ICampusRepository, IAuditLogRepository
)
from campus_health.health.domain import AuditLogEntry, Campus, HealthSummary, Issue
from campus_health.health.infrastructure.models import (
    AuditLogModel, CampusModel, IssueModel
)
from campus_health.health.infrastructure.timestamps import issue_from_record, to_instant
from campus_health.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


def _campus_to_domain(model: CampusModel) -> Campus:
    summary = None
    if model.health_summary:
        try:
            summary = HealthSummary.from_dict(model.health_summary)
        except (KeyError, TypeError, ValueError) as e:
            # Unreadable cache: treat as never computed, next sync overwrites it
            logger.warning(
                "Discarding unreadable cached health summary",
                extra={"campus_id": model.id, "error": str(e)}
            )
    return Campus(
        id=model.id,
        name=model.name,
        location=dict(model.location or {}),
        health_summary=summary,
        last_health_update=to_instant(model.last_health_update)
    )


class SQLAlchemyIssueRepository(IIssueRepository):
    """
    SQLAlchemy implementation of issue repository.

    Handles persistence of Issue entities using async SQLAlchemy.
    """

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, issue_id: str) -> Optional[IssueModel]:
        try:
            stmt = select(IssueModel).where(IssueModel.id == issue_id)
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load issue {issue_id}", {"error": str(e)})
        return result.scalar_one_or_none()

    async def get_by_id(self, issue_id: str) -> Optional[Issue]:
        model = await self._get_model(issue_id)
        return issue_from_record(model) if model else None

    async def list_by_campus(self, campus_id: str) -> List[Issue]:
        try:
            stmt = select(IssueModel).where(IssueModel.campus_id == campus_id)
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load issues for campus {campus_id}", {"error": str(e)})
        return [issue_from_record(m) for m in result.scalars().all()]

    async def list_all(self) -> List[Issue]:
        try:
            result = await self._session.execute(select(IssueModel))
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to load issues", {"error": str(e)})
        return [issue_from_record(m) for m in result.scalars().all()]

    async def list_sweep_candidates(self, statuses: List[str]) -> List[Issue]:
        stmt = select(IssueModel).where(
            and_(
                IssueModel.status.in_(statuses),
                IssueModel.sla_status == SLAStatus.WITHIN_SLA,
                IssueModel.sla_deadline.is_not(None)
            )
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to load SLA sweep candidates", {"error": str(e)})
        return [issue_from_record(m) for m in result.scalars().all()]

    async def create(self, issue: Issue) -> Issue:
        model = IssueModel(
            campus_id=issue.campus_id,
            severity=issue.severity,
            status=issue.status,
            title=issue.title,
            description=issue.description,
            reported_by=issue.reported_by,
            timeline=list(issue.timeline),
            created_at=issue.created_at or datetime.now(timezone.utc),
            resolved_at=issue.resolved_at,
            sla_deadline=issue.sla_deadline,
            sla_status=issue.sla_status,
            escalation_status=issue.escalation_status,
            escalation_level=issue.escalation_level,
            escalated_to=dict(issue.escalated_to) if issue.escalated_to else None,
            escalated_at=issue.escalated_at
        )
        if issue.id:
            model.id = issue.id

        self._session.add(model)
        await self._session.flush()

        issue.id = model.id
        return issue

    async def update(self, issue: Issue) -> Issue:
        model = await self._get_model(issue.id)
        if not model:
            raise RepositoryException(f"Issue {issue.id} not found")

        model.severity = issue.severity
        model.status = issue.status
        model.title = issue.title
        model.description = issue.description
        # New list so the JSON column is flagged dirty
        model.timeline = list(issue.timeline)
        model.sla_deadline = issue.sla_deadline
        model.sla_status = issue.sla_status
        model.escalation_status = issue.escalation_status
        model.escalation_level = issue.escalation_level
        model.escalated_to = dict(issue.escalated_to) if issue.escalated_to else None
        model.escalated_at = issue.escalated_at
        if model.resolved_at is None:
            model.resolved_at = issue.resolved_at

        await self._session.flush()
        return issue


class SQLAlchemyCampusRepository(ICampusRepository):
    """SQLAlchemy implementation of campus repository."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def _get_model(self, campus_id: str) -> Optional[CampusModel]:
        try:
            stmt = select(CampusModel).where(CampusModel.id == campus_id)
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load campus {campus_id}", {"error": str(e)})
        return result.scalar_one_or_none()

    async def get_by_id(self, campus_id: str) -> Optional[Campus]:
        model = await self._get_model(campus_id)
        return _campus_to_domain(model) if model else None

    async def list_all(self) -> List[Campus]:
        try:
            result = await self._session.execute(select(CampusModel).order_by(CampusModel.name))
        except SQLAlchemyError as e:
            raise RepositoryException("Failed to load campuses", {"error": str(e)})
        return [_campus_to_domain(m) for m in result.scalars().all()]

    async def create(self, campus: Campus) -> Campus:
        model = CampusModel(
            id=campus.id,
            name=campus.name,
            location=dict(campus.location),
            health_summary=campus.health_summary.to_dict() if campus.health_summary else None,
            last_health_update=campus.last_health_update
        )
        self._session.add(model)
        await self._session.flush()
        return campus

    async def save_health_summary(
        self,
        campus_id: str,
        summary: HealthSummary,
        updated_at: datetime
    ) -> None:
        try:
            model = await self._get_model(campus_id)
            if not model:
                raise RepositoryException(f"Campus {campus_id} not found")
            model.health_summary = summary.to_dict()
            model.last_health_update = updated_at
            await self._session.flush()
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to save health for campus {campus_id}", {"error": str(e)})


class SQLAlchemyAuditLogRepository(IAuditLogRepository):
    """SQLAlchemy implementation of the audit trail."""

    def __init__(self, session: AsyncSession):
        self._session = session

    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        model = AuditLogModel(
            issue_id=entry.issue_id,
            action=entry.action,
            actor_id=entry.actor_id,
            actor_role=entry.actor_role,
            previous_state=entry.previous_state,
            new_state=entry.new_state,
            message=entry.message,
            timestamp=entry.timestamp
        )
        self._session.add(model)
        await self._session.flush()

        entry.id = str(model.id)
        logger.info(
            "Audit entry persisted",
            extra={"issue_id": entry.issue_id, "action": entry.action}
        )
        return entry

    async def list_for_issue(self, issue_id: str) -> List[AuditLogEntry]:
        stmt = (
            select(AuditLogModel)
            .where(AuditLogModel.issue_id == issue_id)
            .order_by(AuditLogModel.timestamp.asc())
        )
        try:
            result = await self._session.execute(stmt)
        except SQLAlchemyError as e:
            raise RepositoryException(f"Failed to load audit trail of issue {issue_id}", {"error": str(e)})
        return [
            AuditLogEntry(
                id=str(m.id),
                issue_id=m.issue_id,
                action=m.action,
                actor_id=m.actor_id,
                actor_role=m.actor_role,
                previous_state=m.previous_state,
                new_state=m.new_state,
                message=m.message,
                timestamp=to_instant(m.timestamp) or datetime.now(timezone.utc)
            )
            for m in result.scalars().all()
        ]
