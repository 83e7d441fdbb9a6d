"""
Health Controllers (API Routes)
================================

FastAPI routes for campus health.

Controllers are thin - they delegate to application services.
Application exceptions propagate to the handlers registered in main.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Header, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from campus_health.infrastructure.database import get_session
from campus_health.health.application import (
    HealthSyncService, IssueService, SLASweepService, CampusService,
    ISLAPolicyProvider,
    IssueCreateRequest, IssueStatusUpdateRequest, EscalationRequest, CampusCreateRequest,
    IssueCreatedResponse, IssueResponse, IssueListResponse,
    CampusResponse, CampusHealthResponse, HealthSummaryResponse,
    SweepResponse, AuditLogResponse, GlobalStatsResponse, PublicCampusStatsResponse,
)
from campus_health.health.infrastructure import (
    SQLAlchemyIssueRepository,
    SQLAlchemyCampusRepository,
    SQLAlchemyAuditLogRepository,
)
from campus_health.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)
router = APIRouter(tags=["Campus Health"])


# ========== Example payloads for Swagger ==========

CAMPUS_HEALTH_EXAMPLE = {
    "campus_id": "north-campus",
    "previous_score": 100,
    "current_health": {
        "score": 97,
        "trend": "down",
        "sla_compliance": 100,
        "resolved_percentage": 0,
        "total_issues": 1,
        "resolved_issues": 0,
        "open_issues": 1,
        "breached_issues": 0,
        "total_penalty": 3,
        "severity_breakdown": {"low": 1, "medium": 0, "high": 0, "critical": 0},
        "last_updated": "2025-01-15T12:00:00+00:00"
    },
    "restoration_half_life_minutes": 10
}


# ========== Dependencies ==========

def get_policy_provider(request: Request) -> ISLAPolicyProvider:
    """SLA policy manager loaded at startup."""
    return request.app.state.sla_policy_manager


async def get_sync_service(
    session: AsyncSession = Depends(get_session)
) -> HealthSyncService:
    return HealthSyncService(
        SQLAlchemyCampusRepository(session),
        SQLAlchemyIssueRepository(session)
    )


async def get_issue_service(
    session: AsyncSession = Depends(get_session),
    policy_provider: ISLAPolicyProvider = Depends(get_policy_provider),
    sync_service: HealthSyncService = Depends(get_sync_service)
) -> IssueService:
    return IssueService(
        SQLAlchemyIssueRepository(session),
        SQLAlchemyCampusRepository(session),
        SQLAlchemyAuditLogRepository(session),
        policy_provider,
        sync_service
    )


async def get_campus_service(
    session: AsyncSession = Depends(get_session),
    sync_service: HealthSyncService = Depends(get_sync_service)
) -> CampusService:
    return CampusService(
        SQLAlchemyCampusRepository(session),
        SQLAlchemyIssueRepository(session),
        sync_service
    )


async def get_sweep_service(
    request: Request,
    session: AsyncSession = Depends(get_session),
    policy_provider: ISLAPolicyProvider = Depends(get_policy_provider),
    sync_service: HealthSyncService = Depends(get_sync_service)
) -> SLASweepService:
    return SLASweepService(
        SQLAlchemyIssueRepository(session),
        SQLAlchemyAuditLogRepository(session),
        policy_provider,
        sync_service,
        notifier=getattr(request.app.state, "breach_notifier", None)
    )


# ========== Campus Routes ==========

@router.get(
    "/campuses",
    response_model=List[CampusResponse],
    summary="List campuses with live health"
)
async def list_campuses(campus_service: CampusService = Depends(get_campus_service)):
    campuses = await campus_service.list_campuses()
    return [CampusResponse.from_domain(c) for c in campuses]


@router.post(
    "/campuses",
    response_model=CampusResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a campus"
)
async def create_campus(
    request: CampusCreateRequest,
    campus_service: CampusService = Depends(get_campus_service)
):
    campus = await campus_service.create_campus(request)
    return CampusResponse.from_domain(campus)


@router.get(
    "/campuses/{campus_id}/health",
    response_model=CampusHealthResponse,
    summary="Recompute campus health",
    description="""
    Recompute the health summary of a campus from its full issue set and
    cache it on the campus record.

    - `score`: 0-100; open issues cost severity base + hours open (+ breach penalty),
      resolved issues decay with a 10 minute half-life
    - `trend`: up / down / stable against the previously cached score
    - `sla_compliance`: percentage of issues not breached
    """,
    responses={
        200: {"content": {"application/json": {"example": CAMPUS_HEALTH_EXAMPLE}}},
        404: {"description": "Campus not found"}
    }
)
async def get_campus_health(
    campus_id: str,
    campus_service: CampusService = Depends(get_campus_service)
):
    previous_score, summary = await campus_service.get_campus_health(campus_id)
    return CampusHealthResponse(
        campus_id=campus_id,
        previous_score=previous_score,
        current_health=HealthSummaryResponse.from_domain(summary)
    )


@router.get(
    "/stats/global",
    response_model=GlobalStatsResponse,
    summary="Aggregate statistics across campuses"
)
async def get_global_stats(campus_service: CampusService = Depends(get_campus_service)):
    return await campus_service.global_stats()


@router.get(
    "/public/stats/{campus_id}",
    response_model=PublicCampusStatsResponse,
    summary="Public transparency record of a campus",
    responses={404: {"description": "Campus not found"}}
)
async def get_public_stats(
    campus_id: str,
    campus_service: CampusService = Depends(get_campus_service)
):
    return await campus_service.public_stats(campus_id)


# ========== Issue Routes ==========

@router.get(
    "/issues",
    response_model=IssueListResponse,
    summary="List issues, newest first"
)
async def list_issues(
    campus_id: Optional[str] = Query(None, description="Only issues of this campus"),
    issue_service: IssueService = Depends(get_issue_service)
):
    return IssueListResponse(issues=await issue_service.list_issues(campus_id))


@router.post(
    "/issues",
    response_model=IssueCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Report an issue",
    description="""
    Report a facility issue. The SLA deadline is derived from severity
    (critical 1h, high 4h, medium 12h, low 48h by default) and the campus
    health is recomputed.
    """
)
async def create_issue(
    request: IssueCreateRequest,
    x_user_role: str = Header("anonymous"),
    issue_service: IssueService = Depends(get_issue_service)
):
    issue = await issue_service.create_issue(request, actor_role=x_user_role)
    return IssueCreatedResponse(issue_id=issue.id, sla_deadline=issue.sla_deadline)


@router.patch(
    "/issues/{issue_id}/status",
    response_model=IssueResponse,
    summary="Escalate or action an issue",
    responses={
        400: {"description": "Invalid status"},
        404: {"description": "Issue not found"},
        409: {"description": "Issue already resolved"}
    }
)
async def update_issue_status(
    issue_id: str,
    request: IssueStatusUpdateRequest,
    x_user_id: str = Header("unknown"),
    x_user_role: str = Header("staff"),
    issue_service: IssueService = Depends(get_issue_service)
):
    issue = await issue_service.update_status(
        issue_id, request.status, request.message,
        actor_id=x_user_id, actor_role=x_user_role
    )
    return IssueResponse.from_domain(issue)


@router.patch(
    "/issues/{issue_id}/resolve",
    response_model=IssueResponse,
    summary="Resolve an issue",
    responses={404: {"description": "Issue not found"}, 409: {"description": "Already resolved"}}
)
async def resolve_issue(
    issue_id: str,
    x_user_id: str = Header("unknown"),
    x_user_role: str = Header("staff"),
    issue_service: IssueService = Depends(get_issue_service)
):
    issue = await issue_service.resolve_issue(issue_id, actor_id=x_user_id, actor_role=x_user_role)
    return IssueResponse.from_domain(issue)


@router.post(
    "/issues/{issue_id}/escalate",
    response_model=IssueResponse,
    summary="Forward an issue to an outside authority",
    description="""
    Admin-only. Sends an official notice to the district (default) or
    university authority and moves the issue to escalated.
    """,
    responses={
        403: {"description": "Caller is not an admin"},
        404: {"description": "Issue not found"},
        409: {"description": "Issue already resolved"}
    }
)
async def escalate_issue(
    issue_id: str,
    request: Optional[EscalationRequest] = None,
    x_user_id: str = Header("unknown"),
    x_user_role: str = Header("staff"),
    issue_service: IssueService = Depends(get_issue_service)
):
    request = request or EscalationRequest()
    issue = await issue_service.escalate_external(
        issue_id, request.level, actor_id=x_user_id, actor_role=x_user_role
    )
    return IssueResponse.from_domain(issue)


@router.get(
    "/issues/{issue_id}/audit-log",
    response_model=List[AuditLogResponse],
    summary="Audit trail of an issue"
)
async def get_audit_log(
    issue_id: str,
    issue_service: IssueService = Depends(get_issue_service)
):
    entries = await issue_service.get_audit_trail(issue_id)
    return [AuditLogResponse.from_domain(e) for e in entries]


# ========== Admin Routes ==========

@router.post(
    "/admin/sla-check",
    response_model=SweepResponse,
    summary="Run the SLA breach sweep now"
)
async def run_sla_check(sweep_service: SLASweepService = Depends(get_sweep_service)):
    result = await sweep_service.run_sweep()
    return SweepResponse(
        processed_count=result.processed_count,
        breached=result.breached,
        escalated=result.escalated,
        campuses_synced=result.campuses_synced,
        timestamp=result.timestamp
    )


# Export router for inclusion in main app
health_router = router
