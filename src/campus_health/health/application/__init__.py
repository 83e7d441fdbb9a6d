"""
Health Application Layer
=========================

Contains:
- Services: Health sync (recompute + persist), issue lifecycle, SLA sweep, campus read models
- DTOs: Data transfer objects for API serialization

This layer depends on the domain layer and repository interfaces,
but not on concrete infrastructure implementations.
"""

from campus_health.health.application.dto import (
    IssueCreateRequest,
    IssueStatusUpdateRequest,
    EscalationRequest,
    CampusCreateRequest,
    HealthSummaryResponse,
    CampusResponse,
    CampusHealthResponse,
    IssueResponse,
    IssueCreatedResponse,
    IssueListResponse,
    SweepResponse,
    AuditLogResponse,
    GlobalStatsResponse,
    ActivityItem,
    PublicCampusStatsResponse,
)
from campus_health.health.application.services import (
    HealthSyncService,
    IssueService,
    SLASweepService,
    CampusService,
    SweepResult,
    IIssueRepository,
    ICampusRepository,
    IAuditLogRepository,
    ISLAPolicyProvider,
    IBreachNotifier,
)

__all__ = [
    # DTOs
    "IssueCreateRequest",
    "IssueStatusUpdateRequest",
    "EscalationRequest",
    "CampusCreateRequest",
    "HealthSummaryResponse",
    "CampusResponse",
    "CampusHealthResponse",
    "IssueResponse",
    "IssueCreatedResponse",
    "IssueListResponse",
    "SweepResponse",
    "AuditLogResponse",
    "GlobalStatsResponse",
    "ActivityItem",
    "PublicCampusStatsResponse",
    # Services
    "HealthSyncService",
    "IssueService",
    "SLASweepService",
    "CampusService",
    "SweepResult",
    # Repository Interfaces
    "IIssueRepository",
    "ICampusRepository",
    "IAuditLogRepository",
    "ISLAPolicyProvider",
    "IBreachNotifier",
]
