"""
Campus Health - Main Application
=================================

Campus-operations health service.

Clean Architecture Layers:
- Interfaces: FastAPI controllers
- Application: Services and DTOs
- Domain: Entities, scoring engine, SLA policy
- Infrastructure: Database, policy file, Slack, scheduler
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from campus_health.config import settings
from campus_health.core import ApplicationException
from campus_health.infrastructure.database import (
    init_database, close_database, create_tables, get_session_context
)
from campus_health.health.application import HealthSyncService, SLASweepService
from campus_health.health.infrastructure import (
    SLAPolicyManager, SlackBreachNotifier, SLASweepScheduler,
    SQLAlchemyIssueRepository, SQLAlchemyCampusRepository, SQLAlchemyAuditLogRepository,
)
from campus_health.health.interfaces import health_router
from campus_health.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    application_exception_handler,
    global_exception_handler,
)
from campus_health.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


def build_sweep_job(policy_manager: SLAPolicyManager, notifier: SlackBreachNotifier):
    """Background sweep job; each run gets its own session and commits at the end."""

    async def sla_sweep_job() -> None:
        async with get_session_context() as session:
            issue_repo = SQLAlchemyIssueRepository(session)
            sync_service = HealthSyncService(SQLAlchemyCampusRepository(session), issue_repo)
            sweep = SLASweepService(
                issue_repo,
                SQLAlchemyAuditLogRepository(session),
                policy_manager,
                sync_service,
                notifier=notifier
            )
            await sweep.run_sweep()

    return sla_sweep_job


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and tables
    3. Load SLA policy and watch it
    4. Start SLA sweep scheduler

    SHUTDOWN:
    1. Stop scheduler and policy watcher
    2. Close Slack client
    3. Close database connections
    """
    setup_logging(settings.log_level, settings.environment)
    logger.info("Starting Campus Health service", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()
    try:
        await create_tables()
    except (SQLAlchemyError, OSError) as e:
        logger.warning("Database not available - running in degraded mode", extra={"error": str(e)})

    policy_manager = SLAPolicyManager()
    policy_manager.load(settings.sla_policy_path)
    policy_manager.start_watching()

    notifier = SlackBreachNotifier()

    app.state.settings = settings
    app.state.sla_policy_manager = policy_manager
    app.state.breach_notifier = notifier

    scheduler: Optional[SLASweepScheduler] = None
    if settings.sla_sweep_enabled:
        scheduler = SLASweepScheduler(interval_seconds=settings.sla_sweep_interval)
        await scheduler.start(build_sweep_job(policy_manager, notifier))
    app.state.sla_scheduler = scheduler

    logger.info("Campus Health service started successfully")

    yield

    logger.info("Shutting down Campus Health service")
    if scheduler:
        await scheduler.stop()
    policy_manager.stop_watching()
    await notifier.close()
    await close_database()
    logger.info("Campus Health service shutdown complete")


app = FastAPI(
    title="Campus Health API",
    description="""
    ## Campus Operations Health

    Facility issues carry severity and SLA deadlines; each campus gets a
    0-100 health score recomputed on every issue mutation.

    **Scoring:**
    - Open issue: severity base (critical 40, high 15, medium 5, low 1) + 1 per hour open
    - Breached SLA: + critical 50, high 30, medium 15, low 5
    - Resolved issue: penalty at resolution, halving every 10 minutes
    """,
    version=settings.app_version,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(LoggingMiddleware)
app.add_middleware(CorrelationIDMiddleware)
app.add_exception_handler(ApplicationException, application_exception_handler)
app.add_exception_handler(Exception, global_exception_handler)

app.include_router(health_router)


@app.get("/health", tags=["Health"])
async def health_check(request: Request):
    """Liveness check for load balancers and orchestrators."""
    scheduler = getattr(request.app.state, "sla_scheduler", None)
    policy_manager = getattr(request.app.state, "sla_policy_manager", None)
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": {
            "sla_policy": "loaded" if policy_manager else "not_loaded",
            "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        }
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "campus_health.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
