"""Shared fixtures for campus health tests.

Provides:
- In-memory implementations of the repository interfaces
- A static SLA policy provider and a recording breach notifier
- Pre-wired application services
- A fixed evaluation instant so scoring is deterministic
"""

from __future__ import annotations

import copy
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from campus_health.config import SLAStatus
from campus_health.health.application import (
    CampusService,
    HealthSyncService,
    IAuditLogRepository,
    IBreachNotifier,
    ICampusRepository,
    IIssueRepository,
    ISLAPolicyProvider,
    IssueService,
    SLASweepService,
)
from campus_health.health.domain import (
    AuditLogEntry,
    Campus,
    HealthSummary,
    Issue,
    SLAPolicy,
)


NOW = datetime(2025, 1, 15, 12, 0, tzinfo=timezone.utc)


def hours_ago(hours: float, now: datetime = NOW) -> datetime:
    return now - timedelta(hours=hours)


def minutes_ago(minutes: float, now: datetime = NOW) -> datetime:
    return now - timedelta(minutes=minutes)


# -- In-memory repositories -------------------------------------------------


class InMemoryIssueRepository(IIssueRepository):
    """Stores copies so callers cannot mutate stored state behind its back."""

    def __init__(self) -> None:
        self.issues: dict[str, Issue] = {}
        self._next_id = 1

    async def get_by_id(self, issue_id: str) -> Optional[Issue]:
        issue = self.issues.get(issue_id)
        return copy.deepcopy(issue) if issue else None

    async def list_by_campus(self, campus_id: str) -> List[Issue]:
        return [copy.deepcopy(i) for i in self.issues.values() if i.campus_id == campus_id]

    async def list_all(self) -> List[Issue]:
        return [copy.deepcopy(i) for i in self.issues.values()]

    async def list_sweep_candidates(self, statuses: List[str]) -> List[Issue]:
        return [
            copy.deepcopy(i) for i in self.issues.values()
            if i.status_value in statuses
            and i.sla_status == SLAStatus.WITHIN_SLA
            and i.sla_deadline is not None
        ]

    async def create(self, issue: Issue) -> Issue:
        if not issue.id:
            issue.id = f"issue-{self._next_id}"
            self._next_id += 1
        self.issues[issue.id] = copy.deepcopy(issue)
        return issue

    async def update(self, issue: Issue) -> Issue:
        self.issues[issue.id] = copy.deepcopy(issue)
        return issue


class InMemoryCampusRepository(ICampusRepository):
    def __init__(self) -> None:
        self.campuses: dict[str, Campus] = {}
        self.save_calls: list[str] = []

    async def get_by_id(self, campus_id: str) -> Optional[Campus]:
        campus = self.campuses.get(campus_id)
        return copy.deepcopy(campus) if campus else None

    async def list_all(self) -> List[Campus]:
        return [copy.deepcopy(c) for c in sorted(self.campuses.values(), key=lambda c: c.name)]

    async def create(self, campus: Campus) -> Campus:
        self.campuses[campus.id] = copy.deepcopy(campus)
        return campus

    async def save_health_summary(
        self,
        campus_id: str,
        summary: HealthSummary,
        updated_at: datetime
    ) -> None:
        campus = self.campuses[campus_id]
        campus.health_summary = copy.deepcopy(summary)
        campus.last_health_update = updated_at
        self.save_calls.append(campus_id)


class InMemoryAuditLogRepository(IAuditLogRepository):
    def __init__(self) -> None:
        self.entries: list[AuditLogEntry] = []

    async def append(self, entry: AuditLogEntry) -> AuditLogEntry:
        entry.id = str(len(self.entries) + 1)
        self.entries.append(copy.deepcopy(entry))
        return entry

    async def list_for_issue(self, issue_id: str) -> List[AuditLogEntry]:
        return sorted(
            (copy.deepcopy(e) for e in self.entries if e.issue_id == issue_id),
            key=lambda e: e.timestamp
        )


class StaticPolicyProvider(ISLAPolicyProvider):
    def __init__(self, policy: Optional[SLAPolicy] = None) -> None:
        self.policy = policy or SLAPolicy()

    def get_policy(self) -> SLAPolicy:
        return self.policy


class RecordingNotifier(IBreachNotifier):
    def __init__(self) -> None:
        self.notified: list[str] = []

    async def notify_breach(self, issue: Issue) -> bool:
        self.notified.append(issue.id)
        return True


# -- Fixtures ---------------------------------------------------------------


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def issue_repo() -> InMemoryIssueRepository:
    return InMemoryIssueRepository()


@pytest.fixture
def campus_repo() -> InMemoryCampusRepository:
    repo = InMemoryCampusRepository()
    repo.campuses["north"] = Campus(id="north", name="North Campus")
    repo.campuses["south"] = Campus(id="south", name="South Campus")
    return repo


@pytest.fixture
def audit_repo() -> InMemoryAuditLogRepository:
    return InMemoryAuditLogRepository()


@pytest.fixture
def policy_provider() -> StaticPolicyProvider:
    return StaticPolicyProvider()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def sync_service(campus_repo, issue_repo) -> HealthSyncService:
    return HealthSyncService(campus_repo, issue_repo)


@pytest.fixture
def issue_service(issue_repo, campus_repo, audit_repo, policy_provider, sync_service) -> IssueService:
    return IssueService(issue_repo, campus_repo, audit_repo, policy_provider, sync_service)


@pytest.fixture
def sweep_service(issue_repo, audit_repo, policy_provider, sync_service, notifier) -> SLASweepService:
    return SLASweepService(issue_repo, audit_repo, policy_provider, sync_service, notifier=notifier)


@pytest.fixture
def campus_service(campus_repo, issue_repo, sync_service) -> CampusService:
    return CampusService(campus_repo, issue_repo, sync_service)
