"""Tests for the issue lifecycle: creation, transitions, resolution.

Every mutation must append an audit entry and re-sync the campus health.

Covers:
    - Creation derives the SLA deadline and drops the campus score
    - Unknown campus -> ResourceNotFoundException
    - Manual transitions only to escalated / actioned
    - Resolution records the final SLA status and decays the penalty
    - Resolving twice -> DomainException, resolved_at untouched
    - Status changes on a resolved issue -> DomainException
    - External escalation: admins only, authority recorded, district fallback
    - Listing is newest first with age and aged flag
    - Audit trail per issue
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from campus_health.config import AuditAction, IssueStatus, SLAStatus
from campus_health.core import (
    DomainException, PermissionDeniedException, ResourceNotFoundException, ValidationException
)
from campus_health.health.application import IssueCreateRequest

from conftest import NOW


def _request(severity: str = "high", campus_id: str = "north") -> IssueCreateRequest:
    return IssueCreateRequest(
        campus_id=campus_id,
        title="Power outage in block C",
        description="No power since morning",
        severity=severity,
        user_id="user-7",
    )


class TestCreateIssue:
    @pytest.mark.asyncio
    async def test_creates_with_deadline_and_syncs(self, issue_service, issue_repo, campus_repo, audit_repo) -> None:
        issue = await issue_service.create_issue(_request("high"), actor_role="student", now=NOW)

        assert issue.id in issue_repo.issues
        assert issue.sla_deadline == NOW + timedelta(hours=4)
        assert issue.sla_status == SLAStatus.WITHIN_SLA
        assert issue.status == IssueStatus.OPEN
        assert issue.timeline[0]["status"] == "CREATED"

        assert campus_repo.save_calls == ["north"]
        assert campus_repo.campuses["north"].health_summary.total_issues == 1

        entry = audit_repo.entries[0]
        assert entry.action == AuditAction.ISSUE_CREATED
        assert entry.actor_id == "user-7"
        assert entry.actor_role == "student"

    def test_unknown_severity_becomes_medium(self) -> None:
        assert _request("catastrophic").severity == "medium"
        assert _request("CRITICAL").severity == "critical"

    @pytest.mark.asyncio
    async def test_unknown_campus(self, issue_service, issue_repo) -> None:
        with pytest.raises(ResourceNotFoundException):
            await issue_service.create_issue(_request(campus_id="nowhere"), now=NOW)
        assert issue_repo.issues == {}


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_escalate(self, issue_service, issue_repo, audit_repo, campus_repo) -> None:
        issue = await issue_service.create_issue(_request(), now=NOW)

        updated = await issue_service.update_status(
            issue.id, "Escalated", actor_id="warden-1", actor_role="admin", now=NOW
        )

        assert updated.status == IssueStatus.ESCALATED
        assert issue_repo.issues[issue.id].status == IssueStatus.ESCALATED
        assert updated.timeline[-1]["message"] == "Issue escalated to senior management."

        entry = audit_repo.entries[-1]
        assert entry.action == AuditAction.STATUS_UPDATED
        assert entry.previous_state == {"status": "open"}
        assert entry.new_state["status"] == "escalated"
        assert campus_repo.save_calls == ["north", "north"]

    @pytest.mark.asyncio
    async def test_action_with_message(self, issue_service) -> None:
        issue = await issue_service.create_issue(_request(), now=NOW)

        updated = await issue_service.update_status(issue.id, "actioned", "Electrician on site", now=NOW)

        assert updated.status == IssueStatus.ACTIONED
        assert updated.timeline[-1]["message"] == "Electrician on site"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("target", ["resolved", "open", "closed", ""])
    async def test_invalid_target(self, issue_service, target: str) -> None:
        issue = await issue_service.create_issue(_request(), now=NOW)

        with pytest.raises(ValidationException):
            await issue_service.update_status(issue.id, target, now=NOW)

    @pytest.mark.asyncio
    async def test_resolved_issue_cannot_change_status(self, issue_service, issue_repo, audit_repo) -> None:
        issue = await issue_service.create_issue(_request("high"), now=NOW)
        await issue_service.resolve_issue(issue.id, now=NOW + timedelta(hours=1))

        with pytest.raises(DomainException):
            await issue_service.update_status(issue.id, "escalated", now=NOW + timedelta(hours=2))

        stored = issue_repo.issues[issue.id]
        assert stored.status == IssueStatus.RESOLVED
        assert stored.resolved_at == NOW + timedelta(hours=1)
        assert audit_repo.entries[-1].action == AuditAction.ISSUE_RESOLVED

    @pytest.mark.asyncio
    async def test_unknown_issue(self, issue_service) -> None:
        with pytest.raises(ResourceNotFoundException):
            await issue_service.update_status("missing", "escalated", now=NOW)


class TestResolveIssue:
    @pytest.mark.asyncio
    async def test_resolve_within_deadline(self, issue_service, issue_repo, campus_repo, audit_repo) -> None:
        issue = await issue_service.create_issue(_request("critical"), now=NOW)
        resolved_at = NOW + timedelta(minutes=30)

        resolved = await issue_service.resolve_issue(issue.id, actor_id="tech-1", now=resolved_at)

        assert resolved.status == IssueStatus.RESOLVED
        assert resolved.resolved_at == resolved_at
        assert resolved.sla_status == SLAStatus.MET
        # Penalty at resolution is 40, undecayed at the instant of resolution
        assert campus_repo.campuses["north"].health_summary.score == 60
        assert audit_repo.entries[-1].action == AuditAction.ISSUE_RESOLVED
        assert audit_repo.entries[-1].new_state == {"status": "resolved", "sla_status": "met"}

    @pytest.mark.asyncio
    async def test_resolve_after_deadline_is_breached(self, issue_service) -> None:
        issue = await issue_service.create_issue(_request("critical"), now=NOW)

        resolved = await issue_service.resolve_issue(issue.id, now=NOW + timedelta(hours=2))

        assert resolved.sla_status == SLAStatus.BREACHED

    @pytest.mark.asyncio
    async def test_resolve_twice_is_rejected(self, issue_service, issue_repo) -> None:
        issue = await issue_service.create_issue(_request("low"), now=NOW)
        await issue_service.resolve_issue(issue.id, now=NOW + timedelta(hours=1))

        with pytest.raises(DomainException):
            await issue_service.resolve_issue(issue.id, now=NOW + timedelta(hours=5))

        assert issue_repo.issues[issue.id].resolved_at == NOW + timedelta(hours=1)

    @pytest.mark.asyncio
    async def test_resolve_unknown(self, issue_service) -> None:
        with pytest.raises(ResourceNotFoundException):
            await issue_service.resolve_issue("missing", now=NOW)


class TestEscalateExternal:
    @pytest.mark.asyncio
    async def test_admin_escalates_to_university(self, issue_service, issue_repo, audit_repo, campus_repo) -> None:
        issue = await issue_service.create_issue(_request(), now=NOW)
        escalated_at = NOW + timedelta(minutes=20)

        escalated = await issue_service.escalate_external(
            issue.id, "University", actor_id="admin-1", actor_role="admin", now=escalated_at
        )

        stored = issue_repo.issues[issue.id]
        assert stored.status == IssueStatus.ESCALATED
        assert stored.escalation_status == "active"
        assert stored.escalation_level == "university"
        assert stored.escalated_to["name"] == "University Senate"
        assert stored.escalated_at == escalated_at
        assert escalated.timeline[-1]["message"] == "Official notice forwarded to University Senate"

        entry = audit_repo.entries[-1]
        assert entry.action == AuditAction.EXTERNAL_ESCALATION
        assert entry.actor_id == "admin-1"
        assert entry.previous_state == {"status": "open"}
        assert entry.new_state["escalation_level"] == "university"
        assert campus_repo.save_calls == ["north", "north"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("level", [None, "", "parliament"])
    async def test_unknown_level_falls_back_to_district(self, issue_service, level) -> None:
        issue = await issue_service.create_issue(_request(), now=NOW)

        escalated = await issue_service.escalate_external(issue.id, level, actor_role="admin", now=NOW)

        assert escalated.escalation_level == "district"
        assert escalated.escalated_to["name"] == "District Education Officer"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", ["staff", "student", "Admin"])
    async def test_only_admins_can_escalate(self, issue_service, issue_repo, audit_repo, role) -> None:
        issue = await issue_service.create_issue(_request(), now=NOW)

        with pytest.raises(PermissionDeniedException):
            await issue_service.escalate_external(issue.id, actor_role=role, now=NOW)

        assert issue_repo.issues[issue.id].status == IssueStatus.OPEN
        assert issue_repo.issues[issue.id].escalation_status is None
        assert [e.action for e in audit_repo.entries] == [AuditAction.ISSUE_CREATED]

    @pytest.mark.asyncio
    async def test_resolved_issue_cannot_be_escalated(self, issue_service, issue_repo) -> None:
        issue = await issue_service.create_issue(_request(), now=NOW)
        await issue_service.resolve_issue(issue.id, now=NOW + timedelta(hours=1))

        with pytest.raises(DomainException):
            await issue_service.escalate_external(issue.id, actor_role="admin", now=NOW + timedelta(hours=2))

        assert issue_repo.issues[issue.id].escalation_status is None

    @pytest.mark.asyncio
    async def test_unknown_issue(self, issue_service) -> None:
        with pytest.raises(ResourceNotFoundException):
            await issue_service.escalate_external("missing", actor_role="admin", now=NOW)


class TestListingAndAudit:
    @pytest.mark.asyncio
    async def test_list_newest_first_with_age(self, issue_service) -> None:
        old = await issue_service.create_issue(_request("low"), now=NOW - timedelta(days=9))
        new = await issue_service.create_issue(_request("low", campus_id="south"), now=NOW)

        listed = await issue_service.list_issues(now=NOW)

        assert [i.id for i in listed] == [new.id, old.id]
        assert listed[1].age_in_days == 9
        assert listed[1].is_aged is True
        assert listed[0].is_aged is False

        north_only = await issue_service.list_issues("north", now=NOW)
        assert [i.id for i in north_only] == [old.id]

    @pytest.mark.asyncio
    async def test_audit_trail(self, issue_service) -> None:
        issue = await issue_service.create_issue(_request(), now=NOW)
        await issue_service.update_status(issue.id, "actioned", now=NOW + timedelta(minutes=5))
        await issue_service.resolve_issue(issue.id, now=NOW + timedelta(minutes=10))

        trail = await issue_service.get_audit_trail(issue.id)

        assert [e.action for e in trail] == [
            AuditAction.ISSUE_CREATED,
            AuditAction.STATUS_UPDATED,
            AuditAction.ISSUE_RESOLVED,
        ]

    @pytest.mark.asyncio
    async def test_audit_trail_unknown_issue(self, issue_service) -> None:
        with pytest.raises(ResourceNotFoundException):
            await issue_service.get_audit_trail("missing")
