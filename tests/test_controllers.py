"""API tests for the campus health routes.

Drives the real FastAPI app through httpx's ASGI transport with the
service dependencies overridden by in-memory fixtures. Lifespan is not
run, so no database, policy file or scheduler is needed.

Covers:
    - Issue creation returns the deadline and updates campus health
    - Status transitions, resolution, 400 / 404 / 409 mapping
    - External escalation with 403 for non-admins
    - Public transparency stats
    - Campus health recomputation and global stats
    - Manual SLA sweep
    - Audit trail and correlation id header
"""

from __future__ import annotations

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from campus_health.health.domain import Issue
from campus_health.health.interfaces import controllers
from campus_health.main import app


@pytest_asyncio.fixture
async def client(
    issue_service, campus_service, sweep_service, sync_service, policy_provider
) -> AsyncGenerator[AsyncClient, None]:
    app.dependency_overrides[controllers.get_issue_service] = lambda: issue_service
    app.dependency_overrides[controllers.get_campus_service] = lambda: campus_service
    app.dependency_overrides[controllers.get_sweep_service] = lambda: sweep_service
    app.dependency_overrides[controllers.get_sync_service] = lambda: sync_service
    app.dependency_overrides[controllers.get_policy_provider] = lambda: policy_provider

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _create(client: AsyncClient, severity: str = "high", campus_id: str = "north") -> str:
    response = await client.post(
        "/issues",
        json={"campus_id": campus_id, "title": "Water leak", "severity": severity},
        headers={"X-User-Role": "student"},
    )
    assert response.status_code == 201, response.text
    return response.json()["issue_id"]


class TestIssueRoutes:
    @pytest.mark.asyncio
    async def test_create_issue(self, client, campus_repo) -> None:
        response = await client.post(
            "/issues",
            json={"campus_id": "north", "title": "Water leak", "severity": "CRITICAL"},
        )

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        deadline = datetime.fromisoformat(body["sla_deadline"].replace("Z", "+00:00"))
        assert timedelta(minutes=59) < deadline - datetime.now(timezone.utc) <= timedelta(hours=1)
        assert campus_repo.campuses["north"].health_summary.score == 60

    @pytest.mark.asyncio
    async def test_create_issue_unknown_campus(self, client) -> None:
        response = await client.post("/issues", json={"campus_id": "nowhere", "title": "Leak"})

        assert response.status_code == 404
        assert "correlation_id" in response.json()

    @pytest.mark.asyncio
    async def test_create_issue_missing_title(self, client) -> None:
        response = await client.post("/issues", json={"campus_id": "north"})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_escalate_and_resolve(self, client, campus_repo) -> None:
        issue_id = await _create(client)

        response = await client.patch(
            f"/issues/{issue_id}/status",
            json={"status": "escalated"},
            headers={"X-User-Id": "warden-1", "X-User-Role": "admin"},
        )
        assert response.status_code == 200
        assert response.json()["status"] == "escalated"

        response = await client.patch(f"/issues/{issue_id}/resolve")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "resolved"
        assert body["sla_status"] == "met"
        assert body["resolved_at"] is not None

        response = await client.patch(f"/issues/{issue_id}/resolve")
        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_status_change_after_resolution_conflicts(self, client) -> None:
        issue_id = await _create(client)
        await client.patch(f"/issues/{issue_id}/resolve")

        response = await client.patch(f"/issues/{issue_id}/status", json={"status": "escalated"})

        assert response.status_code == 409
        assert response.json()["details"]["issue_id"] == issue_id

    @pytest.mark.asyncio
    async def test_external_escalation(self, client) -> None:
        issue_id = await _create(client)

        response = await client.post(
            f"/issues/{issue_id}/escalate",
            json={"level": "university"},
            headers={"X-User-Id": "admin-1", "X-User-Role": "admin"},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "escalated"
        assert body["escalation_status"] == "active"
        assert body["escalated_to"]["name"] == "University Senate"

        actions = [e["action"] for e in (await client.get(f"/issues/{issue_id}/audit-log")).json()]
        assert actions == ["ISSUE_CREATED", "EXTERNAL_ESCALATION"]

    @pytest.mark.asyncio
    async def test_external_escalation_defaults_to_district(self, client) -> None:
        issue_id = await _create(client)

        response = await client.post(f"/issues/{issue_id}/escalate", headers={"X-User-Role": "admin"})

        assert response.status_code == 200
        assert response.json()["escalation_level"] == "district"

    @pytest.mark.asyncio
    async def test_external_escalation_requires_admin(self, client) -> None:
        issue_id = await _create(client)

        response = await client.post(
            f"/issues/{issue_id}/escalate", json={"level": "district"}, headers={"X-User-Role": "staff"}
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_invalid_status(self, client) -> None:
        issue_id = await _create(client)

        response = await client.patch(f"/issues/{issue_id}/status", json={"status": "resolved"})

        assert response.status_code == 400
        assert response.json()["details"]["allowed"] == ["escalated", "actioned"]

    @pytest.mark.asyncio
    async def test_unknown_issue(self, client) -> None:
        response = await client.patch("/issues/missing/resolve")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_issues(self, client) -> None:
        await _create(client, campus_id="north")
        await _create(client, campus_id="south")

        all_issues = (await client.get("/issues")).json()["issues"]
        north = (await client.get("/issues", params={"campus_id": "north"})).json()["issues"]

        assert len(all_issues) == 2
        assert [i["campus_id"] for i in north] == ["north"]
        assert north[0]["is_aged"] is False

    @pytest.mark.asyncio
    async def test_audit_log(self, client) -> None:
        issue_id = await _create(client)
        await client.patch(f"/issues/{issue_id}/resolve", headers={"X-User-Id": "tech-2"})

        response = await client.get(f"/issues/{issue_id}/audit-log")

        assert response.status_code == 200
        entries = response.json()
        assert [e["action"] for e in entries] == ["ISSUE_CREATED", "ISSUE_RESOLVED"]
        assert entries[0]["actor_role"] == "student"
        assert entries[1]["actor_id"] == "tech-2"


class TestCampusRoutes:
    @pytest.mark.asyncio
    async def test_campus_health(self, client) -> None:
        await _create(client, severity="low")

        response = await client.get("/campuses/north/health")

        assert response.status_code == 200
        body = response.json()
        assert body["previous_score"] == 99
        assert body["current_health"]["score"] == 99
        assert body["current_health"]["trend"] == "stable"
        assert body["restoration_half_life_minutes"] == 10

    @pytest.mark.asyncio
    async def test_campus_health_unknown(self, client) -> None:
        response = await client.get("/campuses/nowhere/health")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_and_create_campuses(self, client) -> None:
        response = await client.post("/campuses", json={"name": "East Campus"})
        assert response.status_code == 201

        names = [c["name"] for c in (await client.get("/campuses")).json()]
        assert names == ["East Campus", "North Campus", "South Campus"]

    @pytest.mark.asyncio
    async def test_global_stats(self, client) -> None:
        await _create(client, severity="medium")

        body = (await client.get("/stats/global")).json()

        assert body["total_campuses"] == 2
        assert body["total_issues"] == 1
        assert body["resolution_rate"] == 0
        assert body["global_health"] == 98

    @pytest.mark.asyncio
    async def test_global_stats_recent_activity(self, client) -> None:
        first = await _create(client, campus_id="north")
        second = await _create(client, campus_id="south")

        activity = (await client.get("/stats/global")).json()["recent_activity"]

        assert {a["id"] for a in activity} == {first, second}
        assert {a["campus_id"] for a in activity} == {"north", "south"}

    @pytest.mark.asyncio
    async def test_public_stats(self, client) -> None:
        await _create(client, severity="low")

        response = await client.get("/public/stats/north")

        assert response.status_code == 200
        body = response.json()
        assert body["campus"]["name"] == "North Campus"
        assert body["transparency_score"] == 99
        assert body["total_issues_logged"] == 1
        assert body["disclaimer"] == "Public transparency record. Personal data removed."
        assert len(body["recent_activity"][0]["id"]) <= 8

    @pytest.mark.asyncio
    async def test_public_stats_unknown(self, client) -> None:
        response = await client.get("/public/stats/nowhere")

        assert response.status_code == 404


class TestAdminRoutes:
    @pytest.mark.asyncio
    async def test_manual_sla_check(self, client, issue_repo) -> None:
        now = datetime.now(timezone.utc)
        issue_repo.issues["late"] = Issue(
            id="late",
            campus_id="south",
            severity="critical",
            status="open",
            created_at=now - timedelta(hours=3),
            sla_deadline=now - timedelta(hours=2),
            sla_status="within_sla",
        )

        response = await client.post("/admin/sla-check")

        assert response.status_code == 200
        body = response.json()
        assert body["breached"] == 1
        assert body["campuses_synced"] == ["south"]
        assert issue_repo.issues["late"].status == "escalated"


class TestServiceRoutes:
    @pytest.mark.asyncio
    async def test_health_check(self, client) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    @pytest.mark.asyncio
    async def test_correlation_id_echoed(self, client) -> None:
        response = await client.get("/issues", headers={"X-Correlation-ID": "abc-123"})

        assert response.headers["X-Correlation-ID"] == "abc-123"
