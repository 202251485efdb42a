"""HTTP tests for the groups router using dependency overrides."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from api import app
from app.groups.dependencies import (
    get_attendance_service,
    get_lifecycle_service,
    require_claims,
)
from app.groups.errors import StoreError


@pytest.fixture
def acting_user():
    return {"id": "alice"}


@pytest.fixture
def client(lifecycle, attendance, acting_user):
    app.dependency_overrides[get_lifecycle_service] = lambda: lifecycle
    app.dependency_overrides[get_attendance_service] = lambda: attendance
    app.dependency_overrides[require_claims] = lambda: {
        "sub": acting_user["id"],
        "name": acting_user["id"].title(),
    }
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create_group(client, **overrides):
    body = {"name": "Friday Night Gloomhaven", "gameDays": ["Friday"], "time": "18:30"}
    body.update(overrides)
    response = client.post("/api/v1/groups", json=body)
    assert response.status_code == 201, response.text
    return response.json()


class TestGroupRoutes:
    def test_create_and_get_by_invite_code(self, client):
        created = _create_group(client, frequency="biweekly")

        response = client.get(f"/api/v1/groups/{created['invite_code'].lower()}")

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["group"]["id"] == created["group_id"]
        assert body["group"]["frequency"] == "biweekly"
        assert body["is_admin"] is True

    def test_create_rejects_blank_name(self, client):
        response = client.post(
            "/api/v1/groups", json={"name": " ", "gameDays": ["Friday"], "time": "18:30"}
        )

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_GROUP_NAME"

    def test_unknown_group_is_404(self, client):
        response = client.get("/api/v1/groups/ZZZZZZ")

        assert response.status_code == 404
        assert response.json()["detail"] == {"message": "Invalid invite code.", "code": "GROUP_NOT_FOUND"}

    def test_join_then_member_cannot_remove_admin(self, client, acting_user):
        created = _create_group(client)
        acting_user["id"] = "bob"

        joined = client.post(f"/api/v1/groups/{created['invite_code']}/join")
        removed = client.delete(f"/api/v1/groups/{created['group_id']}/members/alice")

        assert joined.json()["already_member"] is False
        assert removed.status_code == 403
        assert removed.json()["detail"]["code"] == "NOT_ADMIN"

    def test_admin_actions(self, client, acting_user):
        created = _create_group(client)
        group_id = created["group_id"]
        acting_user["id"] = "bob"
        client.post(f"/api/v1/groups/{group_id}/join")
        acting_user["id"] = "alice"

        patched = client.patch(f"/api/v1/groups/{group_id}", json={"gameDays": ["Saturday"]})
        code = client.post(f"/api/v1/groups/{group_id}/invite-code")
        transferred = client.post(f"/api/v1/groups/{group_id}/admin", json={"newAdminId": "bob"})
        members = client.get(f"/api/v1/groups/{group_id}/members")

        assert patched.json()["schedule_changed"] is True
        assert code.json()["invite_code"] != created["invite_code"]
        assert transferred.status_code == 200
        assert [m["user_id"] for m in members.json()["members"]] == ["bob", "alice"]
        assert [m["name"] for m in members.json()["members"]] == ["Bob", "Alice"]

    def test_leave_and_delete(self, client, acting_user):
        first = _create_group(client)
        second = _create_group(client, name="Second Table")

        left = client.post(f"/api/v1/groups/{first['group_id']}/leave")
        deleted = client.delete(f"/api/v1/groups/{second['group_id']}")
        mine = client.get("/api/v1/groups")

        assert left.json()["group_deleted"] is True
        assert deleted.status_code == 200
        assert mine.json()["groups"] == []


class TestProfileRoutes:
    def test_token_name_seeds_profile_until_user_sets_one(self, client, acting_user):
        created = _create_group(client)

        seeded = client.get("/api/v1/me/profile")
        updated = client.put("/api/v1/me/profile", json={"name": "Ali", "photo": "https://example.com/a.png"})
        acting_user["id"] = "bob"
        client.post(f"/api/v1/groups/{created['group_id']}/join")
        acting_user["id"] = "alice"
        client.post(f"/api/v1/groups/{created['group_id']}/join")
        members = client.get(f"/api/v1/groups/{created['group_id']}/members").json()["members"]

        assert seeded.json()["profile"]["name"] == "Alice"
        assert updated.json()["profile"] == {
            "user_id": "alice",
            "name": "Ali",
            "photo": "https://example.com/a.png",
        }
        assert [(m["user_id"], m["name"]) for m in members] == [("alice", "Ali"), ("bob", "Bob")]

    def test_blank_name_is_422(self, client):
        response = client.put("/api/v1/me/profile", json={"name": "  "})

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_PROFILE"


class TestOccurrenceRoutes:
    def test_respond_host_and_list(self, client, acting_user):
        created = _create_group(client)
        upcoming = client.get(f"/api/v1/groups/{created['group_id']}/occurrences").json()
        occ_id = upcoming["occurrences"][0]["id"]

        responded = client.put(f"/api/v1/occurrences/{occ_id}/response", json={"status": "going"})
        hosted = client.post(f"/api/v1/occurrences/{occ_id}/host", json={"name": "Alice"})
        again = client.post(f"/api/v1/occurrences/{occ_id}/host", json={"name": "Alice"})
        listed = client.get(f"/api/v1/occurrences/{occ_id}/responses")

        assert responded.status_code == 200
        assert hosted.json()["occurrence"]["host"]["user_id"] == "alice"
        assert again.status_code == 409
        assert again.json()["detail"]["code"] == "ALREADY_HOSTED"
        assert listed.json()["capacity"]["message"] == "need 3 more to play"

    def test_invalid_status_is_422(self, client):
        created = _create_group(client)
        occ_id = f"{created['group_id']}_2026-03-06"

        response = client.put(f"/api/v1/occurrences/{occ_id}/response", json={"status": "yes"})

        assert response.status_code == 422
        assert response.json()["detail"]["code"] == "INVALID_STATUS"


class TestInfrastructure:
    def test_store_errors_are_503(self, client):
        failing = MagicMock()
        failing.list_user_groups = AsyncMock(side_effect=StoreError())
        app.dependency_overrides[get_lifecycle_service] = lambda: failing

        response = client.get("/api/v1/groups")

        assert response.status_code == 503
        assert response.json()["detail"]["code"] == "STORE_ERROR"

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["data"]["status"] == "ok"
