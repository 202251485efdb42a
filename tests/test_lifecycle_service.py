"""Tests for GroupLifecycleService result handling."""

import pytest
from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

from app.groups.errors import StoreError
from app.groups.services.lifecycle_service import GroupLifecycleService
from app.groups.store.collections import GROUPS


async def _create(lifecycle, creator_id="alice", **overrides):
    params = {
        "name": "Thursday Night Catan",
        "game_days": ["Thursday"],
        "time": "19:00",
        "frequency": "weekly",
        "timezone": "America/Chicago",
    }
    params.update(overrides)
    result = await lifecycle.create_group(creator_id, **params)
    assert result["success"], result
    return result


class TestCreateGroup:
    @pytest.mark.asyncio
    async def test_returns_ids_and_count(self, lifecycle, store):
        result = await _create(lifecycle)

        assert result["occurrence_count"] == 8
        assert len(result["invite_code"]) == 6
        group = await store.get_group(result["group_id"])
        assert group.name == "Thursday Night Catan"
        assert group.timezone == "America/Chicago"

    @pytest.mark.asyncio
    async def test_name_is_trimmed(self, lifecycle, store):
        result = await _create(lifecycle, name="  Pandemic Fridays  ")

        assert (await store.get_group(result["group_id"])).name == "Pandemic Fridays"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   ", None, "x" * 81])
    async def test_rejects_bad_name_before_store_access(self, lifecycle, backend, name):
        result = await lifecycle.create_group("alice", name, ["Friday"], "19:00")

        assert result["success"] is False
        assert result["code"] == "INVALID_GROUP_NAME"
        assert backend.count(GROUPS) == 0

    @pytest.mark.asyncio
    async def test_rejects_bad_schedule(self, lifecycle, backend):
        result = await lifecycle.create_group("alice", "Game Night", [], "19:00")

        assert result == {
            "success": False,
            "error": "Please choose at least one game day.",
            "code": "INVALID_SCHEDULE",
        }
        assert backend.count(GROUPS) == 0

    @pytest.mark.asyncio
    async def test_skips_game_already_started_today(self, lifecycle, store):
        # the clock reads Monday 12:00
        result = await _create(lifecycle, game_days=["Monday"], time="10:00")

        occurrences = await store.list_occurrences(result["group_id"])

        assert result["occurrence_count"] == 7
        assert occurrences[0].date == "2026-03-09"

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self, scheduler):
        store = MagicMock()
        store.local_now.return_value = datetime(2026, 3, 2, 12, 0)
        store.create_group_atomic = AsyncMock(side_effect=StoreError())
        lifecycle = GroupLifecycleService(store=store, scheduler=scheduler)

        with pytest.raises(StoreError):
            await lifecycle.create_group("alice", "Game Night", ["Friday"], "19:00")


class TestJoinGroup:
    @pytest.mark.asyncio
    async def test_join_by_invite_code_any_case(self, lifecycle):
        created = await _create(lifecycle)

        result = await lifecycle.join_group("bob", created["invite_code"].lower())

        assert result["success"] is True
        assert result["group_id"] == created["group_id"]
        assert result["already_member"] is False

    @pytest.mark.asyncio
    async def test_join_twice_is_success(self, lifecycle, store):
        created = await _create(lifecycle)
        await lifecycle.join_group("bob", created["group_id"])

        result = await lifecycle.join_group("bob", created["group_id"])

        assert result["success"] is True
        assert result["already_member"] is True
        assert (await store.get_group(created["group_id"])).member_count == 2

    @pytest.mark.asyncio
    async def test_unknown_invite_code(self, lifecycle):
        result = await lifecycle.join_group("bob", "ZZZZZZ")

        assert result["success"] is False
        assert result["code"] == "GROUP_NOT_FOUND"
        assert result["error"] == "Invalid invite code."

    @pytest.mark.asyncio
    async def test_unknown_group_id(self, lifecycle):
        result = await lifecycle.join_group("bob", "65f1c2a9e4b0a1b2c3d4e5f6")

        assert result["code"] == "GROUP_NOT_FOUND"
        assert result["error"] == "Group not found."


class TestLeaveAndAdmin:
    @pytest.mark.asyncio
    async def test_solo_admin_leave_deletes_group(self, lifecycle):
        created = await _create(lifecycle)

        left = await lifecycle.leave_group("alice", created["group_id"])
        rejoin = await lifecycle.join_group("bob", created["group_id"])

        assert left == {
            "success": True,
            "was_admin": True,
            "new_admin_id": None,
            "new_admin_name": None,
            "group_deleted": True,
        }
        assert rejoin["code"] == "GROUP_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_admin_leave_hands_over(self, lifecycle, clock):
        created = await _create(lifecycle)
        clock.tick()
        await lifecycle.join_group("bob", created["group_id"])

        result = await lifecycle.leave_group("alice", created["invite_code"])

        assert result["new_admin_id"] == "bob"
        assert result["new_admin_name"] is None
        assert result["group_deleted"] is False

    @pytest.mark.asyncio
    async def test_admin_leave_names_successor(self, lifecycle, clock):
        created = await _create(lifecycle)
        clock.tick()
        await lifecycle.join_group("bob", created["group_id"])
        await lifecycle.update_profile("bob", "Bob Baker")

        result = await lifecycle.leave_group("alice", created["group_id"])

        assert (result["new_admin_id"], result["new_admin_name"]) == ("bob", "Bob Baker")

    @pytest.mark.asyncio
    async def test_member_cannot_remove(self, lifecycle):
        created = await _create(lifecycle)
        await lifecycle.join_group("bob", created["group_id"])

        result = await lifecycle.remove_member("bob", created["group_id"], "alice")

        assert result["success"] is False
        assert result["code"] == "NOT_ADMIN"

    @pytest.mark.asyncio
    async def test_admin_removes_and_transfers(self, lifecycle, store):
        created = await _create(lifecycle)
        group_id = created["group_id"]
        await lifecycle.join_group("bob", group_id)
        await lifecycle.join_group("carol", group_id)

        removed = await lifecycle.remove_member("alice", group_id, "carol")
        transferred = await lifecycle.transfer_admin("alice", group_id, "bob")

        assert removed["success"] and transferred["success"]
        group = await store.get_group(group_id)
        assert (group.admin_id, group.member_count) == ("bob", 2)

    @pytest.mark.asyncio
    async def test_delete_group(self, lifecycle, store):
        created = await _create(lifecycle)

        result = await lifecycle.delete_group("alice", created["group_id"])

        assert result["success"] is True
        assert await store.get_group(created["group_id"]) is None


class TestSettings:
    @pytest.mark.asyncio
    async def test_partial_schedule_update_keeps_other_fields(self, lifecycle):
        created = await _create(lifecycle)

        result = await lifecycle.update_settings("alice", created["group_id"], time="20:00")

        assert result["success"] is True
        assert result["schedule_changed"] is True
        assert result["occurrence_count"] == 8
        assert result["group"]["time"] == "20:00"
        assert result["group"]["game_days"] == ["Thursday"]

    @pytest.mark.asyncio
    async def test_rename_only(self, lifecycle):
        created = await _create(lifecycle)

        result = await lifecycle.update_settings("alice", created["group_id"], name="Wingspan Club")

        assert result["schedule_changed"] is False
        assert result["group"]["name"] == "Wingspan Club"

    @pytest.mark.asyncio
    async def test_rejects_blank_name(self, lifecycle):
        created = await _create(lifecycle)

        result = await lifecycle.update_settings("alice", created["group_id"], name=" ")

        assert result["code"] == "INVALID_GROUP_NAME"

    @pytest.mark.asyncio
    async def test_member_cannot_update(self, lifecycle):
        created = await _create(lifecycle)
        await lifecycle.join_group("bob", created["group_id"])

        result = await lifecycle.update_settings("bob", created["group_id"], frequency="monthly")

        assert result["code"] == "NOT_ADMIN"

    @pytest.mark.asyncio
    async def test_regenerate_invite_code(self, lifecycle):
        created = await _create(lifecycle)

        result = await lifecycle.regenerate_invite_code("alice", created["group_id"])
        old = await lifecycle.get_group(created["invite_code"])
        new = await lifecycle.get_group(result["invite_code"])

        assert result["success"] is True
        assert result["invite_code"] != created["invite_code"]
        assert old["code"] == "GROUP_NOT_FOUND"
        assert new["group"]["id"] == created["group_id"]


class TestViews:
    @pytest.mark.asyncio
    async def test_get_group_viewer_flags(self, lifecycle):
        created = await _create(lifecycle)
        await lifecycle.join_group("bob", created["group_id"])

        as_admin = await lifecycle.get_group(created["group_id"], viewer_id="alice")
        as_member = await lifecycle.get_group(created["group_id"], viewer_id="bob")
        as_stranger = await lifecycle.get_group(created["invite_code"], viewer_id="mallory")

        assert (as_admin["is_admin"], as_admin["is_member"]) == (True, True)
        assert (as_member["is_admin"], as_member["is_member"]) == (False, True)
        assert (as_stranger["is_admin"], as_stranger["is_member"]) == (False, False)
        assert as_admin["group"]["schedule"] == "Thursdays at 7:00 PM (weekly)"

    @pytest.mark.asyncio
    async def test_list_members_and_user_groups(self, lifecycle, clock):
        created = await _create(lifecycle)
        clock.tick()
        await lifecycle.join_group("bob", created["group_id"])

        members = await lifecycle.list_members(created["group_id"])
        groups = await lifecycle.list_user_groups("bob")

        assert [m["user_id"] for m in members["members"]] == ["alice", "bob"]
        assert [m["name"] for m in members["members"]] == [None, None]
        assert members["members"][0]["is_admin"] is True
        assert [g["id"] for g in groups["groups"]] == [created["group_id"]]
        assert groups["groups"][0]["is_admin"] is False

    @pytest.mark.asyncio
    async def test_list_upcoming_with_responses(self, lifecycle, attendance):
        created = await _create(lifecycle)
        await lifecycle.join_group("bob", created["group_id"])
        first_id = f"{created['group_id']}_2026-03-05"
        await attendance.respond(first_id, "alice", "going")
        await attendance.respond(first_id, "bob", "maybe")

        result = await lifecycle.list_upcoming(created["group_id"], "bob")

        occurrences = result["occurrences"]
        assert len(occurrences) == 8
        first = occurrences[0]
        assert first["id"] == first_id
        assert first["my_response"] == "maybe"
        assert [r["user_id"] for r in first["responses"]] == ["alice", "bob"]
        assert first["capacity"]["message"] == "need 3 more to play"
        assert first["capacity"]["summary"] == "1 going, 1 maybe"
        assert occurrences[1]["responses"] == []
        assert occurrences[1]["host"] is None

    @pytest.mark.asyncio
    async def test_members_and_responses_carry_profile_names(self, lifecycle, attendance, clock):
        created = await _create(lifecycle)
        clock.tick()
        await lifecycle.join_group("bob", created["group_id"])
        await lifecycle.update_profile("alice", "Alice Adams", "https://example.com/alice.png")
        await lifecycle.remember_user("bob", "Bob from token")
        first_id = f"{created['group_id']}_2026-03-05"
        await attendance.respond(first_id, "bob", "going")

        members = await lifecycle.list_members(created["group_id"])
        upcoming = await lifecycle.list_upcoming(created["group_id"], "alice")

        assert [(m["name"], m["photo"]) for m in members["members"]] == [
            ("Alice Adams", "https://example.com/alice.png"),
            ("Bob from token", None),
        ]
        assert upcoming["occurrences"][0]["responses"][0]["name"] == "Bob from token"

    @pytest.mark.asyncio
    async def test_list_upcoming_requires_membership(self, lifecycle):
        created = await _create(lifecycle)

        result = await lifecycle.list_upcoming(created["group_id"], "mallory")

        assert result["code"] == "NOT_GROUP_MEMBER"


class TestProfiles:
    @pytest.mark.asyncio
    async def test_update_profile_trims(self, lifecycle):
        result = await lifecycle.update_profile("alice", "  Alice  ", "  ")

        assert result == {
            "success": True,
            "profile": {"user_id": "alice", "name": "Alice", "photo": None},
        }

    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["", "   ", None, "x" * 81])
    async def test_update_profile_rejects_bad_name(self, lifecycle, name):
        result = await lifecycle.update_profile("alice", name)

        assert result["code"] == "INVALID_PROFILE"

    @pytest.mark.asyncio
    async def test_remember_user_never_overwrites(self, lifecycle):
        await lifecycle.update_profile("alice", "Ali")

        await lifecycle.remember_user("alice", "Alice Token", "https://example.com/a.png")
        result = await lifecycle.get_profile("alice")

        assert result["profile"]["name"] == "Ali"

    @pytest.mark.asyncio
    async def test_remember_user_without_name_stores_nothing(self, lifecycle):
        await lifecycle.remember_user("alice", None)

        assert (await lifecycle.get_profile("alice"))["profile"] is None
