"""
Group Lifecycle Service.

Named use-cases over the membership store: create, join, leave, admin
actions, settings and the read views. Every method returns a result dict
(``{"success": True, ...}`` or ``{"success": False, "error", "code"}``);
only store failures are raised.
"""

import logging
from collections import defaultdict
from typing import Any, Dict, List, Optional

from common.utils import returns_result

from app.groups.errors import (
    AlreadyMemberError,
    DomainError,
    GroupNotFoundError,
    InvalidGroupNameError,
    InvalidProfileError,
    NotGroupMemberError,
)
from app.groups.models import Group, Membership, UserProfile
from app.groups.services.attendance_service import (
    capacity_hint,
    format_occurrence,
    format_response,
    sort_responses,
)
from app.groups.services.invite_code import looks_like_invite_code, normalize
from app.groups.services.scheduler import OccurrenceScheduler, ScheduleSpec, describe
from app.groups.store.membership_store import MembershipStore

logger = logging.getLogger(__name__)

MAX_GROUP_NAME_LENGTH = 80
MAX_PROFILE_NAME_LENGTH = 80
DEFAULT_TIMEZONE = "America/New_York"


def validate_group_name(name: Optional[str]) -> str:
    """
    Raises:
        InvalidGroupNameError: blank or longer than MAX_GROUP_NAME_LENGTH
    """
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidGroupNameError()
    if len(cleaned) > MAX_GROUP_NAME_LENGTH:
        raise InvalidGroupNameError(
            f"Group name must be {MAX_GROUP_NAME_LENGTH} characters or fewer."
        )
    return cleaned


def format_group(group: Group) -> Dict[str, Any]:
    schedule = ScheduleSpec(
        weekdays=tuple(group.game_days), time=group.time, frequency=group.frequency
    )
    return {
        "id": group.id,
        "name": group.name,
        "game_days": group.game_days,
        "time": group.time,
        "timezone": group.timezone,
        "frequency": group.frequency,
        "schedule": describe(schedule),
        "invite_code": group.invite_code,
        "admin_id": group.admin_id,
        "member_count": group.member_count,
        "created_at": group.created_at,
        "updated_at": group.updated_at,
    }


def format_member(member: Membership, profile: Optional[UserProfile] = None) -> Dict[str, Any]:
    return {
        "user_id": member.user_id,
        "name": profile.name if profile else None,
        "photo": profile.photo if profile else None,
        "is_admin": member.is_admin,
        "joined_at": member.joined_at,
    }


class GroupLifecycleService:
    """
    Orchestrates group use-cases.

    Args:
        store: Membership store (all mutations are atomic there)
        scheduler: Occurrence generator used when a group is created
    """

    def __init__(self, store: MembershipStore, scheduler: OccurrenceScheduler):
        self._store = store
        self._scheduler = scheduler

    async def _resolve(self, group_ref: str) -> Group:
        """Look a group up by id, then by invite code."""
        ref = (group_ref or "").strip()
        if ref:
            group = await self._store.get_group(ref)
            if group:
                return group
        if looks_like_invite_code(ref):
            group = await self._store.find_group_by_invite_code(normalize(ref))
            if group:
                return group
            raise GroupNotFoundError("Invalid invite code.")
        raise GroupNotFoundError()

    # ─────────────────────────────────────────────────────────────
    # Lifecycle
    # ─────────────────────────────────────────────────────────────

    @returns_result(DomainError)
    async def create_group(
        self,
        creator_id: str,
        name: Optional[str],
        game_days: Optional[List[str]],
        time: Optional[str],
        frequency: Optional[str] = "weekly",
        timezone: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Create a group with the creator as admin and seed its occurrences.

        Args:
            creator_id: Acting user, becomes admin
            name: Display name
            game_days: Weekday names
            time: 24-hour ``HH:MM``
            frequency: weekly, biweekly or monthly
            timezone: IANA zone name, stored for display

        Returns:
            Result with ``group_id``, ``invite_code`` and ``occurrence_count``
        """
        cleaned_name = validate_group_name(name)
        schedule = ScheduleSpec.parse(game_days, time, frequency)
        slots = self._scheduler.upcoming(schedule, self._store.local_now())

        group = await self._store.create_group_atomic(
            creator_id=creator_id,
            name=cleaned_name,
            schedule=schedule,
            group_timezone=(timezone or "").strip() or DEFAULT_TIMEZONE,
            slots=slots,
        )
        return {
            "group_id": group.id,
            "invite_code": group.invite_code,
            "occurrence_count": len(slots),
        }

    @returns_result(DomainError)
    async def join_group(self, user_id: str, group_ref: str) -> Dict[str, Any]:
        """Join by id or invite code. Joining twice is reported, not an error."""
        group = await self._resolve(group_ref)
        try:
            await self._store.join_atomic(group.id, user_id)
        except AlreadyMemberError:
            return {"group_id": group.id, "group_name": group.name, "already_member": True}
        return {"group_id": group.id, "group_name": group.name, "already_member": False}

    @returns_result(DomainError)
    async def leave_group(self, user_id: str, group_ref: str) -> Dict[str, Any]:
        group = await self._resolve(group_ref)
        outcome = await self._store.leave_atomic(group.id, user_id)
        return {
            "was_admin": outcome.was_admin,
            "new_admin_id": outcome.new_admin_id,
            "new_admin_name": outcome.new_admin_name,
            "group_deleted": outcome.group_deleted,
        }

    @returns_result(DomainError)
    async def remove_member(self, admin_id: str, group_ref: str, member_id: str) -> Dict[str, Any]:
        group = await self._resolve(group_ref)
        await self._store.remove_member_atomic(group.id, admin_id, member_id)
        return {"group_id": group.id, "removed_user_id": member_id}

    @returns_result(DomainError)
    async def transfer_admin(self, admin_id: str, group_ref: str, new_admin_id: str) -> Dict[str, Any]:
        group = await self._resolve(group_ref)
        await self._store.transfer_admin_atomic(group.id, admin_id, new_admin_id)
        return {"group_id": group.id, "admin_id": new_admin_id}

    @returns_result(DomainError)
    async def delete_group(self, admin_id: str, group_ref: str) -> Dict[str, Any]:
        group = await self._resolve(group_ref)
        await self._store.delete_group_atomic(group.id, admin_id)
        return {"group_id": group.id}

    # ─────────────────────────────────────────────────────────────
    # Settings
    # ─────────────────────────────────────────────────────────────

    @returns_result(DomainError)
    async def update_settings(
        self,
        admin_id: str,
        group_ref: str,
        name: Optional[str] = None,
        timezone: Optional[str] = None,
        game_days: Optional[List[str]] = None,
        time: Optional[str] = None,
        frequency: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Update group settings.

        Schedule fields that are omitted keep their current value. Future
        occurrences are regenerated only when the resulting schedule differs
        from the stored one.

        Returns:
            Result with ``schedule_changed`` and ``occurrence_count`` (new
            occurrences inserted)
        """
        cleaned_name = validate_group_name(name) if name is not None else None
        group = await self._resolve(group_ref)

        schedule = None
        if game_days is not None or time is not None or frequency is not None:
            schedule = ScheduleSpec.parse(
                game_days if game_days is not None else group.game_days,
                time if time is not None else group.time,
                frequency if frequency is not None else group.frequency,
            )

        outcome = await self._store.update_settings_atomic(
            group.id,
            admin_id,
            name=cleaned_name,
            group_timezone=(timezone.strip() or None) if timezone is not None else None,
            schedule=schedule,
        )
        return {
            "group": format_group(outcome.group),
            "schedule_changed": outcome.schedule_changed,
            "occurrence_count": outcome.occurrence_count,
        }

    @returns_result(DomainError)
    async def regenerate_invite_code(self, admin_id: str, group_ref: str) -> Dict[str, Any]:
        group = await self._resolve(group_ref)
        code = await self._store.regenerate_invite_code_atomic(group.id, admin_id)
        return {"invite_code": code}

    # ─────────────────────────────────────────────────────────────
    # Profiles
    # ─────────────────────────────────────────────────────────────

    async def remember_user(self, user_id: str, name: Optional[str], photo: Optional[str] = None) -> None:
        """
        Seed a profile from sign-in claims the first time a user is seen.

        A profile the user already has is never overwritten; a missing name
        stores nothing.
        """
        cleaned = (name or "").strip()[:MAX_PROFILE_NAME_LENGTH]
        if not cleaned:
            return
        await self._store.save_profile_atomic(user_id, cleaned, photo or None, keep_existing=True)

    @returns_result(DomainError)
    async def update_profile(self, user_id: str, name: Optional[str], photo: Optional[str] = None) -> Dict[str, Any]:
        """
        Set the name and photo other members see.

        Returns:
            Result with the stored ``profile``
        """
        cleaned = (name or "").strip()
        if not cleaned:
            raise InvalidProfileError()
        if len(cleaned) > MAX_PROFILE_NAME_LENGTH:
            raise InvalidProfileError(f"Name must be {MAX_PROFILE_NAME_LENGTH} characters or fewer.")

        profile = await self._store.save_profile_atomic(user_id, cleaned, (photo or "").strip() or None)
        logger.info(f"Profile updated for {user_id}")
        return {"profile": {"user_id": profile.id, "name": profile.name, "photo": profile.photo}}

    @returns_result(DomainError)
    async def get_profile(self, user_id: str) -> Dict[str, Any]:
        profile = (await self._store.get_profiles([user_id])).get(user_id)
        if not profile:
            return {"profile": None}
        return {"profile": {"user_id": profile.id, "name": profile.name, "photo": profile.photo}}

    # ─────────────────────────────────────────────────────────────
    # Views
    # ─────────────────────────────────────────────────────────────

    @returns_result(DomainError)
    async def get_group(self, group_ref: str, viewer_id: Optional[str] = None) -> Dict[str, Any]:
        """Group details plus the viewer's relation to it."""
        group = await self._resolve(group_ref)
        membership = await self._store.get_membership(group.id, viewer_id) if viewer_id else None
        return {
            "group": format_group(group),
            "is_admin": viewer_id is not None and group.admin_id == viewer_id,
            "is_member": membership is not None,
        }

    @returns_result(DomainError)
    async def list_members(self, group_ref: str) -> Dict[str, Any]:
        group = await self._resolve(group_ref)
        members = await self._store.list_members(group.id)
        profiles = await self._store.get_profiles([m.user_id for m in members])
        return {"members": [format_member(m, profiles.get(m.user_id)) for m in members]}

    @returns_result(DomainError)
    async def list_user_groups(self, user_id: str) -> Dict[str, Any]:
        pairs = await self._store.list_user_groups(user_id)
        groups = []
        for group, membership in pairs:
            item = format_group(group)
            item["is_admin"] = membership.is_admin
            groups.append(item)
        return {"groups": groups}

    @returns_result(DomainError)
    async def list_upcoming(self, group_ref: str, viewer_id: str) -> Dict[str, Any]:
        """
        Today's and future games of a group with their responses.

        Returns:
            Result with ``occurrences``; each carries ``responses``,
            ``my_response`` and a ``capacity`` hint
        """
        group = await self._resolve(group_ref)
        if not await self._store.get_membership(group.id, viewer_id):
            raise NotGroupMemberError()

        today = self._store.local_now().date().isoformat()
        occurrences = await self._store.list_occurrences(group.id, from_date=today)
        responses = await self._store.list_responses([o.id for o in occurrences])
        profiles = await self._store.get_profiles(list({r.user_id for r in responses}))

        by_occurrence = defaultdict(list)
        for response in responses:
            by_occurrence[response.occurrence_id].append(response)

        items = []
        for occurrence in occurrences:
            answered = sort_responses(by_occurrence[occurrence.id])
            item = format_occurrence(occurrence)
            item["responses"] = [format_response(r, profiles.get(r.user_id)) for r in answered]
            item["my_response"] = next(
                (r.status for r in answered if r.user_id == viewer_id), None
            )
            item["capacity"] = capacity_hint(answered)
            items.append(item)
        return {"occurrences": items}
