"""
Persisted group graph and its atomic operations.

Every mutating method runs as one transaction on the StoreBackend, so a
group, its memberships, occurrences and responses are never observed half
updated. Invariants kept here:

- Group.member_count equals the number of group_members documents
- exactly one membership per group has is_admin, and it is Group.admin_id
- at most one occurrence per (group, date)
- a group with no members does not exist

``member_count`` and ``admin_id`` are only written from this module.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from bson import ObjectId

from app.groups.errors import (
    AlreadyHostedError,
    AlreadyMemberError,
    CannotRemoveSelfError,
    GroupNotFoundError,
    InviteCodeExhaustedError,
    NotAdminError,
    NotAMemberError,
    NotGroupMemberError,
    OccurrenceNotFoundError,
    TargetNotMemberError,
)
from app.groups.models import (
    AttendanceResponse,
    AttendanceStatus,
    Group,
    HostDetails,
    Membership,
    Occurrence,
    UserProfile,
    membership_id,
    occurrence_id,
    response_id,
)
from app.groups.services.invite_code import InviteCodeGenerator, normalize
from app.groups.services.scheduler import OccurrenceScheduler, ScheduleSpec, ScheduledSlot
from app.groups.store.base import StoreBackend, Transaction
from app.groups.store.collections import (
    ATTENDANCE_RESPONSES,
    GROUP_MEMBERS,
    GROUPS,
    OCCURRENCES,
    USERS,
)

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class LeaveOutcome:
    was_admin: bool
    new_admin_id: Optional[str]
    group_deleted: bool
    new_admin_name: Optional[str] = None


@dataclass(frozen=True)
class SettingsOutcome:
    group: Group
    schedule_changed: bool
    occurrence_count: int


class MembershipStore:
    """
    Group, membership, occurrence and attendance records.

    Args:
        backend: Transactional document store
        scheduler: Generates occurrences when a schedule changes
        invite_codes: Source of candidate invite codes
        clock: Returns the current aware datetime; audit timestamps
        local_tz: Zone used to turn the clock into the local wall time that
            occurrences are compared against (None = process local time)
        invite_code_attempts: Collision retries before giving up
    """

    def __init__(
        self,
        backend: StoreBackend,
        scheduler: OccurrenceScheduler,
        invite_codes: InviteCodeGenerator,
        clock: Callable[[], datetime] = _utcnow,
        local_tz: Optional[tzinfo] = None,
        invite_code_attempts: int = 10,
    ):
        self._backend = backend
        self._scheduler = scheduler
        self._invite_codes = invite_codes
        self._clock = clock
        self._local_tz = local_tz
        self._invite_code_attempts = invite_code_attempts

    def local_now(self) -> datetime:
        """Naive local wall time; schedules carry no timezone math."""
        return self._clock().astimezone(self._local_tz).replace(tzinfo=None)

    # ─────────────────────────────────────────────────────────────
    # Reads
    # ─────────────────────────────────────────────────────────────

    async def get_group(self, group_id: str) -> Optional[Group]:
        async def work(tx: Transaction) -> Optional[Group]:
            doc = await tx.get(GROUPS, group_id)
            return Group.from_doc(doc) if doc else None

        return await self._backend.read(work)

    async def find_group_by_invite_code(self, code: str) -> Optional[Group]:
        async def work(tx: Transaction) -> Optional[Group]:
            docs = await tx.find(GROUPS, {"invite_code": normalize(code)})
            return Group.from_doc(docs[0]) if docs else None

        return await self._backend.read(work)

    async def get_membership(self, group_id: str, user_id: str) -> Optional[Membership]:
        async def work(tx: Transaction) -> Optional[Membership]:
            doc = await tx.get(GROUP_MEMBERS, membership_id(user_id, group_id))
            return Membership.from_doc(doc) if doc else None

        return await self._backend.read(work)

    async def list_members(self, group_id: str) -> List[Membership]:
        """Admin first, then by join time."""

        async def work(tx: Transaction) -> List[Membership]:
            members = await self._members(tx, group_id)
            return sorted(members, key=lambda m: (not m.is_admin, m.joined_at, m.user_id))

        return await self._backend.read(work)

    async def list_user_groups(self, user_id: str) -> List[Tuple[Group, Membership]]:
        async def work(tx: Transaction) -> List[Tuple[Group, Membership]]:
            memberships = [
                Membership.from_doc(d)
                for d in await tx.find(GROUP_MEMBERS, {"user_id": user_id})
            ]
            by_group = {m.group_id: m for m in memberships}
            groups = [Group.from_doc(d) for d in await tx.get_by_ids(GROUPS, list(by_group))]
            pairs = [(g, by_group[g.id]) for g in groups]
            return sorted(pairs, key=lambda pair: (pair[1].joined_at, pair[0].id))

        return await self._backend.read(work)

    async def get_occurrence(self, occ_id: str) -> Optional[Occurrence]:
        async def work(tx: Transaction) -> Optional[Occurrence]:
            doc = await tx.get(OCCURRENCES, occ_id)
            return Occurrence.from_doc(doc) if doc else None

        return await self._backend.read(work)

    async def list_occurrences(self, group_id: str, from_date: Optional[str] = None) -> List[Occurrence]:
        """Occurrences of a group by date, optionally from an ISO date on."""
        query: Dict[str, object] = {"group_id": group_id}
        if from_date:
            query["date"] = {"$gte": from_date}

        async def work(tx: Transaction) -> List[Occurrence]:
            docs = await tx.find(OCCURRENCES, query, sort=[("date", 1)])
            return [Occurrence.from_doc(d) for d in docs]

        return await self._backend.read(work)

    async def list_responses(self, occurrence_ids: Sequence[str]) -> List[AttendanceResponse]:
        if not occurrence_ids:
            return []

        async def work(tx: Transaction) -> List[AttendanceResponse]:
            docs = await tx.find(
                ATTENDANCE_RESPONSES,
                {"occurrence_id": {"$in": list(occurrence_ids)}},
                sort=[("responded_at", 1)],
            )
            return [AttendanceResponse.from_doc(d) for d in docs]

        return await self._backend.read(work)

    async def get_profiles(self, user_ids: Sequence[str]) -> Dict[str, UserProfile]:
        """Profiles by user id; users without one are left out."""
        if not user_ids:
            return {}

        async def work(tx: Transaction) -> Dict[str, UserProfile]:
            docs = await tx.get_by_ids(USERS, list(user_ids))
            return {p.id: p for p in (UserProfile.from_doc(d) for d in docs)}

        return await self._backend.read(work)

    # ─────────────────────────────────────────────────────────────
    # Profiles
    # ─────────────────────────────────────────────────────────────

    async def save_profile_atomic(
        self,
        user_id: str,
        name: str,
        photo: Optional[str] = None,
        keep_existing: bool = False,
    ) -> UserProfile:
        """
        Store the display name and photo shown for a user.

        Args:
            user_id: Profile owner
            name: Display name, already validated
            photo: Photo URL
            keep_existing: Leave a stored profile untouched (used when the
                profile comes from token claims rather than the user)

        Returns:
            The stored profile
        """

        async def work(tx: Transaction) -> UserProfile:
            if keep_existing:
                existing = await tx.get(USERS, user_id)
                if existing:
                    return UserProfile.from_doc(existing)
            profile = UserProfile(id=user_id, name=name, photo=photo, updated_at=self._clock())
            await tx.replace(USERS, profile.to_doc())
            return profile

        return await self._backend.run_in_transaction(work)

    # ─────────────────────────────────────────────────────────────
    # Group lifecycle
    # ─────────────────────────────────────────────────────────────

    async def create_group_atomic(
        self,
        creator_id: str,
        name: str,
        schedule: ScheduleSpec,
        group_timezone: str,
        slots: Sequence[ScheduledSlot],
    ) -> Group:
        """Insert the group, its admin membership and its first occurrences."""
        group_id = str(ObjectId())

        async def work(tx: Transaction) -> Group:
            now = self._clock()
            group = Group(
                id=group_id,
                name=name,
                game_days=list(schedule.weekdays),
                time=schedule.time,
                timezone=group_timezone,
                frequency=schedule.frequency,
                invite_code=await self._unique_invite_code(tx),
                admin_id=creator_id,
                member_count=1,
                created_at=now,
                updated_at=now,
            )
            admin = Membership(
                id=membership_id(creator_id, group_id),
                user_id=creator_id,
                group_id=group_id,
                is_admin=True,
                joined_at=now,
            )
            await tx.insert(GROUPS, group.to_doc())
            await tx.insert(GROUP_MEMBERS, admin.to_doc())
            await tx.insert_many(
                OCCURRENCES,
                [self._new_occurrence(group_id, slot, now).to_doc() for slot in slots],
            )
            return group

        group = await self._backend.run_in_transaction(work)
        logger.info(f"Group {group_id} created by {creator_id} with {len(slots)} occurrences")
        return group

    async def join_atomic(self, group_id: str, user_id: str) -> Group:
        """
        Raises:
            GroupNotFoundError: the group does not exist (any more)
            AlreadyMemberError: nothing was written
        """

        async def work(tx: Transaction) -> Group:
            group = await self._require_group(tx, group_id)
            mid = membership_id(user_id, group_id)
            if await tx.get(GROUP_MEMBERS, mid):
                raise AlreadyMemberError()

            now = self._clock()
            member = Membership(id=mid, user_id=user_id, group_id=group_id, joined_at=now)
            await tx.insert(GROUP_MEMBERS, member.to_doc())
            await tx.update(GROUPS, group_id, set_fields={"updated_at": now}, inc={"member_count": 1})
            return group.model_copy(update={"member_count": group.member_count + 1, "updated_at": now})

        group = await self._backend.run_in_transaction(work)
        logger.info(f"User {user_id} joined group {group_id}")
        return group

    async def leave_atomic(self, group_id: str, user_id: str) -> LeaveOutcome:
        """
        Remove the user's membership.

        An admin leaving hands the role to the earliest-joined remaining
        member (ties broken by user id). The last member leaving deletes the
        group and everything it owns.
        """

        async def work(tx: Transaction) -> LeaveOutcome:
            group = await self._require_group(tx, group_id)
            mid = membership_id(user_id, group_id)
            if not await tx.get(GROUP_MEMBERS, mid):
                raise NotAMemberError()

            now = self._clock()
            was_admin = group.admin_id == user_id

            if was_admin:
                others = [m for m in await self._members(tx, group_id) if m.user_id != user_id]
                if not others:
                    await self._cascade_delete(tx, group_id)
                    return LeaveOutcome(was_admin=True, new_admin_id=None, group_deleted=True)

                successor = min(others, key=lambda m: (m.joined_at, m.user_id))
                await tx.update(GROUP_MEMBERS, successor.id, set_fields={"is_admin": True})
                await tx.update(
                    GROUPS,
                    group_id,
                    set_fields={"admin_id": successor.user_id, "updated_at": now},
                    inc={"member_count": -1},
                )
                await tx.delete(GROUP_MEMBERS, mid)
                profile = await tx.get(USERS, successor.user_id)
                return LeaveOutcome(
                    was_admin=True,
                    new_admin_id=successor.user_id,
                    group_deleted=False,
                    new_admin_name=profile["name"] if profile else None,
                )

            await tx.delete(GROUP_MEMBERS, mid)
            await tx.update(GROUPS, group_id, set_fields={"updated_at": now}, inc={"member_count": -1})
            return LeaveOutcome(was_admin=False, new_admin_id=None, group_deleted=False)

        outcome = await self._backend.run_in_transaction(work)
        if outcome.group_deleted:
            logger.info(f"Last member {user_id} left group {group_id}; group deleted")
        elif outcome.new_admin_id:
            logger.info(f"Admin {user_id} left group {group_id}; {outcome.new_admin_id} is now admin")
        else:
            logger.info(f"User {user_id} left group {group_id}")
        return outcome

    async def remove_member_atomic(self, group_id: str, admin_id: str, target_id: str) -> None:
        """
        Remove another member from the group.

        Args:
            group_id: Group to remove from
            admin_id: Acting user, must be the current admin
            target_id: Member to remove

        Raises:
            GroupNotFoundError: the group does not exist
            NotAdminError: admin_id is not the current admin
            CannotRemoveSelfError: the admin tried to remove themselves
            TargetNotMemberError: target_id is not a member
        """

        async def work(tx: Transaction) -> None:
            await self._require_admin(tx, group_id, admin_id)
            if target_id == admin_id:
                raise CannotRemoveSelfError()
            mid = membership_id(target_id, group_id)
            if not await tx.get(GROUP_MEMBERS, mid):
                raise TargetNotMemberError()

            await tx.delete(GROUP_MEMBERS, mid)
            await tx.update(
                GROUPS, group_id, set_fields={"updated_at": self._clock()}, inc={"member_count": -1}
            )

        await self._backend.run_in_transaction(work)
        logger.info(f"Admin {admin_id} removed {target_id} from group {group_id}")

    async def transfer_admin_atomic(self, group_id: str, current_admin_id: str, new_admin_id: str) -> None:
        """
        Hand the admin role to another member.

        ``Group.admin_id`` and both membership flags change together.
        Transferring to yourself writes nothing.

        Raises:
            GroupNotFoundError: the group does not exist
            NotAdminError: current_admin_id is not the current admin
            TargetNotMemberError: new_admin_id is not a member
        """

        async def work(tx: Transaction) -> None:
            await self._require_admin(tx, group_id, current_admin_id)
            if new_admin_id == current_admin_id:
                return
            new_mid = membership_id(new_admin_id, group_id)
            if not await tx.get(GROUP_MEMBERS, new_mid):
                raise TargetNotMemberError()

            await tx.update(
                GROUPS, group_id, set_fields={"admin_id": new_admin_id, "updated_at": self._clock()}
            )
            await tx.update(
                GROUP_MEMBERS, membership_id(current_admin_id, group_id), set_fields={"is_admin": False}
            )
            await tx.update(GROUP_MEMBERS, new_mid, set_fields={"is_admin": True})

        await self._backend.run_in_transaction(work)
        logger.info(f"Group {group_id} admin transferred from {current_admin_id} to {new_admin_id}")

    async def delete_group_atomic(self, group_id: str, admin_id: str) -> None:
        """
        Delete the group with its memberships, occurrences and responses.

        Raises:
            GroupNotFoundError: the group does not exist
            NotAdminError: admin_id is not the current admin
        """

        async def work(tx: Transaction) -> None:
            await self._require_admin(tx, group_id, admin_id)
            await self._cascade_delete(tx, group_id)

        await self._backend.run_in_transaction(work)
        logger.info(f"Group {group_id} deleted by admin {admin_id}")

    # ─────────────────────────────────────────────────────────────
    # Settings
    # ─────────────────────────────────────────────────────────────

    async def regenerate_schedule_atomic(self, group_id: str, admin_id: str, schedule: ScheduleSpec) -> int:
        """
        Replace the schedule and every future occurrence.

        Returns:
            Number of occurrences inserted
        """

        async def work(tx: Transaction) -> int:
            await self._require_admin(tx, group_id, admin_id)
            await tx.update(GROUPS, group_id, set_fields=self._schedule_fields(schedule))
            return await self._regenerate(tx, group_id, schedule)

        inserted = await self._backend.run_in_transaction(work)
        logger.info(f"Group {group_id} schedule regenerated with {inserted} occurrences")
        return inserted

    async def update_settings_atomic(
        self,
        group_id: str,
        admin_id: str,
        name: Optional[str] = None,
        group_timezone: Optional[str] = None,
        schedule: Optional[ScheduleSpec] = None,
    ) -> SettingsOutcome:
        """Update name/timezone; regenerate occurrences only if the schedule changed."""

        async def work(tx: Transaction) -> SettingsOutcome:
            group = await self._require_admin(tx, group_id, admin_id)
            fields: Dict[str, object] = {"updated_at": self._clock()}
            if name is not None:
                fields["name"] = name
            if group_timezone is not None:
                fields["timezone"] = group_timezone

            changed = schedule is not None and (
                list(schedule.weekdays) != group.game_days
                or schedule.time != group.time
                or schedule.frequency != group.frequency
            )
            if changed:
                fields.update(self._schedule_fields(schedule))
            await tx.update(GROUPS, group_id, set_fields=fields)

            inserted = await self._regenerate(tx, group_id, schedule) if changed else 0
            return SettingsOutcome(
                group=group.model_copy(update=fields),
                schedule_changed=changed,
                occurrence_count=inserted,
            )

        outcome = await self._backend.run_in_transaction(work)
        logger.info(f"Group {group_id} settings updated (schedule changed: {outcome.schedule_changed})")
        return outcome

    async def regenerate_invite_code_atomic(self, group_id: str, admin_id: str) -> str:
        """
        Replace the group's invite code; the old code stops resolving.

        Returns:
            The new invite code

        Raises:
            GroupNotFoundError: the group does not exist
            NotAdminError: admin_id is not the current admin
            InviteCodeExhaustedError: no unused code after the configured attempts
        """

        async def work(tx: Transaction) -> str:
            await self._require_admin(tx, group_id, admin_id)
            code = await self._unique_invite_code(tx)
            await tx.update(GROUPS, group_id, set_fields={"invite_code": code, "updated_at": self._clock()})
            return code

        code = await self._backend.run_in_transaction(work)
        logger.info(f"Group {group_id} invite code regenerated")
        return code

    # ─────────────────────────────────────────────────────────────
    # Attendance
    # ─────────────────────────────────────────────────────────────

    async def record_response_atomic(
        self, occ_id: str, user_id: str, status: AttendanceStatus
    ) -> AttendanceResponse:
        """Upsert the user's response; a previous one is replaced."""

        async def work(tx: Transaction) -> AttendanceResponse:
            occurrence = await self._require_occurrence(tx, occ_id)
            await self._require_member(tx, occurrence.group_id, user_id)
            response = AttendanceResponse(
                id=response_id(occ_id, user_id),
                occurrence_id=occ_id,
                group_id=occurrence.group_id,
                user_id=user_id,
                status=status,
                responded_at=self._clock(),
            )
            await tx.replace(ATTENDANCE_RESPONSES, response.to_doc())
            return response

        return await self._backend.run_in_transaction(work)

    async def assign_host_atomic(self, occ_id: str, user_id: str, host: HostDetails) -> Occurrence:
        """First volunteer wins; an assigned host is never overwritten."""

        async def work(tx: Transaction) -> Occurrence:
            occurrence = await self._require_occurrence(tx, occ_id)
            await self._require_member(tx, occurrence.group_id, user_id)
            if occurrence.has_host:
                raise AlreadyHostedError()

            fields = {"host_id": user_id, "host_name": host.name, "host_address": host.address}
            await tx.update(OCCURRENCES, occ_id, set_fields=fields)
            return occurrence.model_copy(update=fields)

        occurrence = await self._backend.run_in_transaction(work)
        logger.info(f"User {user_id} is hosting {occ_id}")
        return occurrence

    # ─────────────────────────────────────────────────────────────
    # Helpers (run inside a transaction)
    # ─────────────────────────────────────────────────────────────

    async def _require_group(self, tx: Transaction, group_id: str) -> Group:
        doc = await tx.get(GROUPS, group_id)
        if not doc:
            raise GroupNotFoundError()
        return Group.from_doc(doc)

    async def _require_admin(self, tx: Transaction, group_id: str, user_id: str) -> Group:
        group = await self._require_group(tx, group_id)
        if group.admin_id != user_id:
            raise NotAdminError()
        return group

    async def _require_occurrence(self, tx: Transaction, occ_id: str) -> Occurrence:
        doc = await tx.get(OCCURRENCES, occ_id)
        if not doc:
            raise OccurrenceNotFoundError()
        return Occurrence.from_doc(doc)

    async def _require_member(self, tx: Transaction, group_id: str, user_id: str) -> Membership:
        doc = await tx.get(GROUP_MEMBERS, membership_id(user_id, group_id))
        if not doc:
            raise NotGroupMemberError()
        return Membership.from_doc(doc)

    async def _members(self, tx: Transaction, group_id: str) -> List[Membership]:
        docs = await tx.find(GROUP_MEMBERS, {"group_id": group_id})
        return [Membership.from_doc(d) for d in docs]

    async def _unique_invite_code(self, tx: Transaction) -> str:
        for _ in range(self._invite_code_attempts):
            code = self._invite_codes.generate()
            if not await tx.find(GROUPS, {"invite_code": code}):
                return code
            logger.warning("Invite code collision, drawing another")
        raise InviteCodeExhaustedError("Could not generate a unique invite code. Please try again.")

    async def _cascade_delete(self, tx: Transaction, group_id: str) -> None:
        await tx.delete_many(ATTENDANCE_RESPONSES, {"group_id": group_id})
        await tx.delete_many(OCCURRENCES, {"group_id": group_id})
        await tx.delete_many(GROUP_MEMBERS, {"group_id": group_id})
        await tx.delete(GROUPS, group_id)

    async def _regenerate(self, tx: Transaction, group_id: str, schedule: ScheduleSpec) -> int:
        """
        Drop future occurrences (and their responses) and generate fresh ones.

        A fresh slot that has already started today is skipped, as is any
        date still held by a kept occurrence.
        """
        now = self.local_now()
        existing = [
            Occurrence.from_doc(d) for d in await tx.find(OCCURRENCES, {"group_id": group_id})
        ]
        future_ids = [o.id for o in existing if o.starts_at > now]
        kept_dates = {o.date for o in existing if o.starts_at <= now}

        if future_ids:
            await tx.delete_many(ATTENDANCE_RESPONSES, {"occurrence_id": {"$in": future_ids}})
            await tx.delete_many(OCCURRENCES, {"_id": {"$in": future_ids}})

        created_at = self._clock()
        fresh = [
            self._new_occurrence(group_id, slot, created_at)
            for slot in self._scheduler.upcoming(schedule, now)
            if slot.date.isoformat() not in kept_dates
        ]
        await tx.insert_many(OCCURRENCES, [o.to_doc() for o in fresh])
        return len(fresh)

    @staticmethod
    def _schedule_fields(schedule: ScheduleSpec) -> Dict[str, object]:
        return {
            "game_days": list(schedule.weekdays),
            "time": schedule.time,
            "frequency": schedule.frequency,
        }

    @staticmethod
    def _new_occurrence(group_id: str, slot: ScheduledSlot, created_at: datetime) -> Occurrence:
        return Occurrence(
            id=occurrence_id(group_id, slot.date),
            group_id=group_id,
            date=slot.date.isoformat(),
            time=slot.time,
            created_at=created_at,
        )
