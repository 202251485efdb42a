"""
Attendance Service.

RSVPs, host volunteering and the player-count hint shown on each game.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

from common.utils import returns_result

from app.groups.errors import (
    DomainError,
    InvalidHostDetailsError,
    InvalidStatusError,
    NotGroupMemberError,
    OccurrenceNotFoundError,
)
from app.groups.models import AttendanceResponse, AttendanceStatus, HostDetails, Occurrence, UserProfile
from app.groups.store.membership_store import MembershipStore

logger = logging.getLogger(__name__)

TABLE_SIZE = 4
SECOND_TABLE_SIZE = 8
MAX_HOST_NAME_LENGTH = 80
MAX_HOST_ADDRESS_LENGTH = 200

_STATUS_ORDER = {
    AttendanceStatus.GOING.value: 0,
    AttendanceStatus.MAYBE.value: 1,
    AttendanceStatus.NOT_GOING.value: 2,
}


def capacity_hint(responses: Iterable[Any]) -> Dict[str, Any]:
    """
    Player-count hint for one game.

    Args:
        responses: AttendanceResponse records (or bare status strings)

    Returns:
        Dict with going/maybe counts, ``message`` (the tiered hint),
        ``level`` (info/success/warning) and a ``summary`` line
    """
    statuses = [getattr(r, "status", r) for r in responses]
    going = statuses.count(AttendanceStatus.GOING.value)
    maybe = statuses.count(AttendanceStatus.MAYBE.value)

    if going < TABLE_SIZE:
        message, level = f"need {TABLE_SIZE - going} more to play", "info"
    elif going == TABLE_SIZE:
        message, level = "table ready", "success"
    elif going < SECOND_TABLE_SIZE:
        message, level = f"need {SECOND_TABLE_SIZE - going} more for second table", "warning"
    else:
        message, level = "tables full", "success"

    summary = f"{going} going"
    if maybe > 0:
        summary += f", {maybe} maybe"

    return {
        "going": going,
        "maybe": maybe,
        "message": message,
        "level": level,
        "summary": summary,
    }


def sort_responses(responses: Iterable[AttendanceResponse]) -> List[AttendanceResponse]:
    """Going first, then maybe, then not-going; earliest answer first within each."""
    return sorted(responses, key=lambda r: (_STATUS_ORDER.get(r.status, 3), r.responded_at))


def format_response(response: AttendanceResponse, profile: Optional[UserProfile] = None) -> Dict[str, Any]:
    return {
        "user_id": response.user_id,
        "name": profile.name if profile else None,
        "status": response.status,
        "responded_at": response.responded_at,
    }


def format_occurrence(occurrence: Occurrence) -> Dict[str, Any]:
    host = None
    if occurrence.has_host:
        host = {
            "user_id": occurrence.host_id,
            "name": occurrence.host_name,
            "address": occurrence.host_address,
        }
    return {
        "id": occurrence.id,
        "group_id": occurrence.group_id,
        "date": occurrence.date,
        "time": occurrence.time,
        "host": host,
    }


class AttendanceService:
    """
    Member responses and hosting for occurrences.

    Args:
        store: Membership store holding occurrences and responses
    """

    def __init__(self, store: MembershipStore):
        self._store = store

    @returns_result(DomainError)
    async def respond(self, occurrence_id: str, user_id: str, status: Optional[str]) -> Dict[str, Any]:
        """
        Record the user's answer for one game, replacing any earlier one.

        Args:
            occurrence_id: Occurrence being answered
            user_id: Acting member
            status: going, maybe or not-going

        Returns:
            Result with the stored ``response``
        """
        try:
            parsed = AttendanceStatus(status)
        except ValueError:
            raise InvalidStatusError()

        response = await self._store.record_response_atomic(occurrence_id, user_id, parsed)
        logger.info(f"User {user_id} responded {response.status} to {occurrence_id}")
        return {"response": format_response(response)}

    @returns_result(DomainError)
    async def volunteer_to_host(
        self,
        occurrence_id: str,
        user_id: str,
        name: Optional[str],
        address: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Claim hosting for a game that has no host yet."""
        host_name = (name or "").strip()
        if not host_name or len(host_name) > MAX_HOST_NAME_LENGTH:
            raise InvalidHostDetailsError()
        host_address = (address or "").strip() or None
        if host_address and len(host_address) > MAX_HOST_ADDRESS_LENGTH:
            raise InvalidHostDetailsError("Host address is too long.")

        occurrence = await self._store.assign_host_atomic(
            occurrence_id, user_id, HostDetails(name=host_name, address=host_address)
        )
        return {"occurrence": format_occurrence(occurrence)}

    @returns_result(DomainError)
    async def list_responses(self, occurrence_id: str, viewer_id: str) -> Dict[str, Any]:
        """
        Responses to one game, visible to members of its group.

        Returns:
            Result with ordered ``responses``, the viewer's ``my_response``
            and the ``capacity`` hint
        """
        occurrence = await self._store.get_occurrence(occurrence_id)
        if not occurrence:
            raise OccurrenceNotFoundError()
        if not await self._store.get_membership(occurrence.group_id, viewer_id):
            raise NotGroupMemberError()

        responses = sort_responses(await self._store.list_responses([occurrence_id]))
        profiles = await self._store.get_profiles([r.user_id for r in responses])
        mine = next((r.status for r in responses if r.user_id == viewer_id), None)
        return {
            "occurrence": format_occurrence(occurrence),
            "responses": [format_response(r, profiles.get(r.user_id)) for r in responses],
            "my_response": mine,
            "capacity": capacity_hint(responses),
        }
