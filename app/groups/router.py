"""
FastAPI router for group and attendance endpoints.

Services return result dicts; failed results are raised as APIException
with the status that matches their error code.
"""

import logging
from typing import Annotated, Any, Dict

from fastapi import APIRouter, Depends

from common.utils import APIException

from app.groups.dependencies import (
    get_attendance_service,
    get_lifecycle_service,
    remember_user,
    require_user_id,
)
from app.groups.errors import http_status_for
from app.groups.models import (
    CreateGroupRequest,
    RespondRequest,
    TransferAdminRequest,
    UpdateGroupRequest,
    UpdateProfileRequest,
    VolunteerHostRequest,
)
from app.groups.services.attendance_service import AttendanceService
from app.groups.services.lifecycle_service import GroupLifecycleService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["groups"])

UserId = Annotated[str, Depends(require_user_id)]
SeenUserId = Annotated[str, Depends(remember_user)]
Lifecycle = Annotated[GroupLifecycleService, Depends(get_lifecycle_service)]
Attendance = Annotated[AttendanceService, Depends(get_attendance_service)]


def _unwrap(result: Dict[str, Any]) -> Dict[str, Any]:
    """Return a successful result or raise it as an HTTP error."""
    if not result["success"]:
        code = result.get("code")
        raise APIException(http_status_for(code), result["error"], code=code)
    return result


# =============================================================================
# Groups
# =============================================================================
@router.post("/groups", status_code=201)
async def create_group(body: CreateGroupRequest, user_id: SeenUserId, service: Lifecycle):
    """Create a group; the caller becomes its admin."""
    return _unwrap(await service.create_group(
        creator_id=user_id,
        name=body.name,
        game_days=body.game_days,
        time=body.time,
        frequency=body.frequency,
        timezone=body.timezone,
    ))


@router.get("/groups")
async def list_my_groups(user_id: UserId, service: Lifecycle):
    """Groups the caller belongs to."""
    return _unwrap(await service.list_user_groups(user_id))


@router.get("/groups/{group_ref}")
async def get_group(group_ref: str, user_id: UserId, service: Lifecycle):
    """Group by id or invite code."""
    return _unwrap(await service.get_group(group_ref, viewer_id=user_id))


@router.patch("/groups/{group_ref}")
async def update_group(group_ref: str, body: UpdateGroupRequest, user_id: UserId, service: Lifecycle):
    """Admin only: rename, change timezone or schedule."""
    return _unwrap(await service.update_settings(
        admin_id=user_id,
        group_ref=group_ref,
        name=body.name,
        timezone=body.timezone,
        game_days=body.game_days,
        time=body.time,
        frequency=body.frequency,
    ))


@router.delete("/groups/{group_ref}")
async def delete_group(group_ref: str, user_id: UserId, service: Lifecycle):
    """Admin only: delete the group and everything in it."""
    return _unwrap(await service.delete_group(user_id, group_ref))


# =============================================================================
# Membership
# =============================================================================
@router.post("/groups/{group_ref}/join")
async def join_group(group_ref: str, user_id: SeenUserId, service: Lifecycle):
    return _unwrap(await service.join_group(user_id, group_ref))


@router.post("/groups/{group_ref}/leave")
async def leave_group(group_ref: str, user_id: UserId, service: Lifecycle):
    return _unwrap(await service.leave_group(user_id, group_ref))


@router.get("/groups/{group_ref}/members")
async def list_members(group_ref: str, user_id: UserId, service: Lifecycle):
    return _unwrap(await service.list_members(group_ref))


@router.delete("/groups/{group_ref}/members/{member_id}")
async def remove_member(group_ref: str, member_id: str, user_id: UserId, service: Lifecycle):
    """Admin only: remove another member."""
    return _unwrap(await service.remove_member(user_id, group_ref, member_id))


@router.post("/groups/{group_ref}/admin")
async def transfer_admin(group_ref: str, body: TransferAdminRequest, user_id: UserId, service: Lifecycle):
    """Admin only: hand the admin role to another member."""
    return _unwrap(await service.transfer_admin(user_id, group_ref, body.new_admin_id))


@router.post("/groups/{group_ref}/invite-code")
async def regenerate_invite_code(group_ref: str, user_id: UserId, service: Lifecycle):
    """Admin only: replace the invite code."""
    return _unwrap(await service.regenerate_invite_code(user_id, group_ref))


# =============================================================================
# Occurrences
# =============================================================================
@router.get("/groups/{group_ref}/occurrences")
async def list_upcoming(group_ref: str, user_id: UserId, service: Lifecycle):
    """Upcoming games with responses and the player-count hint."""
    return _unwrap(await service.list_upcoming(group_ref, user_id))


@router.put("/occurrences/{occurrence_id}/response")
async def respond(occurrence_id: str, body: RespondRequest, user_id: UserId, service: Attendance):
    return _unwrap(await service.respond(occurrence_id, user_id, body.status))


@router.post("/occurrences/{occurrence_id}/host")
async def volunteer_to_host(
    occurrence_id: str, body: VolunteerHostRequest, user_id: UserId, service: Attendance
):
    """First volunteer wins."""
    return _unwrap(await service.volunteer_to_host(occurrence_id, user_id, body.name, body.address))


@router.get("/occurrences/{occurrence_id}/responses")
async def list_responses(occurrence_id: str, user_id: UserId, service: Attendance):
    return _unwrap(await service.list_responses(occurrence_id, user_id))


# =============================================================================
# Profile
# =============================================================================
@router.get("/me/profile")
async def get_my_profile(user_id: UserId, service: Lifecycle):
    return _unwrap(await service.get_profile(user_id))


@router.put("/me/profile")
async def update_my_profile(body: UpdateProfileRequest, user_id: UserId, service: Lifecycle):
    """Name and photo shown to other members."""
    return _unwrap(await service.update_profile(user_id, body.name, body.photo))
