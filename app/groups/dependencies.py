"""
FastAPI dependencies for the groups system.

Provides dependency injection for group and attendance services and the
authenticated user id.
"""

from functools import lru_cache
from typing import Annotated, Any, Dict, Optional

from fastapi import Depends

from common.auth import AuthProvider, FirebaseAuth, create_auth_dependency

from app.config import settings
from app.groups.services.attendance_service import AttendanceService
from app.groups.services.invite_code import InviteCodeGenerator
from app.groups.services.lifecycle_service import GroupLifecycleService
from app.groups.services.scheduler import OccurrenceScheduler
from app.groups.store.base import StoreBackend
from app.groups.store.membership_store import MembershipStore


_store: Optional[MembershipStore] = None
_lifecycle_service: Optional[GroupLifecycleService] = None
_attendance_service: Optional[AttendanceService] = None


def init_group_services(
    backend: StoreBackend,
    horizon: int = 8,
    invite_code_attempts: int = 10,
) -> None:
    """
    Initialize group services on top of a store backend.

    Called once at application startup.

    Args:
        backend: Mongo or memory store backend
        horizon: Occurrences generated per schedule
        invite_code_attempts: Invite code collision retries
    """
    global _store, _lifecycle_service, _attendance_service

    scheduler = OccurrenceScheduler(horizon=horizon)
    _store = MembershipStore(
        backend=backend,
        scheduler=scheduler,
        invite_codes=InviteCodeGenerator(),
        invite_code_attempts=invite_code_attempts,
    )
    _lifecycle_service = GroupLifecycleService(store=_store, scheduler=scheduler)
    _attendance_service = AttendanceService(store=_store)


def get_lifecycle_service() -> GroupLifecycleService:
    """Get group lifecycle service instance."""
    if _lifecycle_service is None:
        raise RuntimeError("Group services not initialized.")
    return _lifecycle_service


def get_attendance_service() -> AttendanceService:
    """Get attendance service instance."""
    if _attendance_service is None:
        raise RuntimeError("Group services not initialized.")
    return _attendance_service


# =============================================================================
# Auth
# =============================================================================
@lru_cache()
def get_auth_provider() -> AuthProvider:
    """Firebase ID token verifier, created on first use."""
    return FirebaseAuth(
        credentials_path=settings.FIREBASE_CREDENTIALS_PATH,
        project_id=settings.FIREBASE_PROJECT_ID,
    )


require_claims = create_auth_dependency(get_auth_provider)


async def require_user_id(claims: Annotated[Dict[str, Any], Depends(require_claims)]) -> str:
    """Id of the signed-in caller."""
    return claims["sub"]


async def remember_user(
    claims: Annotated[Dict[str, Any], Depends(require_claims)],
    service: Annotated[GroupLifecycleService, Depends(get_lifecycle_service)],
) -> str:
    """Id of the signed-in caller, seeding their profile from the token on first sight."""
    await service.remember_user(claims["sub"], claims.get("name"), claims.get("picture"))
    return claims["sub"]
