"""
Domain errors for groups, memberships and occurrences.

Four families, matching how callers are expected to react:

- InvalidRequestError: malformed input, rejected before any store access
- PermissionDeniedError: the acting user may not do this
- StateConflictError: the records are not in a state that allows it
- StoreError: the backing store failed; the only family that is raised
  across the service boundary, and the caller may retry

The first three derive from DomainError and are turned into
``{"success": False, ...}`` results by the services.
"""

from typing import Dict, Optional, Type


class DomainError(Exception):
    """Expected business-rule violation."""

    code = "DOMAIN_ERROR"
    message = "The request could not be completed."
    http_status = 400

    def __init__(self, message: Optional[str] = None):
        if message:
            self.message = message
        super().__init__(self.message)


# ─────────────────────────────────────────────────────────────────
# Validation
# ─────────────────────────────────────────────────────────────────


class InvalidRequestError(DomainError):
    code = "INVALID_REQUEST"
    http_status = 422


class InvalidScheduleError(InvalidRequestError):
    code = "INVALID_SCHEDULE"
    message = "Please choose at least one game day, a valid time and frequency."


class InvalidGroupNameError(InvalidRequestError):
    code = "INVALID_GROUP_NAME"
    message = "Please enter a group name."


class InvalidProfileError(InvalidRequestError):
    code = "INVALID_PROFILE"
    message = "Please enter your name."


class InvalidStatusError(InvalidRequestError):
    code = "INVALID_STATUS"
    message = "Response must be going, maybe or not-going."


class InvalidHostDetailsError(InvalidRequestError):
    code = "INVALID_HOST_DETAILS"
    message = "Please enter a host name."


# ─────────────────────────────────────────────────────────────────
# Authorization
# ─────────────────────────────────────────────────────────────────


class PermissionDeniedError(DomainError):
    code = "PERMISSION_DENIED"
    message = "You don't have permission to perform this action."
    http_status = 403


class NotAdminError(PermissionDeniedError):
    code = "NOT_ADMIN"
    message = "Only the admin can do that."


class NotGroupMemberError(PermissionDeniedError):
    code = "NOT_GROUP_MEMBER"
    message = "You are not a member of this group."


# ─────────────────────────────────────────────────────────────────
# State conflicts
# ─────────────────────────────────────────────────────────────────


class StateConflictError(DomainError):
    code = "STATE_CONFLICT"
    message = "Operation cannot be completed at this time."
    http_status = 409


class GroupNotFoundError(StateConflictError):
    code = "GROUP_NOT_FOUND"
    message = "Group not found."
    http_status = 404


class OccurrenceNotFoundError(StateConflictError):
    code = "OCCURRENCE_NOT_FOUND"
    message = "Game not found."
    http_status = 404


class AlreadyMemberError(StateConflictError):
    code = "ALREADY_MEMBER"
    message = "You are already a member of this group."


class NotAMemberError(StateConflictError):
    code = "NOT_A_MEMBER"
    message = "You are not a member of this group."


class TargetNotMemberError(StateConflictError):
    code = "TARGET_NOT_MEMBER"
    message = "That user is not a member of this group."


class CannotRemoveSelfError(StateConflictError):
    code = "CANNOT_REMOVE_SELF"
    message = 'You cannot remove yourself. Use "Leave Group" instead.'


class AlreadyHostedError(StateConflictError):
    code = "ALREADY_HOSTED"
    message = "Someone has already volunteered to host this game."


# ─────────────────────────────────────────────────────────────────
# Store
# ─────────────────────────────────────────────────────────────────


class StoreError(Exception):
    """Backing store failure. Retryable by the caller."""

    code = "STORE_ERROR"

    def __init__(self, message: str = "Service temporarily unavailable. Please try again."):
        self.message = message
        super().__init__(message)


class TransactionConflictError(StoreError):
    code = "TRANSACTION_CONFLICT"


class InviteCodeExhaustedError(StoreError):
    code = "INVITE_CODE_EXHAUSTED"


def _collect_statuses(root: Type[DomainError]) -> Dict[str, int]:
    statuses = {root.code: root.http_status}
    for sub in root.__subclasses__():
        statuses.update(_collect_statuses(sub))
    return statuses


_STATUS_BY_CODE = _collect_statuses(DomainError)


def http_status_for(code: Optional[str]) -> int:
    """HTTP status for a domain error code; 400 for unknown codes."""
    return _STATUS_BY_CODE.get(code or "", 400)
