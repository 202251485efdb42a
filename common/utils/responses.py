"""
Standard result helpers.

Services return plain dicts of the shape ``{"success": bool, "error"?: str,
...data}`` so callers can render a message without catching exceptions for
expected business-rule violations.

Example:
    from common.utils import returns_result

    class GroupService:
        @returns_result(DomainError)
        async def join(self, user_id: str, ref: str) -> dict:
            group = await self._store.join_atomic(ref, user_id)
            return {"group_id": group.id}

    result = await service.join("u1", "ABC234")
    if not result["success"]:
        print(result["error"])
"""

import functools
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple, Type

logger = logging.getLogger(__name__)


def success_result(**data: Any) -> Dict[str, Any]:
    """
    Create a standard success result.

    Args:
        **data: Result fields, merged next to ``success``

    Returns:
        Dictionary with success=True and the given fields
    """
    return {"success": True, **data}


def error_result(
    message: str,
    code: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a standard error result.

    Args:
        message: Human-readable error message
        code: Machine-readable error code (e.g., "GROUP_NOT_FOUND")

    Returns:
        Dictionary with success=False and error info
    """
    result: Dict[str, Any] = {"success": False, "error": message}

    if code:
        result["code"] = code

    return result


def success_response(
    data: Any = None,
    message: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Create a standard success response for endpoints with no service result.

    Args:
        data: The response data
        message: Optional success message

    Returns:
        Dictionary with success=True and optional data/message
    """
    response: Dict[str, Any] = {"success": True}

    if data is not None:
        response["data"] = data

    if message:
        response["message"] = message

    return response


def returns_result(*recoverable: Type[Exception]):
    """
    Decorator turning an async service method into a result-returning one.

    The wrapped method returns a dict of result fields (or None). Exceptions
    of the ``recoverable`` types become ``error_result`` dicts, using the
    exception's ``message`` and ``code`` attributes when present. Anything
    else propagates unchanged.

    Args:
        *recoverable: Exception types translated into error results
    """
    recoverable_types: Tuple[Type[Exception], ...] = tuple(recoverable)

    def decorator(
        func: Callable[..., Awaitable[Optional[Dict[str, Any]]]]
    ) -> Callable[..., Awaitable[Dict[str, Any]]]:
        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Dict[str, Any]:
            try:
                data = await func(*args, **kwargs)
            except recoverable_types as e:
                message = getattr(e, "message", None) or str(e)
                code = getattr(e, "code", None)
                logger.warning(f"{func.__qualname__} rejected: {code} {message}")
                return error_result(message, code=code)
            return success_result(**(data or {}))

        return wrapper

    return decorator
