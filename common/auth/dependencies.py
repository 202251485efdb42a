"""
FastAPI authentication dependencies.

Provides a factory creating the dependency that turns a bearer token into
the verified claims of the acting user. Works with any AuthProvider
implementation.

Example:
    from common.auth import FirebaseAuth, create_auth_dependency

    auth = FirebaseAuth()
    get_claims = create_auth_dependency(lambda: auth)

    @router.get("/groups")
    async def my_groups(claims: dict = Depends(get_claims)):
        return await service.list_user_groups(claims["sub"])
"""

from typing import Any, Callable, Dict, Optional
from fastapi import Header

from common.auth.base import AuthProvider
from common.utils.exceptions import UnauthorizedException


def create_auth_dependency(
    get_auth_provider: Callable[[], AuthProvider],
    header_name: str = "Authorization",
    scheme: str = "Bearer",
):
    """
    Factory to create FastAPI auth dependencies.

    Args:
        get_auth_provider: Callable that returns the AuthProvider instance
        header_name: Header to extract token from (default: Authorization)
        scheme: Auth scheme prefix (default: Bearer)

    Returns:
        A FastAPI dependency function returning the verified token claims,
        with the user id under ``sub``
    """

    async def get_current_user_claims(
        authorization: Optional[str] = Header(None, alias=header_name),
    ) -> Dict[str, Any]:
        """
        Extract and verify the token from the authorization header.

        Raises:
            UnauthorizedException: If token is missing, invalid, or expired
        """
        if not authorization:
            raise UnauthorizedException("Please sign in to continue.", code="UNAUTHORIZED")

        prefix = f"{scheme} "
        if not authorization.startswith(prefix):
            raise UnauthorizedException(
                f"Invalid authorization scheme. Expected: {scheme}",
                code="INVALID_AUTH_SCHEME",
            )

        token = authorization[len(prefix):].strip()
        if not token:
            raise UnauthorizedException("Token is empty", code="EMPTY_TOKEN")

        auth = get_auth_provider()
        try:
            payload = await auth.verify_token(token)
        except ValueError as e:
            raise UnauthorizedException(str(e), code="INVALID_TOKEN")

        user_id = payload.get("sub") or payload.get("uid")
        if not user_id:
            raise UnauthorizedException("Token missing user ID", code="INVALID_TOKEN")

        payload["sub"] = user_id
        return payload

    return get_current_user_claims
