"""
Abstract authentication provider interface.

The group services never read ambient sign-in state. The HTTP layer asks an
AuthProvider to verify the caller's bearer token and passes the resulting
user id into every service call explicitly.

Example:
    from common.auth import AuthProvider, FirebaseAuth

    def get_auth_provider(settings) -> AuthProvider:
        return FirebaseAuth(settings.FIREBASE_CREDENTIALS_PATH)
"""

from abc import ABC, abstractmethod
from typing import Dict, Any


class AuthProvider(ABC):
    """
    Abstract authentication provider.

    Implement this interface for different token issuers.
    """

    @abstractmethod
    async def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify an authentication token.

        Args:
            token: The token to verify

        Returns:
            Dictionary containing decoded token claims (at minimum: sub/uid)

        Raises:
            ValueError: If token is invalid, expired, or revoked
        """
        pass
