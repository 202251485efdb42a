"""
Common library for reusable infrastructure components.

- database: Async MongoDB connection with Motor
- auth: Bearer token verification (Firebase)
- utils: Service results, HTTP exceptions
- config: Base settings class
"""

from common.database import MongoDB
from common.auth import AuthProvider, FirebaseAuth, create_auth_dependency
from common.utils import (
    success_result,
    error_result,
    success_response,
    returns_result,
    APIException,
    UnauthorizedException,
    ServiceUnavailableException,
)
from common.config import BaseAppSettings

__all__ = [
    # Database
    "MongoDB",
    # Auth
    "AuthProvider",
    "FirebaseAuth",
    "create_auth_dependency",
    # Utils
    "success_result",
    "error_result",
    "success_response",
    "returns_result",
    "APIException",
    "UnauthorizedException",
    "ServiceUnavailableException",
    # Config
    "BaseAppSettings",
]
