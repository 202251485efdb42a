"""
Utilities module - Result helpers and HTTP exceptions.
"""

from common.utils.responses import (
    success_result,
    error_result,
    success_response,
    returns_result,
)
from common.utils.exceptions import (
    APIException,
    UnauthorizedException,
    ServiceUnavailableException,
)

__all__ = [
    "success_result",
    "error_result",
    "success_response",
    "returns_result",
    "APIException",
    "UnauthorizedException",
    "ServiceUnavailableException",
]
