"""
Game night application settings.

Extends the base settings with group scheduling configuration.
"""

from typing import Literal

from common.config import BaseAppSettings


class Settings(BaseAppSettings):
    """Game night specific settings."""

    # ==========================================================================
    # Store
    # ==========================================================================
    # "mongo" needs a replica set; "memory" keeps everything in-process
    STORE_BACKEND: Literal["mongo", "memory"] = "mongo"

    # Max ids per $in query
    IN_QUERY_CHUNK_SIZE: int = 10

    # Memory backend commit retries before giving up
    TRANSACTION_MAX_RETRIES: int = 5

    # ==========================================================================
    # Groups
    # ==========================================================================
    # Occurrences generated ahead when a schedule is set
    OCCURRENCE_HORIZON: int = 8

    # Invite code collision retries
    INVITE_CODE_MAX_ATTEMPTS: int = 10


# Global settings instance
settings = Settings()
