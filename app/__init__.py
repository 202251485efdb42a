"""
Game night application-specific code.

This package contains the group coordination implementation:
- groups: Groups, memberships, recurring games and attendance
- config: Application settings

Uses generic infrastructure from the common/ package.
"""

from app.config import settings

__all__ = ["settings"]
