"""
Game Groups System

Recurring game-night groups: admin-managed membership joined by invite code,
scheduled occurrences generated from the group's game days, RSVPs and
volunteer hosts.
"""

from app.groups.services.lifecycle_service import GroupLifecycleService
from app.groups.services.attendance_service import AttendanceService

__all__ = [
    "GroupLifecycleService",
    "AttendanceService",
]
