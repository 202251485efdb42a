"""
Group, membership, occurrence and attendance records.

Records are pydantic models converted from and to MongoDB documents with
``from_doc`` / ``to_doc``. Document ids are derived from natural keys where
the data model has one, so writes keyed by them are idempotent.
"""

from datetime import date, datetime, time as dt_time
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Frequency(str, Enum):
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"


class AttendanceStatus(str, Enum):
    GOING = "going"
    MAYBE = "maybe"
    NOT_GOING = "not-going"


# ─────────────────────────────────────────────────────────────────
# Natural keys
# ─────────────────────────────────────────────────────────────────


def membership_id(user_id: str, group_id: str) -> str:
    return f"{user_id}_{group_id}"


def occurrence_id(group_id: str, on: date) -> str:
    return f"{group_id}_{on.isoformat()}"


def response_id(occurrence_id: str, user_id: str) -> str:
    return f"{occurrence_id}_{user_id}"


class _Record(BaseModel):
    """Base for stored records: ``id`` maps to the document ``_id``."""

    model_config = ConfigDict(use_enum_values=True)

    id: str

    @classmethod
    def from_doc(cls, doc: Dict[str, Any]):
        data = {k: v for k, v in doc.items() if k != "_id"}
        return cls(id=str(doc["_id"]), **data)

    def to_doc(self) -> Dict[str, Any]:
        doc = self.model_dump(exclude={"id"})
        doc["_id"] = self.id
        return doc


class Group(_Record):
    name: str
    game_days: List[str]
    time: str
    timezone: str
    frequency: Frequency
    invite_code: str
    admin_id: str
    member_count: int = 0
    created_at: datetime
    updated_at: datetime


class Membership(_Record):
    user_id: str
    group_id: str
    is_admin: bool = False
    joined_at: datetime


class UserProfile(_Record):
    """Display name and photo shown next to a user id; ``id`` is the user id."""

    name: str
    photo: Optional[str] = None
    updated_at: datetime


class HostDetails(BaseModel):
    """Display fields shown for an occurrence's host."""

    name: str
    address: Optional[str] = None


class Occurrence(_Record):
    group_id: str
    date: str  # ISO calendar date, sortable as a string
    time: str
    host_id: Optional[str] = None
    host_name: Optional[str] = None
    host_address: Optional[str] = None
    created_at: datetime

    @property
    def calendar_date(self) -> date:
        return date.fromisoformat(self.date)

    @property
    def starts_at(self) -> datetime:
        """Naive local start; the group's timezone is display-only."""
        hour, minute = (int(part) for part in self.time.split(":"))
        return datetime.combine(self.calendar_date, dt_time(hour, minute))

    @property
    def has_host(self) -> bool:
        return self.host_id is not None


class AttendanceResponse(_Record):
    occurrence_id: str
    group_id: str
    user_id: str
    status: AttendanceStatus
    responded_at: datetime


# ─────────────────────────────────────────────────────────────────
# API request bodies
# ─────────────────────────────────────────────────────────────────


class CreateGroupRequest(BaseModel):
    name: str
    game_days: List[str] = Field(..., alias="gameDays")
    time: str
    frequency: str = Frequency.WEEKLY.value
    timezone: str = "America/New_York"

    model_config = ConfigDict(populate_by_name=True)


class UpdateGroupRequest(BaseModel):
    name: Optional[str] = None
    timezone: Optional[str] = None
    game_days: Optional[List[str]] = Field(None, alias="gameDays")
    time: Optional[str] = None
    frequency: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class TransferAdminRequest(BaseModel):
    new_admin_id: str = Field(..., alias="newAdminId")

    model_config = ConfigDict(populate_by_name=True)


class UpdateProfileRequest(BaseModel):
    name: str
    photo: Optional[str] = None


class RespondRequest(BaseModel):
    status: str


class VolunteerHostRequest(BaseModel):
    name: str
    address: Optional[str] = None
