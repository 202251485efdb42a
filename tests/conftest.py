"""Shared test fixtures for game night backend tests."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.groups.services.attendance_service import AttendanceService
from app.groups.services.invite_code import InviteCodeGenerator
from app.groups.services.lifecycle_service import GroupLifecycleService
from app.groups.services.scheduler import OccurrenceScheduler, ScheduleSpec
from app.groups.store.memory import MemoryBackend
from app.groups.store.membership_store import MembershipStore

# Monday noon UTC
MONDAY = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Settable clock; ``tick`` advances it so join order is observable."""

    def __init__(self, now: datetime = MONDAY):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def tick(self, **delta) -> datetime:
        self.now = self.now + timedelta(**(delta or {"minutes": 1}))
        return self.now


def scripted_codes(*codes: str) -> InviteCodeGenerator:
    """Invite code generator yielding the given codes in order."""
    chars = iter("".join(codes))
    return InviteCodeGenerator(choice=lambda alphabet: next(chars))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def backend():
    return MemoryBackend(max_retries=5)


@pytest.fixture
def scheduler():
    return OccurrenceScheduler(horizon=8)


@pytest.fixture
def store(backend, scheduler, clock):
    return MembershipStore(
        backend=backend,
        scheduler=scheduler,
        invite_codes=InviteCodeGenerator(),
        clock=clock,
        local_tz=timezone.utc,
    )


@pytest.fixture
def lifecycle(store, scheduler):
    return GroupLifecycleService(store=store, scheduler=scheduler)


@pytest.fixture
def attendance(store):
    return AttendanceService(store=store)


@pytest.fixture
def thursday_weekly():
    return ScheduleSpec.parse(["Thursday"], "19:00", "weekly")


@pytest.fixture
def mock_collection():
    collection = AsyncMock()
    # Motor's find() returns a cursor synchronously (not a coroutine),
    # so use MagicMock for it. Async methods like find_one, insert_one,
    # delete_many etc. stay as AsyncMock.
    collection.find = MagicMock()
    return collection


@pytest.fixture
def mock_db(mock_collection):
    db = MagicMock()
    db.__getitem__ = MagicMock(return_value=mock_collection)
    return db
