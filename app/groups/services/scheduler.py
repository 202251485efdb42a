"""
Recurring occurrence generation.

Turns a group's schedule (game days, time of day, frequency) into the next
N concrete calendar dates. Pure: "today" is always passed in, nothing here
reads the wall clock or touches the store.

Frequencies:
    weekly    every matching weekday
    biweekly  every other matching weekday, alternating independently per
              weekday from its first date on/after today
    monthly   only the first matching date of each calendar month
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time as dt_time, timedelta
from typing import Iterable, List, Optional, Tuple

from app.groups.errors import InvalidScheduleError
from app.groups.models import Frequency

WEEKDAY_NAMES = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")
MAX_HORIZON = 52
DEFAULT_HORIZON = 8

_TIME_PATTERN = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")
_FREQUENCY_LABELS = {
    Frequency.WEEKLY.value: "weekly",
    Frequency.BIWEEKLY.value: "every other week",
    Frequency.MONTHLY.value: "monthly",
}


@dataclass(frozen=True)
class ScheduleSpec:
    """A validated schedule. Build it with ``ScheduleSpec.parse``."""

    weekdays: Tuple[str, ...]
    time: str
    frequency: str

    @classmethod
    def parse(
        cls,
        weekdays: Optional[Iterable[str]],
        time: Optional[str],
        frequency: Optional[str],
    ) -> "ScheduleSpec":
        """
        Validate raw schedule input.

        Weekday names are matched case-insensitively and returned in
        Monday-first order; the time is zero-padded to ``HH:MM``.

        Raises:
            InvalidScheduleError: empty or unknown weekdays, bad time or frequency
        """
        if not weekdays:
            raise InvalidScheduleError("Please choose at least one game day.")

        indexes = set()
        for name in weekdays:
            canonical = str(name).strip().capitalize()
            if canonical not in WEEKDAY_NAMES:
                raise InvalidScheduleError(f"Unknown game day: {name}")
            indexes.add(WEEKDAY_NAMES.index(canonical))

        match = _TIME_PATTERN.match((time or "").strip())
        if not match:
            raise InvalidScheduleError("Please choose a valid time (HH:MM).")
        normalized_time = f"{int(match.group(1)):02d}:{match.group(2)}"

        frequency = getattr(frequency, "value", frequency)
        if frequency not in _FREQUENCY_LABELS:
            raise InvalidScheduleError("Frequency must be weekly, biweekly or monthly.")

        return cls(
            weekdays=tuple(WEEKDAY_NAMES[i] for i in sorted(indexes)),
            time=normalized_time,
            frequency=Frequency(frequency).value,
        )

    @property
    def weekday_indexes(self) -> List[int]:
        return [WEEKDAY_NAMES.index(name) for name in self.weekdays]


@dataclass(frozen=True)
class ScheduledSlot:
    date: date
    time: str

    @property
    def starts_at(self) -> datetime:
        """Naive local start."""
        hour, minute = (int(part) for part in self.time.split(":"))
        return datetime.combine(self.date, dt_time(hour, minute))


class OccurrenceScheduler:
    """
    Computes upcoming occurrence dates for a schedule.

    Args:
        horizon: Default number of occurrences to materialize
        include_today: Whether a schedule matching today's weekday yields
            an occurrence today
    """

    def __init__(self, horizon: int = DEFAULT_HORIZON, include_today: bool = True):
        self.horizon = horizon
        self.include_today = include_today

    def generate(
        self,
        schedule: ScheduleSpec,
        today: date,
        horizon_count: Optional[int] = None,
    ) -> List[ScheduledSlot]:
        """
        Next ``horizon_count`` occurrences on or after ``today``.

        Returns:
            Exactly ``horizon_count`` slots, ascending, one per date
        """
        count = self.horizon if horizon_count is None else horizon_count
        if count < 1 or count > MAX_HORIZON:
            raise InvalidScheduleError(f"Horizon must be between 1 and {MAX_HORIZON}.")
        if not schedule.weekdays:
            raise InvalidScheduleError("Please choose at least one game day.")

        if schedule.frequency == Frequency.MONTHLY.value:
            dates = self._monthly_dates(schedule, today, count)
        else:
            step = 14 if schedule.frequency == Frequency.BIWEEKLY.value else 7
            dates = self._cadence_dates(schedule, today, count, step)

        return [ScheduledSlot(date=d, time=schedule.time) for d in dates]

    def upcoming(
        self,
        schedule: ScheduleSpec,
        now: datetime,
        horizon_count: Optional[int] = None,
    ) -> List[ScheduledSlot]:
        """
        Slots from ``generate`` for today onwards that start after ``now``.

        Only a slot on today's date can be dropped, so the result is one
        short of the horizon when today's game has already started.
        """
        return [
            slot for slot in self.generate(schedule, now.date(), horizon_count)
            if slot.starts_at > now
        ]

    def _first_on_or_after(self, weekday: int, start: date, today: date) -> date:
        offset = (weekday - start.weekday()) % 7
        candidate = start + timedelta(days=offset)
        if candidate == today and not self.include_today:
            candidate += timedelta(days=7)
        return candidate

    def _cadence_dates(self, schedule: ScheduleSpec, today: date, count: int, step: int) -> List[date]:
        candidates = set()
        for weekday in schedule.weekday_indexes:
            # Each weekday anchors its own alternation
            first = self._first_on_or_after(weekday, today, today)
            candidates.update(first + timedelta(days=step * i) for i in range(count))
        return sorted(candidates)[:count]

    def _monthly_dates(self, schedule: ScheduleSpec, today: date, count: int) -> List[date]:
        dates: List[date] = []
        month_start = today.replace(day=1)
        while len(dates) < count:
            start = max(month_start, today)
            first = min(
                self._first_on_or_after(weekday, start, today)
                for weekday in schedule.weekday_indexes
            )
            if first.month == month_start.month:
                dates.append(first)
            month_start = _next_month(month_start)
        return dates


def _next_month(month_start: date) -> date:
    if month_start.month == 12:
        return month_start.replace(year=month_start.year + 1, month=1)
    return month_start.replace(month=month_start.month + 1)


def format_time_12h(time_24: str) -> str:
    """'19:00' -> '7:00 PM'"""
    hours, minutes = time_24.split(":")
    hour = int(hours)
    suffix = "PM" if hour >= 12 else "AM"
    return f"{hour % 12 or 12}:{minutes} {suffix}"


def describe(schedule: ScheduleSpec) -> str:
    """Human-readable schedule, e.g. 'Tuesdays and Thursdays at 7:00 PM (weekly)'."""
    days = [f"{name}s" for name in schedule.weekdays]
    if len(days) == 1:
        day_text = days[0]
    elif len(days) == 2:
        day_text = f"{days[0]} and {days[1]}"
    else:
        day_text = f"{', '.join(days[:-1])}, and {days[-1]}"
    label = _FREQUENCY_LABELS[schedule.frequency]
    return f"{day_text} at {format_time_12h(schedule.time)} ({label})"
