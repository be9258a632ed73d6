"""
Domain models for availability windows, recurrences and resolved slots.

Times of day are handled as integer minutes since midnight so that every
comparison in the engine is exact. The last representable minute of a day is
23:59, and a window spanning 00:00-23:59 is the all-day window.
"""

from dataclasses import dataclass, field
from datetime import date, time
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from .exceptions import ValidationError

DAY_START = 0
DAY_END = 23 * 60 + 59  # 23:59

# Weekday numbering used by the calendar store: 0=Sunday, 6=Saturday
SUNDAY, MONDAY, TUESDAY, WEDNESDAY, THURSDAY, FRIDAY, SATURDAY = range(7)

WEEKDAY_NAMES = {
    SUNDAY: "Sunday",
    MONDAY: "Monday",
    TUESDAY: "Tuesday",
    WEDNESDAY: "Wednesday",
    THURSDAY: "Thursday",
    FRIDAY: "Friday",
    SATURDAY: "Saturday",
}


def weekday_of(day: date) -> int:
    """Return the store weekday number (0=Sunday) of a date."""
    return day.isoweekday() % 7


def minutes_of(value: time) -> int:
    """Convert a time of day to minutes since midnight."""
    return value.hour * 60 + value.minute


def format_minutes(minutes: int) -> str:
    """Format minutes since midnight as HH:MM."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def time_of(minutes: int) -> time:
    """Convert minutes since midnight back to a time of day."""
    return time(hour=minutes // 60, minute=minutes % 60)


class Source(str, Enum):
    """Where an availability window came from."""
    MANUAL = "manual"
    RECURRING = "recurring"


class HolidaysPolicy(str, Enum):
    """How public holidays interact with the allowed weekdays."""
    IGNORE = "ignore"
    ALLOW = "allow"
    BLOCK = "block"


@dataclass(frozen=True)
class TimeWindow:
    """
    Represents an immutable wall-clock range within a single day.

    Invariant: start must be before end, both within 00:00-23:59.
    """
    start: int
    end: int

    def __post_init__(self):
        if not DAY_START <= self.start <= DAY_END or not DAY_START <= self.end <= DAY_END:
            raise ValidationError(
                f"Time window {self.start}-{self.end} is outside of the day"
            )
        if self.start >= self.end:
            raise ValidationError(
                f"Start time {format_minutes(self.start)} must be before "
                f"end time {format_minutes(self.end)}"
            )

    @classmethod
    def from_times(cls, start: Optional[time], end: Optional[time]) -> "TimeWindow":
        """
        Build a window from optional times.

        A missing start means midnight and a missing end means 23:59, so a
        pair of ``None`` values is the all-day window.
        """
        start_minutes = DAY_START if start is None else minutes_of(start)
        end_minutes = DAY_END if end is None else minutes_of(end)
        return cls(start=start_minutes, end=end_minutes)

    @property
    def is_all_day(self) -> bool:
        return self.start == DAY_START and self.end == DAY_END

    def duration_minutes(self) -> int:
        """Return the duration in minutes."""
        return self.end - self.start

    def covers(self, start: int, end: int) -> bool:
        """Check if this window spans the whole of [start, end]."""
        return self.start <= start and self.end >= end

    def overlaps(self, other: "TimeWindow") -> bool:
        """Check if this window overlaps with another."""
        return self.start < other.end and self.end > other.start

    def __str__(self) -> str:
        return f"{format_minutes(self.start)}-{format_minutes(self.end)}"


ALL_DAY = TimeWindow(start=DAY_START, end=DAY_END)


@dataclass(frozen=True)
class Participant:
    """A member of a calendar."""
    id: str
    name: str


@dataclass(frozen=True)
class AvailabilityWindow:
    """
    A participant's availability on one date.

    ``start_time``/``end_time`` left as ``None`` mean the whole day.
    """
    participant_id: str
    date: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    source: Source = Source.MANUAL
    recurrence_id: Optional[str] = None
    note: str = ""

    @property
    def is_all_day(self) -> bool:
        return self.time_window().is_all_day

    def time_window(self) -> TimeWindow:
        """Return the wall-clock window, raising ValidationError if malformed."""
        return TimeWindow.from_times(self.start_time, self.end_time)


@dataclass(frozen=True)
class RecurrencePattern:
    """
    A weekly availability template for one participant.

    ``valid_from``/``valid_to`` bound the pattern inclusively; ``None`` leaves
    that side open. Dates in ``exceptions`` produce no occurrence at all.
    """
    id: str
    participant_id: str
    day_of_week: int
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    valid_from: Optional[date] = None
    valid_to: Optional[date] = None
    exceptions: FrozenSet[date] = field(default_factory=frozenset)
    note: str = ""

    def __post_init__(self):
        if self.day_of_week not in range(7):
            raise ValidationError(
                f"day_of_week must be between 0 (Sunday) and 6 (Saturday), got {self.day_of_week}"
            )

    def is_active_on(self, day: date) -> bool:
        """Check whether this pattern yields an occurrence on ``day``."""
        if weekday_of(day) != self.day_of_week:
            return False
        if self.valid_from is not None and day < self.valid_from:
            return False
        if self.valid_to is not None and day > self.valid_to:
            return False
        return day not in self.exceptions

    def occurrence_on(self, day: date) -> AvailabilityWindow:
        """Materialize the recurring window for ``day``."""
        return AvailabilityWindow(
            participant_id=self.participant_id,
            date=day,
            start_time=self.start_time,
            end_time=self.end_time,
            source=Source.RECURRING,
            recurrence_id=self.id,
            note=self.note,
        )


@dataclass(frozen=True)
class ResolvedSlot:
    """
    A maximal continuous stretch of a date that meets quorum.

    ``windows`` holds the effective windows of the participants attributed to
    the slot, ordered by participant id.
    """
    date: date
    window: TimeWindow
    windows: Tuple[AvailabilityWindow, ...]
    index: int = 0

    @property
    def start_time(self) -> str:
        return format_minutes(self.window.start)

    @property
    def end_time(self) -> str:
        return format_minutes(self.window.end)

    @property
    def participant_ids(self) -> FrozenSet[str]:
        return frozenset(w.participant_id for w in self.windows)

    @property
    def is_all_day(self) -> bool:
        return self.window.is_all_day

    def duration_minutes(self) -> int:
        """Return the duration in minutes, counting an all-day slot as 24 hours."""
        if self.is_all_day:
            return 24 * 60
        return self.window.duration_minutes()

    def format_display(self) -> str:
        """
        Format the slot for display.
        Format: Weekday, YYYY-MM-DD | HH:MM - HH:MM (N participants)
        """
        weekday = WEEKDAY_NAMES[weekday_of(self.date)]
        span = "all day" if self.is_all_day else f"{self.start_time} - {self.end_time}"
        return f"{weekday}, {self.date.isoformat()} | {span} ({len(self.windows)} participants)"


@dataclass(frozen=True)
class Snapshot:
    """Everything a store holds about one calendar's availability at a point in time."""
    participants: Tuple[Participant, ...] = ()
    windows: Tuple[AvailabilityWindow, ...] = ()
    recurrences: Tuple[RecurrencePattern, ...] = ()

    def participant_names(self) -> Dict[str, str]:
        return {participant.id: participant.name for participant in self.participants}
