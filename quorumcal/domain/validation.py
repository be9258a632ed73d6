"""
Write-boundary validation for dates, times and recurrences.

Everything that reaches the slot resolver has passed through these helpers,
so the resolver itself can assume well-formed input.
"""

from datetime import date, datetime, time
from typing import Iterable, Optional, Tuple, Union

from dateutil.parser import isoparse, isoparser

from .exceptions import ConflictError, ValidationError
from .models import (
    DAY_END,
    DAY_START,
    AvailabilityWindow,
    RecurrencePattern,
    TimeWindow,
    format_minutes,
    time_of,
)

DateLike = Union[date, str]
ClockLike = Union[time, str, None]

_ISO_TIME = isoparser()


def parse_date(value: DateLike) -> date:
    """
    Parse a YYYY-MM-DD string (or pass a date through).

    Raises:
        ValidationError: If the value is not a calendar date
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or len(value.strip()) != 10:
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD")
    try:
        return isoparse(value.strip()).date()
    except ValueError as exc:
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc


def parse_clock(value: ClockLike) -> Optional[time]:
    """
    Parse an HH:MM time of day. ``None`` and empty strings stay ``None``.

    Seconds are accepted (database TIME columns carry them) and dropped.
    """
    if value is None:
        return None
    if isinstance(value, time):
        return value.replace(second=0, microsecond=0)
    if not isinstance(value, str):
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM")
    text = value.strip()
    if not text:
        return None
    try:
        parsed = _ISO_TIME.parse_isotime(text)
    except ValueError as exc:
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM") from exc
    # 24:00 parses as midnight
    if parsed.tzinfo is not None or text.startswith("24"):
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM")
    return parsed.replace(second=0, microsecond=0)


def normalize_time_range(
    start: Optional[time],
    end: Optional[time],
) -> Tuple[Optional[time], Optional[time]]:
    """Swap a reversed start/end pair; leave open sides untouched."""
    if start is not None and end is not None and start > end:
        return end, start
    return start, end


def validate_time_range(start: Optional[time], end: Optional[time]) -> TimeWindow:
    """
    Ensure a start/end pair forms a valid window.

    Raises:
        ValidationError: If end is not after start
    """
    if start is not None and end is not None and end <= start:
        raise ValidationError(
            f"End time {end.strftime('%H:%M')} must be after start time {start.strftime('%H:%M')}"
        )
    return TimeWindow.from_times(start, end)


def validate_weekday(day_of_week: int, allowed_weekdays: Iterable[int]) -> int:
    """Ensure a weekday number is in range and enabled for the calendar."""
    if not isinstance(day_of_week, int) or day_of_week not in range(7):
        raise ValidationError(
            f"day_of_week must be between 0 (Sunday) and 6 (Saturday), got {day_of_week!r}"
        )
    if day_of_week not in set(allowed_weekdays):
        raise ValidationError(f"Weekday {day_of_week} is not allowed for this calendar")
    return day_of_week


def validate_min_duration(window: TimeWindow, min_duration_hours: int) -> None:
    """Reject windows shorter than the calendar's minimum event duration."""
    if min_duration_hours <= 0 or window.is_all_day:
        return
    if window.duration_minutes() < min_duration_hours * 60:
        raise ValidationError(
            f"Availability {window} is shorter than the minimum of {min_duration_hours}h"
        )


def clamp_times(
    start: Optional[time],
    end: Optional[time],
    allowed_start: Optional[time],
    allowed_end: Optional[time],
) -> Tuple[Optional[time], Optional[time]]:
    """
    Narrow requested times to an allowed range.

    A missing side takes the allowed bound. When only one bound is configured,
    the other missing side becomes 00:00 or 23:59 so the result is a proper
    range. With no bounds configured the request is returned as-is.
    """
    if allowed_start is None and allowed_end is None:
        return start, end

    if allowed_start is not None:
        clamped_start = allowed_start if start is None or start < allowed_start else start
    elif start is None:
        clamped_start = time_of(DAY_START)
    else:
        clamped_start = start

    if allowed_end is not None:
        clamped_end = allowed_end if end is None or end > allowed_end else end
    elif end is None:
        clamped_end = time_of(DAY_END)
    else:
        clamped_end = end

    return clamped_start, clamped_end


def recurrences_overlap(
    start_a: Optional[date],
    end_a: Optional[date],
    start_b: Optional[date],
    end_b: Optional[date],
) -> bool:
    """
    Check whether two inclusive validity ranges intersect.

    ``None`` on either side is unbounded.
    """
    a_starts_before_b_ends = start_a is None or end_b is None or start_a <= end_b
    b_starts_before_a_ends = start_b is None or end_a is None or start_b <= end_a
    return a_starts_before_b_ends and b_starts_before_a_ends


def check_recurrence_overlap(
    candidate: RecurrencePattern,
    existing: Iterable[RecurrencePattern],
) -> None:
    """
    Reject a recurrence that collides with another of the same participant.

    Raises:
        ConflictError: If a pattern on the same weekday has an intersecting validity range
    """
    for other in existing:
        if other.id == candidate.id:
            continue
        if other.participant_id != candidate.participant_id:
            continue
        if other.day_of_week != candidate.day_of_week:
            continue
        if recurrences_overlap(candidate.valid_from, candidate.valid_to, other.valid_from, other.valid_to):
            raise ConflictError(
                f"Recurrence overlaps with existing recurrence {other.id} on the same day"
            )


def describe_window(start: Optional[time], end: Optional[time]) -> str:
    """Render an optional time pair the way summaries show it."""
    window = TimeWindow.from_times(start, end)
    if window.is_all_day:
        return "all day"
    return f"{format_minutes(window.start)}-{format_minutes(window.end)}"


def validate_window(window: AvailabilityWindow, min_duration_hours: int = 0) -> TimeWindow:
    """
    Check a manual window before it is stored.

    Raises:
        ValidationError: If the times are reversed or the window is too short
    """
    time_window = validate_time_range(window.start_time, window.end_time)
    validate_min_duration(time_window, min_duration_hours)
    return time_window


def validate_recurrence(recurrence: RecurrencePattern, allowed_weekdays: Iterable[int]) -> TimeWindow:
    """
    Check a recurrence before it is stored.

    Raises:
        ValidationError: If the weekday is not allowed or the times are reversed
    """
    validate_weekday(recurrence.day_of_week, allowed_weekdays)
    if (
        recurrence.valid_from is not None
        and recurrence.valid_to is not None
        and recurrence.valid_to < recurrence.valid_from
    ):
        raise ValidationError(
            f"Recurrence end {recurrence.valid_to} is before its start {recurrence.valid_from}"
        )
    return validate_time_range(recurrence.start_time, recurrence.end_time)
