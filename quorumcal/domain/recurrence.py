"""
Weekly recurrence expansion.

Uses python-dateutil's rrule to walk the matching weekdays of a range, then
drops exception dates. Exceptions suppress an occurrence entirely; they never
edit its times.
"""

from datetime import date, datetime, time
from typing import Iterable, Iterator

from dateutil.rrule import FR, MO, SA, SU, TH, TU, WE, WEEKLY, rrule

from .models import (
    AvailabilityWindow,
    FRIDAY,
    MONDAY,
    RecurrencePattern,
    SATURDAY,
    SUNDAY,
    THURSDAY,
    TUESDAY,
    WEDNESDAY,
)

_RRULE_WEEKDAYS = {
    SUNDAY: SU,
    MONDAY: MO,
    TUESDAY: TU,
    WEDNESDAY: WE,
    THURSDAY: TH,
    FRIDAY: FR,
    SATURDAY: SA,
}


class RecurrenceExpansion:
    """
    Lazy, finite and restartable sequence of recurring windows.

    Every call to ``iter()`` walks the range again from the start.
    """

    def __init__(self, recurrence: RecurrencePattern, range_start: date, range_end: date):
        self.recurrence = recurrence
        self.range_start = range_start
        self.range_end = range_end

    def __iter__(self) -> Iterator[AvailabilityWindow]:
        recurrence = self.recurrence
        first = self.range_start
        last = self.range_end
        if recurrence.valid_from is not None:
            first = max(first, recurrence.valid_from)
        if recurrence.valid_to is not None:
            last = min(last, recurrence.valid_to)
        if first > last:
            return

        rule = rrule(
            WEEKLY,
            dtstart=datetime.combine(first, time()),
            until=datetime.combine(last, time()),
            byweekday=_RRULE_WEEKDAYS[recurrence.day_of_week],
        )
        for occurrence in rule:
            day = occurrence.date()
            if day in recurrence.exceptions:
                continue
            yield recurrence.occurrence_on(day)

    def dates(self) -> list:
        """Return the occurrence dates as a list."""
        return [window.date for window in self]


def expand(recurrence: RecurrencePattern, range_start: date, range_end: date) -> RecurrenceExpansion:
    """
    Expand a recurrence into per-date windows over [range_start, range_end].

    Args:
        recurrence: The weekly pattern to expand
        range_start: First date of the queried range (inclusive)
        range_end: Last date of the queried range (inclusive)

    Returns:
        A RecurrenceExpansion; empty when the range or validity bounds don't meet
    """
    return RecurrenceExpansion(recurrence, range_start, range_end)


def expand_all(
    recurrences: Iterable[RecurrencePattern],
    range_start: date,
    range_end: date,
) -> Iterator[AvailabilityWindow]:
    """Chain the expansions of several recurrences."""
    for recurrence in recurrences:
        yield from expand(recurrence, range_start, range_end)
