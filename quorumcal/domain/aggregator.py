"""
Per-date aggregation of manual and recurring availability.

A manual window for (participant, date) fully replaces whatever the
participant's recurrences would produce on that date. The two are never
merged.
"""

from collections import defaultdict
from datetime import date
from typing import Dict, Iterable, List, Optional, Set, Tuple, Union

from .exceptions import ConflictError
from .models import AvailabilityWindow, Participant, RecurrencePattern
from .recurrence import expand, expand_all

ParticipantRef = Union[str, Participant]


def participant_ids(participants: Iterable[ParticipantRef]) -> List[str]:
    """Normalize a roster of ids or Participant objects to ids, keeping order."""
    ids: List[str] = []
    seen: Set[str] = set()
    for participant in participants:
        pid = participant.id if isinstance(participant, Participant) else participant
        if pid not in seen:
            ids.append(pid)
            seen.add(pid)
    return ids


class AvailabilityAggregator:
    """
    Builds the effective window of each participant for a date.

    Args:
        manual_windows: One-off windows as stored
        recurrences: Weekly patterns with their exceptions
    """

    def __init__(
        self,
        manual_windows: Iterable[AvailabilityWindow],
        recurrences: Iterable[RecurrencePattern],
    ):
        self._manual: Dict[Tuple[str, date], List[AvailabilityWindow]] = defaultdict(list)
        for window in manual_windows:
            self._manual[(window.participant_id, window.date)].append(window)

        self._recurrences: Dict[str, List[RecurrencePattern]] = defaultdict(list)
        for recurrence in recurrences:
            self._recurrences[recurrence.participant_id].append(recurrence)

    def for_date(
        self,
        day: date,
        participants: Iterable[ParticipantRef],
    ) -> Dict[str, AvailabilityWindow]:
        """
        Map each available participant to their effective window on ``day``.

        Participants without availability are absent from the result, as are
        windows of anyone not in ``participants``.

        Raises:
            ConflictError: If a participant has two manual windows, or two
                recurrence occurrences, on ``day``
        """
        effective: Dict[str, AvailabilityWindow] = {}

        for pid in participant_ids(participants):
            window = self._effective_window(pid, day)
            if window is not None:
                effective[pid] = window

        return effective

    def _effective_window(self, pid: str, day: date) -> Optional[AvailabilityWindow]:
        manual = self._manual.get((pid, day), [])
        if len(manual) > 1:
            raise ConflictError(f"Participant {pid} has {len(manual)} manual windows on {day}")
        if manual:
            return manual[0]

        occurrences = list(expand_all(self._recurrences.get(pid, []), day, day))
        if len(occurrences) > 1:
            raise ConflictError(f"Participant {pid} has overlapping recurrences on {day}")
        return occurrences[0] if occurrences else None

    def for_range(
        self,
        range_start: date,
        range_end: date,
        participants: Iterable[ParticipantRef],
    ) -> Dict[date, Dict[str, AvailabilityWindow]]:
        """
        Per-date window maps for every date in the range that has any window.

        Raises:
            ConflictError: If any date in the range is malformed
        """
        roster = participant_ids(participants)
        per_date: Dict[date, Dict[str, AvailabilityWindow]] = {}
        for day in self.candidate_dates(range_start, range_end):
            windows = self.for_date(day, roster)
            if windows:
                per_date[day] = windows
        return per_date

    def candidate_dates(self, range_start: date, range_end: date) -> List[date]:
        """
        Return the dates in [range_start, range_end] that carry any window,
        in chronological order.
        """
        days: Set[date] = {
            day for (_, day) in self._manual if range_start <= day <= range_end
        }
        for recurrences in self._recurrences.values():
            for recurrence in recurrences:
                days.update(expand(recurrence, range_start, range_end).dates())
        return sorted(days)

    def date_bounds(self) -> Tuple[Optional[date], Optional[date]]:
        """
        Earliest and latest dates mentioned by the data.

        Open-ended recurrences contribute only their explicit bounds.
        """
        mentioned: List[date] = [day for (_, day) in self._manual]
        for recurrences in self._recurrences.values():
            for recurrence in recurrences:
                mentioned.extend(d for d in (recurrence.valid_from, recurrence.valid_to) if d is not None)
        if not mentioned:
            return None, None
        return min(mentioned), max(mentioned)

    def has_open_recurrence(self) -> bool:
        """True if some recurrence has no end date."""
        return any(
            recurrence.valid_to is None
            for recurrences in self._recurrences.values()
            for recurrence in recurrences
        )
