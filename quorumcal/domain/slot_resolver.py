"""
Core business logic for resolving quorum slots on a date.

This is the heart of the application - pure domain logic without any
external dependencies (no API calls, no database, no I/O).
"""

from dataclasses import dataclass
from datetime import date
from typing import List, Mapping, Set, Tuple

from .models import DAY_END, DAY_START, AvailabilityWindow, ResolvedSlot, TimeWindow


@dataclass(frozen=True)
class _Segment:
    start: int
    end: int
    covering: Tuple[str, ...]


class QuorumSlotResolver:
    """
    Calculates the slots of a date where enough participants overlap.

    Algorithm (sweep line over minute-of-day boundaries):
    1. Collect every window start/end plus 00:00 and 23:59
    2. Each pair of consecutive boundaries is a micro-interval
    3. Find the participants whose window covers each micro-interval
    4. A micro-interval qualifies when that count reaches the threshold
    5. Merge runs of qualifying micro-intervals into maximal slots
    6. Filter by minimum duration
    7. Number the remaining slots in chronological order
    """

    def __init__(self, threshold: int, min_duration_hours: int = 0):
        if threshold < 1:
            raise ValueError(f"Threshold must be at least 1, got {threshold}")
        if min_duration_hours < 0:
            raise ValueError(f"Minimum duration cannot be negative, got {min_duration_hours}")
        self.threshold = threshold
        self.min_duration_hours = min_duration_hours

    def resolve(
        self,
        day: date,
        windows: Mapping[str, AvailabilityWindow],
    ) -> List[ResolvedSlot]:
        """
        Resolve the quorum slots of a single date.

        Args:
            day: The date being resolved
            windows: Effective window per participant id

        Returns:
            Chronologically ordered, non-overlapping slots; empty when nobody
            is available or the threshold can't be met
        """
        if len(windows) < self.threshold:
            return []

        ranges = {pid: window.time_window() for pid, window in windows.items()}

        segments = self._segments(ranges)
        merged = self._merge_qualifying(segments)

        # Step 6: Filter by minimum duration
        min_minutes = self.min_duration_hours * 60
        slots: List[ResolvedSlot] = []
        for slot_range, pids in merged:
            # Step 7: index among the slots that survive the filter
            slot = ResolvedSlot(
                date=day,
                window=slot_range,
                windows=tuple(windows[pid] for pid in sorted(pids)),
                index=len(slots),
            )
            if slot.duration_minutes() < min_minutes:
                continue
            slots.append(slot)

        return slots

    def max_simultaneous(self, windows: Mapping[str, AvailabilityWindow]) -> int:
        """Return the peak number of participants available at the same time."""
        if not windows:
            return 0
        ranges = {pid: window.time_window() for pid, window in windows.items()}
        return max(len(segment.covering) for segment in self._segments(ranges))

    def _segments(self, ranges: Mapping[str, TimeWindow]) -> List[_Segment]:
        """
        Split the day at every boundary and record who covers each piece.

        Example:
        P1: 00:00-23:59, P2: 00:00-12:00, P3: 14:00-23:59
        Result: [00:00-12:00 {P1,P2}, 12:00-14:00 {P1}, 14:00-23:59 {P1,P3}]
        """
        # Step 1: boundaries, always including the edges of the day
        boundary_set = {DAY_START, DAY_END}
        for time_range in ranges.values():
            boundary_set.add(time_range.start)
            boundary_set.add(time_range.end)

        # Step 2: sorted boundaries define the micro-intervals
        boundaries = sorted(boundary_set)

        # Step 3: covering participants per micro-interval
        segments: List[_Segment] = []
        for seg_start, seg_end in zip(boundaries, boundaries[1:]):
            covering = tuple(
                sorted(pid for pid, time_range in ranges.items() if time_range.covers(seg_start, seg_end))
            )
            segments.append(_Segment(start=seg_start, end=seg_end, covering=covering))

        return segments

    def _merge_qualifying(self, segments: List[_Segment]) -> List[Tuple[TimeWindow, frozenset]]:
        """
        Merge consecutive qualifying micro-intervals.

        Micro-intervals tile the day, so consecutive qualifying ones always
        touch (end == start) and merge; a non-qualifying one closes the slot.
        The participants of a merged slot are everyone covering any part of it.
        """
        merged: List[Tuple[TimeWindow, frozenset]] = []
        current_start = None
        current_end = None
        current_pids: Set[str] = set()

        for segment in segments:
            # Step 4: qualification
            if len(segment.covering) >= self.threshold:
                if current_start is None:
                    current_start = segment.start
                    current_pids = set()
                current_end = segment.end
                current_pids.update(segment.covering)
            elif current_start is not None:
                merged.append((TimeWindow(current_start, current_end), frozenset(current_pids)))
                current_start = None

        if current_start is not None:
            merged.append((TimeWindow(current_start, current_end), frozenset(current_pids)))

        return merged
