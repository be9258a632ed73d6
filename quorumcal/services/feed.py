"""
Feed service: resolves quorum slots for a calendar and publishes them.

The service coordinates a snapshot store, the domain engine (eligibility,
aggregation, slot resolution) and the iCalendar renderer. Every request
recomputes slots from the current snapshot, so repeated calls over unchanged
data return identical slots and UIDs.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, time, timedelta
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Protocol, Tuple

from ..adapters.ics_renderer import ICSRenderer
from ..config import CalendarConfig
from ..domain.aggregator import AvailabilityAggregator
from ..domain.eligibility import DateEligibility
from ..domain.exceptions import ConflictError, ValidationError
from ..domain.models import AvailabilityWindow, Participant, ResolvedSlot, Snapshot, Source
from ..domain.slot_resolver import QuorumSlotResolver
from ..domain.validation import parse_date

logger = logging.getLogger(__name__)

FEED_HEADERS = {
    "Content-Type": "text/calendar; charset=utf-8",
    "Content-Disposition": 'inline; filename="calendar.ics"',
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

_HOST_HEADERS = ("X-Forwarded-Host", "X-Real-Host", "Host")


class AvailabilityStore(Protocol):
    """Protocol describing the store behaviour needed by the service."""

    def list_calendars(self) -> List[CalendarConfig]:
        """Return the settings of every calendar in the store."""

    def get_calendar(self, calendar_id: str) -> CalendarConfig:
        """Return the calendar settings, raising NotFoundError if unknown."""

    def get_snapshot(self, calendar_id: str) -> Snapshot:
        """Return participants, windows and recurrences of a calendar."""


def resolve_host(headers: Mapping[str, str], default_domain: str) -> str:
    """
    Pick the host used in event UIDs.

    Order: X-Forwarded-Host, X-Real-Host, Host, then ``default_domain``.
    Header names match case-insensitively; a forwarded list keeps its first entry.
    """
    lowered = {name.lower(): value for name, value in headers.items()}
    for name in _HOST_HEADERS:
        value = lowered.get(name.lower(), "")
        host = value.split(",")[0].strip()
        if host:
            return host
    return default_domain


@dataclass(frozen=True)
class FeedResponse:
    """An ICS body with the HTTP headers it should be served with."""
    body: str
    headers: Dict[str, str] = field(default_factory=lambda: dict(FEED_HEADERS))


def _clock_text(value: Optional[time]) -> Optional[str]:
    return value.strftime("%H:%M") if value is not None else None


@dataclass(frozen=True)
class ParticipantEntry:
    """One participant's effective availability on a date."""
    participant_id: str
    name: str
    start_time: Optional[str]
    end_time: Optional[str]
    note: str
    source: Source

    @classmethod
    def from_window(cls, window: AvailabilityWindow, name: str) -> "ParticipantEntry":
        return cls(
            participant_id=window.participant_id,
            name=name,
            start_time=_clock_text(window.start_time),
            end_time=_clock_text(window.end_time),
            note=window.note,
            source=window.source,
        )


@dataclass(frozen=True)
class DateSummary:
    """Availability of a calendar on one date."""
    date: date
    total_count: int
    entries: Tuple[ParticipantEntry, ...] = ()
    slots: Tuple[ResolvedSlot, ...] = ()


class FeedService:
    """
    Orchestrates snapshot retrieval, slot resolution and feed rendering.

    Args:
        store: Any object satisfying ``AvailabilityStore``
        eligibility: Date eligibility checker; owns the holiday cache
        renderer: iCalendar renderer
        default_domain: Host used in UIDs when the request names none
        max_range_days: Longest range a summary may cover
        horizon_days: How far past today open-ended recurrences are published
        today: Returns the current date
    """

    def __init__(
        self,
        store: AvailabilityStore,
        eligibility: Optional[DateEligibility] = None,
        renderer: Optional[ICSRenderer] = None,
        default_domain: str = "localhost",
        max_range_days: int = 366,
        horizon_days: int = 365,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._store = store
        self.eligibility = eligibility or DateEligibility()
        self.renderer = renderer or ICSRenderer()
        self.default_domain = default_domain
        self.max_range_days = max_range_days
        self.horizon_days = horizon_days
        self.today = today

    def list_calendars(self) -> List[CalendarConfig]:
        return self._store.list_calendars()

    def get_calendar(self, calendar_id: str) -> CalendarConfig:
        return self._store.get_calendar(calendar_id)

    def is_date_allowed(self, config: CalendarConfig, day: date) -> bool:
        """Combine the calendar's date bounds with the eligibility rules."""
        if not config.in_date_range(day):
            return False
        return self.eligibility.is_allowed(
            day,
            config.timezone,
            config.allowed_weekdays,
            config.holidays_policy,
            config.allow_holiday_eves,
        )

    def resolve_date(
        self,
        config: CalendarConfig,
        day: date,
        windows: Mapping[str, AvailabilityWindow],
    ) -> List[ResolvedSlot]:
        """
        Resolve the slots of a single date.

        Disallowed dates have no slots. A malformed window degrades the date
        to no slots and is logged; it never propagates.
        """
        if not self.is_date_allowed(config, day):
            return []

        resolver = QuorumSlotResolver(config.threshold, config.min_duration_hours)
        try:
            return resolver.resolve(day, windows)
        except ValidationError as exc:
            logger.warning("Skipping %s for calendar %s: %s", day, config.id, exc)
            return []

    def resolve_range(
        self,
        config: CalendarConfig,
        range_start: date,
        range_end: date,
        snapshot: Snapshot,
    ) -> Dict[date, List[ResolvedSlot]]:
        """
        Resolve every date of [range_start, range_end] that carries a window.

        Dates with conflicting data map to an empty list.
        """
        aggregator = AvailabilityAggregator(snapshot.windows, snapshot.recurrences)
        roster = [participant.id for participant in snapshot.participants]

        resolved: Dict[date, List[ResolvedSlot]] = {}
        for day in aggregator.candidate_dates(range_start, range_end):
            try:
                windows = aggregator.for_date(day, roster)
            except ConflictError as exc:
                logger.warning("Skipping %s for calendar %s: %s", day, config.id, exc)
                resolved[day] = []
                continue
            resolved[day] = self.resolve_date(config, day, windows)
        return resolved

    def feed_range(self, config: CalendarConfig, snapshot: Snapshot) -> Tuple[date, date]:
        """
        Dates a feed covers.

        Calendar bounds win. Otherwise the range spans the data, and an
        open-ended recurrence extends it to ``horizon_days`` past today.
        """
        aggregator = AvailabilityAggregator(snapshot.windows, snapshot.recurrences)
        first, last = aggregator.date_bounds()
        today = self.today()

        start = config.start_date or first or today
        end = config.end_date
        if end is None:
            end = last or start
            if aggregator.has_open_recurrence():
                end = max(end, today + timedelta(days=self.horizon_days))
        return start, max(start, end)

    def render_feed(
        self,
        config: CalendarConfig,
        slots_by_date: Mapping[date, List[ResolvedSlot]],
        host: str,
        participants: Iterable[Participant] = (),
    ) -> str:
        return self.renderer.render(config, slots_by_date, host, participants)

    def build_feed(
        self,
        calendar_id: str,
        host: Optional[str] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> FeedResponse:
        """
        Build the published feed of a calendar.

        Args:
            calendar_id: Calendar to publish
            host: Explicit UID host; wins over ``headers``
            headers: Request headers the UID host is taken from

        Raises:
            NotFoundError: If the calendar does not exist
        """
        config = self.get_calendar(calendar_id)
        snapshot = self._store.get_snapshot(calendar_id)

        range_start, range_end = self.feed_range(config, snapshot)
        slots_by_date = self.resolve_range(config, range_start, range_end, snapshot)

        uid_host = host or resolve_host(headers or {}, self.default_domain)
        body = self.render_feed(config, slots_by_date, uid_host, snapshot.participants)
        logger.info(
            "Built feed for %s: %d slot(s) on %d date(s) between %s and %s",
            calendar_id,
            sum(len(slots) for slots in slots_by_date.values()),
            sum(1 for slots in slots_by_date.values() if slots),
            range_start,
            range_end,
        )
        return FeedResponse(body=body)

    def date_summary(self, calendar_id: str, day) -> DateSummary:
        """
        Summarize who is available on a date and which slots result.

        Raises:
            NotFoundError: If the calendar does not exist
            ValidationError: If ``day`` is not a valid date
        """
        day = parse_date(day)
        config = self.get_calendar(calendar_id)
        snapshot = self._store.get_snapshot(calendar_id)
        aggregator = AvailabilityAggregator(snapshot.windows, snapshot.recurrences)
        return self._summarize(config, day, aggregator, snapshot)

    def range_summary(self, calendar_id: str, range_start, range_end) -> List[DateSummary]:
        """
        Summaries of every date in the range that has entries, in date order.

        Raises:
            ValidationError: If the range is reversed or longer than ``max_range_days``
        """
        range_start = parse_date(range_start)
        range_end = parse_date(range_end)
        if range_end < range_start:
            raise ValidationError(f"Range end {range_end} is before range start {range_start}")
        days = (range_end - range_start).days + 1
        if days > self.max_range_days:
            raise ValidationError(
                f"Range of {days} days exceeds the maximum of {self.max_range_days} days"
            )

        config = self.get_calendar(calendar_id)
        snapshot = self._store.get_snapshot(calendar_id)
        aggregator = AvailabilityAggregator(snapshot.windows, snapshot.recurrences)

        summaries = []
        for day in aggregator.candidate_dates(range_start, range_end):
            summary = self._summarize(config, day, aggregator, snapshot)
            if summary.entries:
                summaries.append(summary)
        return summaries

    def _summarize(
        self,
        config: CalendarConfig,
        day: date,
        aggregator: AvailabilityAggregator,
        snapshot: Snapshot,
    ) -> DateSummary:
        names = snapshot.participant_names()
        try:
            windows = aggregator.for_date(day, list(names))
            entries = tuple(
                ParticipantEntry.from_window(windows[pid], names[pid]) for pid in sorted(windows)
            )
            peak = QuorumSlotResolver(config.threshold).max_simultaneous(windows)
        except (ConflictError, ValidationError) as exc:
            logger.warning("No summary for %s in calendar %s: %s", day, config.id, exc)
            return DateSummary(date=day, total_count=0)

        return DateSummary(
            date=day,
            total_count=peak,
            entries=entries,
            slots=tuple(self.resolve_date(config, day, windows)),
        )
