"""
iCalendar (RFC 5545) rendering of resolved quorum slots.

Events use floating time: DTSTART/DTEND carry no TZID and no ``Z`` suffix, so
clients show the same wall-clock hours wherever they are. ``X-WR-TIMEZONE``
hints the calendar's intended zone without a VTIMEZONE block.
"""

import logging
import uuid
from datetime import date, datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, Mapping, Optional, Sequence

from icalendar import Calendar, Event, vCalAddress, vText

from ..config import CalendarConfig
from ..domain.models import Participant, ResolvedSlot, TimeWindow, format_minutes, time_of

logger = logging.getLogger(__name__)

DEFAULT_PRODUCT_ID = "-//quorumcal//quorumcal feed//EN"
REFRESH_INTERVAL = timedelta(hours=1)
DESCRIPTION_HEADER = "Available participants:"

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def event_uid(calendar_id: str, day: date, slot_index: int, host: str) -> str:
    """
    Stable UID for the ``slot_index``-th slot of ``day``.

    The same inputs always give the same UID, so clients update events in
    place across refetches instead of duplicating them.
    """
    name = f"{calendar_id}/{day.isoformat()}/{slot_index}/{host}"
    return f"{uuid.uuid5(uuid.NAMESPACE_URL, name)}@{host}"


def participant_line(name: str, window: TimeWindow, note: str) -> str:
    line = f"- {name}"
    if not window.is_all_day:
        line += f" ({format_minutes(window.start)}-{format_minutes(window.end)})"
    if note:
        line += f": {note}"
    return line


def event_description(
    slot: ResolvedSlot,
    names: Mapping[str, str],
    calendar_description: str = "",
) -> str:
    """
    Build the DESCRIPTION text of a slot.

    One line per attributed participant with their own hours (omitted when
    they are available all day) and note, then the calendar description
    after a ``---`` separator.
    """
    lines = [DESCRIPTION_HEADER]
    for window in slot.windows:
        name = names.get(window.participant_id, window.participant_id)
        lines.append(participant_line(name, window.time_window(), window.note))

    description = "\n".join(lines) + "\n"
    if calendar_description:
        description += "\n---\n" + calendar_description
    return description


class ICSRenderer:
    """
    Renders resolved slots of one calendar as a VCALENDAR document.

    Args:
        product_id: PRODID of the generated calendar
        clock: Returns the DTSTAMP of rendered events; injectable for tests
    """

    def __init__(self, product_id: str = DEFAULT_PRODUCT_ID, clock: Optional[Clock] = None):
        self.product_id = product_id
        self.clock = clock or _utc_now

    def render(
        self,
        calendar: CalendarConfig,
        slots_by_date: Mapping[date, Sequence[ResolvedSlot]],
        host: str,
        participants: Iterable[Participant] = (),
    ) -> str:
        """Render the feed text (CRLF line endings, folded lines)."""
        ical = self.build_calendar(calendar, slots_by_date, host, participants)
        return ical.to_ical().decode("utf-8")

    def build_calendar(
        self,
        calendar: CalendarConfig,
        slots_by_date: Mapping[date, Sequence[ResolvedSlot]],
        host: str,
        participants: Iterable[Participant] = (),
    ) -> Calendar:
        """
        Build the icalendar object for a calendar's resolved slots.

        Dates are emitted in chronological order. The event number increases
        once per date that has slots; all slots of that date share it.
        """
        names: Dict[str, str] = {p.id: p.name for p in participants}
        stamp = self.clock()

        ical = Calendar()
        ical.add("prodid", self.product_id)
        ical.add("version", "2.0")
        ical.add("method", "PUBLISH")
        ical.add("name", calendar.name)
        ical.add("x-wr-calname", calendar.name)
        ical.add("x-wr-timezone", calendar.timezone)
        ical.add("refresh-interval", REFRESH_INTERVAL, parameters={"VALUE": "DURATION"})
        ical.add("x-published-ttl", "PT1H")

        event_number = 0
        for day in sorted(slots_by_date):
            slots = slots_by_date[day]
            if not slots:
                continue
            event_number += 1
            for slot in slots:
                ical.add_component(
                    self.build_event(calendar, slot, event_number, host, names, stamp)
                )

        logger.debug("Rendered %d dated events for calendar %s", event_number, calendar.id)
        return ical

    def build_event(
        self,
        calendar: CalendarConfig,
        slot: ResolvedSlot,
        event_number: int,
        host: str,
        names: Mapping[str, str],
        stamp: datetime,
    ) -> Event:
        event = Event()
        event.add("uid", event_uid(calendar.id, slot.date, slot.index, host))
        event.add("dtstamp", stamp)
        event.add("status", "CONFIRMED")
        event.add("summary", f"{calendar.name} #{event_number}")
        event.add("description", event_description(slot, names, calendar.description))

        for window in slot.windows:
            attendee = vCalAddress(f"mailto:noreply@{host}")
            attendee.params["cn"] = vText(names.get(window.participant_id, window.participant_id))
            attendee.params["role"] = vText("REQ-PARTICIPANT")
            attendee.params["partstat"] = vText("ACCEPTED")
            attendee.params["cutype"] = vText("INDIVIDUAL")
            event.add("attendee", attendee, encode=0)

        if slot.is_all_day:
            event.add("dtstart", slot.date)
            event.add("dtend", slot.date + timedelta(days=1))
        else:
            # Naive datetimes are serialized as floating time
            event.add("dtstart", datetime.combine(slot.date, time_of(slot.window.start)))
            event.add("dtend", datetime.combine(slot.date, time_of(slot.window.end)))

        return event
