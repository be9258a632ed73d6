"""
Availability stores.

``SnapshotFileStore`` reads a YAML or JSON snapshot exported from the
calendar-management system. ``InMemoryStore`` is the write side: every
mutation passes the same validation rules the feed engine relies on and
fails with a typed error.
"""

import json
import logging
from collections import defaultdict
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..config import CalendarConfig
from ..domain.eligibility import DateEligibility
from ..domain.exceptions import ConfigurationError, ConflictError, NotFoundError, ValidationError
from ..domain.models import AvailabilityWindow, Participant, RecurrencePattern, Snapshot, Source, time_of
from ..domain.validation import (
    check_recurrence_overlap,
    clamp_times,
    normalize_time_range,
    parse_clock,
    parse_date,
    validate_recurrence,
    validate_window,
)

logger = logging.getLogger(__name__)

_RECORD_KEYS = ("participants", "availabilities", "recurrences")


def _clock(value: Any):
    # YAML 1.1 reads an unquoted 10:00 as the base-60 integer 600
    if isinstance(value, int) and not isinstance(value, bool):
        if not 0 <= value < 24 * 60:
            raise ValidationError(f"Invalid time {value!r}, expected HH:MM")
        return time_of(value)
    return parse_clock(value)


def _optional_date(value: Any) -> Optional[date]:
    if value is None or value == "":
        return None
    return parse_date(value)


def parse_participant(record: Mapping[str, Any]) -> Participant:
    try:
        return Participant(id=str(record["id"]), name=str(record.get("name") or record["id"]))
    except KeyError as exc:
        raise ValidationError(f"Participant record is missing {exc}") from exc


def parse_window(record: Mapping[str, Any]) -> AvailabilityWindow:
    """Build an AvailabilityWindow from a snapshot record."""
    try:
        participant_id = str(record["participant_id"])
        day = parse_date(record["date"])
    except KeyError as exc:
        raise ValidationError(f"Availability record is missing {exc}") from exc

    try:
        source = Source(record.get("source") or Source.MANUAL.value)
    except ValueError as exc:
        raise ValidationError(f"Unknown availability source {record.get('source')!r}") from exc

    recurrence_id = record.get("recurrence_id")
    return AvailabilityWindow(
        participant_id=participant_id,
        date=day,
        start_time=_clock(record.get("start_time")),
        end_time=_clock(record.get("end_time")),
        source=source,
        recurrence_id=str(recurrence_id) if recurrence_id is not None else None,
        note=record.get("note") or "",
    )


def parse_recurrence(record: Mapping[str, Any]) -> RecurrencePattern:
    """Build a RecurrencePattern from a snapshot record."""
    try:
        recurrence_id = str(record["id"])
        participant_id = str(record["participant_id"])
        day_of_week = record["day_of_week"]
    except KeyError as exc:
        raise ValidationError(f"Recurrence record is missing {exc}") from exc

    if not isinstance(day_of_week, int) or isinstance(day_of_week, bool):
        raise ValidationError(f"day_of_week must be an integer, got {day_of_week!r}")

    return RecurrencePattern(
        id=recurrence_id,
        participant_id=participant_id,
        day_of_week=day_of_week,
        start_time=_clock(record.get("start_time")),
        end_time=_clock(record.get("end_time")),
        valid_from=_optional_date(record.get("valid_from")),
        valid_to=_optional_date(record.get("valid_to")),
        exceptions=frozenset(parse_date(d) for d in record.get("exceptions") or ()),
        note=record.get("note") or "",
    )


def _parse_records(
    calendar_id: str,
    kind: str,
    records: Any,
    parser: Callable[[Mapping[str, Any]], Any],
) -> tuple:
    """Parse a list of records, skipping and logging the malformed ones."""
    parsed = []
    for position, record in enumerate(records or ()):
        try:
            if not isinstance(record, Mapping):
                raise ValidationError(f"expected a mapping, got {record!r}")
            parsed.append(parser(record))
        except ValidationError as exc:
            logger.warning("Skipping %s #%d of calendar %s: %s", kind, position, calendar_id, exc)
    return tuple(parsed)


def parse_calendar_document(data: Any) -> Dict[str, Tuple[CalendarConfig, Snapshot]]:
    """
    Parse a snapshot document into calendars and their availability.

    The document is a mapping with a ``calendars`` list; each calendar entry
    holds the calendar settings plus ``participants``, ``availabilities`` and
    ``recurrences`` lists. A malformed record is logged and skipped, so only
    the dates it would have touched lose that participant.

    Raises:
        ConfigurationError: If the document or a calendar's settings are invalid
    """
    if not isinstance(data, dict) or not isinstance(data.get("calendars", []), list):
        raise ConfigurationError("Snapshot must be a mapping with a 'calendars' list")

    calendars: Dict[str, Tuple[CalendarConfig, Snapshot]] = {}
    for entry in data.get("calendars", []):
        if not isinstance(entry, dict):
            raise ConfigurationError("Each calendar entry must be a mapping")
        settings = {key: value for key, value in entry.items() if key not in _RECORD_KEYS}
        try:
            calendar = CalendarConfig.model_validate(settings)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid calendar settings: {exc}") from exc

        participants = _parse_records(calendar.id, "participant", entry.get("participants"), parse_participant)
        snapshot = Snapshot(
            participants=participants,
            windows=_parse_records(calendar.id, "availability", entry.get("availabilities"), parse_window),
            recurrences=_parse_records(calendar.id, "recurrence", entry.get("recurrences"), parse_recurrence),
        )
        if calendar.total_participants is None:
            calendar = calendar.model_copy(update={"total_participants": len(participants)})

        if calendar.id in calendars:
            raise ConfigurationError(f"Duplicate calendar id: {calendar.id}")
        calendars[calendar.id] = (calendar, snapshot)
        logger.debug(
            "Loaded calendar %s: %d participants, %d windows, %d recurrences",
            calendar.id,
            len(snapshot.participants),
            len(snapshot.windows),
            len(snapshot.recurrences),
        )

    return calendars


class SnapshotFileStore:
    """
    Read-only store backed by a YAML or JSON snapshot file.

    The file is read on construction; call ``reload()`` to pick up changes.
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._calendars: Dict[str, Tuple[CalendarConfig, Snapshot]] = {}
        self.reload()

    def reload(self) -> None:
        if not self.path.exists():
            raise FileNotFoundError(f"Snapshot file not found: {self.path}")

        text = self.path.read_text(encoding="utf-8")
        try:
            if self.path.suffix.lower() == ".json":
                data = json.loads(text)
            else:
                data = yaml.safe_load(text)
        except (json.JSONDecodeError, yaml.YAMLError) as exc:
            raise ConfigurationError(f"Invalid snapshot file {self.path}: {exc}") from exc

        self._calendars = parse_calendar_document(data or {})
        logger.info("Loaded %d calendar(s) from %s", len(self._calendars), self.path)

    def list_calendars(self) -> List[CalendarConfig]:
        return [calendar for calendar, _ in self._calendars.values()]

    def get_calendar(self, calendar_id: str) -> CalendarConfig:
        """Raises NotFoundError for unknown calendars."""
        try:
            return self._calendars[calendar_id][0]
        except KeyError:
            raise NotFoundError(f"Calendar not found: {calendar_id}") from None

    def get_snapshot(self, calendar_id: str) -> Snapshot:
        """Raises NotFoundError for unknown calendars."""
        try:
            return self._calendars[calendar_id][1]
        except KeyError:
            raise NotFoundError(f"Calendar not found: {calendar_id}") from None


class InMemoryStore:
    """
    Mutable store enforcing the write-boundary rules.

    Args:
        eligibility: Date eligibility checker (shares its holiday cache)
        today: Returns the current date; writes before it are rejected
    """

    def __init__(
        self,
        eligibility: Optional[DateEligibility] = None,
        today: Callable[[], date] = date.today,
    ):
        self.eligibility = eligibility or DateEligibility()
        self.today = today
        self._calendars: Dict[str, CalendarConfig] = {}
        self._participants: Dict[str, Dict[str, Participant]] = defaultdict(dict)
        self._windows: Dict[str, Dict[Tuple[str, date], AvailabilityWindow]] = defaultdict(dict)
        self._recurrences: Dict[str, Dict[str, RecurrencePattern]] = defaultdict(dict)

    # Calendars and participants

    def add_calendar(self, calendar: CalendarConfig) -> CalendarConfig:
        if calendar.id in self._calendars:
            raise ConflictError(f"Calendar already exists: {calendar.id}")
        self._calendars[calendar.id] = calendar
        return calendar

    def list_calendars(self) -> List[CalendarConfig]:
        return [self.get_calendar(calendar_id) for calendar_id in self._calendars]

    def get_calendar(self, calendar_id: str) -> CalendarConfig:
        try:
            calendar = self._calendars[calendar_id]
        except KeyError:
            raise NotFoundError(f"Calendar not found: {calendar_id}") from None
        if calendar.total_participants is None:
            return calendar.model_copy(
                update={"total_participants": len(self._participants[calendar_id])}
            )
        return calendar

    def add_participant(self, calendar_id: str, participant: Participant) -> Participant:
        self.get_calendar(calendar_id)
        if participant.id in self._participants[calendar_id]:
            raise ConflictError(f"Participant already exists: {participant.id}")
        self._participants[calendar_id][participant.id] = participant
        return participant

    def _participant(self, calendar_id: str, participant_id: str) -> Participant:
        try:
            return self._participants[calendar_id][participant_id]
        except KeyError:
            raise NotFoundError(f"Participant not found: {participant_id}") from None

    # Availability windows

    def add_window(
        self,
        calendar_id: str,
        participant_id: str,
        day,
        start_time=None,
        end_time=None,
        note: str = "",
    ) -> AvailabilityWindow:
        """
        Store a manual availability window.

        Times are normalized (a reversed pair is swapped) and clamped to the
        calendar's allowed hours for that date before validation.

        Raises:
            NotFoundError: Unknown calendar or participant
            ValidationError: Malformed input, past or disallowed date, end not
                after start, or shorter than the calendar minimum
            ConflictError: The participant already has a window on that date
        """
        calendar = self.get_calendar(calendar_id)
        self._participant(calendar_id, participant_id)

        day = parse_date(day)
        self._check_writable_date(calendar, day)

        start, end = normalize_time_range(parse_clock(start_time), parse_clock(end_time))
        allowed = calendar.allowed_hours.allowed_range_for_date(
            day, calendar, self.eligibility.holiday_calendar
        )
        start, end = clamp_times(start, end, allowed.start, allowed.end)

        window = AvailabilityWindow(
            participant_id=participant_id,
            date=day,
            start_time=start,
            end_time=end,
            source=Source.MANUAL,
            note=note,
        )
        validate_window(window, calendar.min_duration_hours)

        key = (participant_id, day)
        if key in self._windows[calendar_id]:
            raise ConflictError(f"Availability already exists for {participant_id} on {day}")
        self._windows[calendar_id][key] = window
        logger.debug("Stored availability for %s on %s", participant_id, day)
        return window

    def remove_window(self, calendar_id: str, participant_id: str, day) -> None:
        self.get_calendar(calendar_id)
        key = (participant_id, parse_date(day))
        if key not in self._windows[calendar_id]:
            raise NotFoundError(f"Availability not found for {participant_id} on {key[1]}")
        del self._windows[calendar_id][key]

    def _check_writable_date(self, calendar: CalendarConfig, day: date) -> None:
        if day < self.today():
            raise ValidationError(f"Cannot modify availability for past date {day}")
        if not calendar.in_date_range(day):
            raise ValidationError(f"Date {day} is outside of the calendar's date range")
        allowed = self.eligibility.is_allowed(
            day,
            calendar.timezone,
            calendar.allowed_weekdays,
            calendar.holidays_policy,
            calendar.allow_holiday_eves,
        )
        if not allowed:
            raise ValidationError(f"Date {day} is not allowed for this calendar")

    # Recurrences

    def add_recurrence(
        self,
        calendar_id: str,
        recurrence: RecurrencePattern,
    ) -> RecurrencePattern:
        """
        Store a weekly recurrence.

        Raises:
            NotFoundError: Unknown calendar or participant
            ValidationError: Weekday not allowed or end not after start
            ConflictError: Another recurrence of the participant on the same
                weekday has an intersecting validity range
        """
        calendar = self.get_calendar(calendar_id)
        self._participant(calendar_id, recurrence.participant_id)

        start, end = normalize_time_range(recurrence.start_time, recurrence.end_time)
        allowed = calendar.allowed_hours.allowed_range_for_weekday(recurrence.day_of_week)
        start, end = clamp_times(start, end, allowed.start, allowed.end)
        recurrence = replace(recurrence, start_time=start, end_time=end)

        validate_recurrence(recurrence, calendar.allowed_weekdays)
        check_recurrence_overlap(recurrence, self._recurrences[calendar_id].values())
        if recurrence.id in self._recurrences[calendar_id]:
            raise ConflictError(f"Recurrence already exists: {recurrence.id}")

        self._recurrences[calendar_id][recurrence.id] = recurrence
        return recurrence

    def _recurrence(self, calendar_id: str, recurrence_id: str) -> RecurrencePattern:
        self.get_calendar(calendar_id)
        try:
            return self._recurrences[calendar_id][recurrence_id]
        except KeyError:
            raise NotFoundError(f"Recurrence not found: {recurrence_id}") from None

    def add_exception(self, calendar_id: str, recurrence_id: str, day) -> RecurrencePattern:
        """Suppress one occurrence of a recurrence."""
        recurrence = self._recurrence(calendar_id, recurrence_id)
        updated = replace(recurrence, exceptions=recurrence.exceptions | {parse_date(day)})
        self._recurrences[calendar_id][recurrence_id] = updated
        return updated

    def remove_recurrence(self, calendar_id: str, recurrence_id: str) -> None:
        self._recurrence(calendar_id, recurrence_id)
        del self._recurrences[calendar_id][recurrence_id]

    def get_snapshot(self, calendar_id: str) -> Snapshot:
        self.get_calendar(calendar_id)
        return Snapshot(
            participants=tuple(self._participants[calendar_id].values()),
            windows=tuple(self._windows[calendar_id].values()),
            recurrences=tuple(self._recurrences[calendar_id].values()),
        )
