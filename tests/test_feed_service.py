"""
Tests for the FeedService orchestration layer.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Dict, Tuple

import pytest

from quorumcal.adapters.ics_renderer import ICSRenderer
from quorumcal.adapters.snapshot_store import parse_calendar_document
from quorumcal.config import CalendarConfig
from quorumcal.domain.eligibility import DateEligibility, HolidayCalendar
from quorumcal.domain.exceptions import NotFoundError, ValidationError
from quorumcal.domain.models import AvailabilityWindow, Participant, RecurrencePattern, Snapshot
from quorumcal.services.feed import FEED_HEADERS, FeedService, resolve_host

TODAY = date(2025, 6, 1)
CHRISTMAS_2024 = date(2024, 12, 25)


class StubStore:
    """Minimal stub matching AvailabilityStore."""

    def __init__(self, calendars: Dict[str, Tuple[CalendarConfig, Snapshot]]):
        self._calendars = calendars

    def list_calendars(self):
        return [calendar for calendar, _ in self._calendars.values()]

    def get_calendar(self, calendar_id):
        if calendar_id not in self._calendars:
            raise NotFoundError(calendar_id)
        return self._calendars[calendar_id][0]

    def get_snapshot(self, calendar_id):
        return self._calendars[calendar_id][1]


def _holidays(country_code, year):
    return {CHRISTMAS_2024} if year == 2024 else set()


def _service(calendar: CalendarConfig, snapshot: Snapshot, **kwargs) -> FeedService:
    return FeedService(
        StubStore({calendar.id: (calendar, snapshot)}),
        eligibility=DateEligibility(HolidayCalendar(provider=_holidays)),
        renderer=ICSRenderer(clock=lambda: datetime(2025, 6, 1, tzinfo=timezone.utc)),
        default_domain="quorum.test",
        today=lambda: TODAY,
        **kwargs,
    )


def _calendar(**kwargs) -> CalendarConfig:
    defaults = dict(id="team", name="Team", threshold=2, timezone="UTC")
    defaults.update(kwargs)
    return CalendarConfig(**defaults)


ALICE = Participant("p1", "Alice")
BOB = Participant("p2", "Bob")


class TestResolveRange:
    """Tests for per-date resolution across a range."""

    def test_holiday_policy_scenario(self):
        """Holiday and its eve are published even on disallowed weekdays."""
        calendar = _calendar(
            threshold=1,
            timezone="Europe/Brussels",
            allowed_weekdays=[1, 5],
            holidays_policy="allow",
            allow_holiday_eves=True,
        )
        snapshot = Snapshot(
            participants=(ALICE,),
            windows=tuple(
                AvailabilityWindow("p1", day)
                for day in (date(2024, 12, 24), CHRISTMAS_2024, date(2025, 6, 5))
            ),
        )
        service = _service(calendar, snapshot)

        resolved = service.resolve_range(calendar, date(2024, 12, 1), date(2025, 6, 30), snapshot)

        assert len(resolved[date(2024, 12, 24)]) == 1
        assert len(resolved[CHRISTMAS_2024]) == 1
        assert resolved[date(2025, 6, 5)] == []

    def test_malformed_date_degrades_alone(self, caplog):
        """A reversed window empties its own date; other dates still resolve."""
        calendar = _calendar(threshold=1)
        snapshot = Snapshot(
            participants=(ALICE,),
            windows=(
                AvailabilityWindow("p1", date(2025, 6, 16), time(18, 0), time(9, 0)),
                AvailabilityWindow("p1", date(2025, 6, 17), time(9, 0), time(18, 0)),
            ),
        )
        service = _service(calendar, snapshot)

        with caplog.at_level(logging.WARNING, logger="quorumcal.services.feed"):
            resolved = service.resolve_range(calendar, date(2025, 6, 1), date(2025, 6, 30), snapshot)

        assert resolved[date(2025, 6, 16)] == []
        assert len(resolved[date(2025, 6, 17)]) == 1
        assert "2025-06-16" in caplog.text

    def test_conflicting_date_degrades_alone(self):
        calendar = _calendar(threshold=1)
        snapshot = Snapshot(
            participants=(ALICE,),
            windows=(
                AvailabilityWindow("p1", date(2025, 6, 16), time(9, 0), time(10, 0)),
                AvailabilityWindow("p1", date(2025, 6, 16), time(14, 0), time(15, 0)),
                AvailabilityWindow("p1", date(2025, 6, 17)),
            ),
        )
        service = _service(calendar, snapshot)

        resolved = service.resolve_range(calendar, date(2025, 6, 1), date(2025, 6, 30), snapshot)

        assert resolved[date(2025, 6, 16)] == []
        assert len(resolved[date(2025, 6, 17)]) == 1

    def test_calendar_date_bounds(self):
        calendar = _calendar(threshold=1, end_date=date(2025, 6, 16))
        snapshot = Snapshot(
            participants=(ALICE,),
            windows=(AvailabilityWindow("p1", date(2025, 6, 17)),),
        )

        assert _service(calendar, snapshot).resolve_date(
            calendar, date(2025, 6, 17), {"p1": snapshot.windows[0]}
        ) == []

    def test_resolution_is_idempotent(self):
        calendar = _calendar()
        snapshot = Snapshot(
            participants=(ALICE, BOB),
            windows=(
                AvailabilityWindow("p1", date(2025, 6, 16), time(9, 0), time(13, 0)),
                AvailabilityWindow("p2", date(2025, 6, 16), time(11, 0), time(17, 0)),
            ),
        )
        service = _service(calendar, snapshot)

        first = service.resolve_range(calendar, date(2025, 6, 1), date(2025, 6, 30), snapshot)
        second = service.resolve_range(calendar, date(2025, 6, 1), date(2025, 6, 30), snapshot)

        assert first == second


class TestBuildFeed:
    """Tests for the published feed."""

    def _snapshot(self) -> Snapshot:
        return Snapshot(
            participants=(ALICE, BOB),
            windows=(AvailabilityWindow("p2", date(2025, 6, 16), time(10, 0), time(12, 0)),),
            recurrences=(
                RecurrencePattern(
                    id="r1",
                    participant_id="p1",
                    day_of_week=1,
                    start_time=time(9, 0),
                    end_time=time(17, 0),
                    valid_from=date(2025, 6, 2),
                ),
            ),
        )

    def test_feed_body_and_headers(self):
        service = _service(_calendar(), self._snapshot())

        response = service.build_feed("team", host="cal.example.org")

        assert response.headers == FEED_HEADERS
        assert response.headers["Content-Type"] == "text/calendar; charset=utf-8"
        assert "SUMMARY:Team #1" in response.body
        assert "DTSTART:20250616T100000" in response.body
        assert "@cal.example.org" in response.body

    def test_default_domain_used_without_host(self):
        response = _service(_calendar(), self._snapshot()).build_feed("team")

        assert "@quorum.test" in response.body

    def test_uid_host_from_request_headers(self):
        service = _service(_calendar(), self._snapshot())

        response = service.build_feed(
            "team", headers={"Host": "internal:8080", "X-Forwarded-Host": "public.example.org"}
        )

        assert "@public.example.org" in response.body
        assert "@internal" not in response.body

    def test_explicit_host_wins_over_headers(self):
        service = _service(_calendar(), self._snapshot())

        response = service.build_feed("team", host="cli.example.org", headers={"Host": "internal"})

        assert "@cli.example.org" in response.body

    def test_list_calendars(self):
        assert [c.id for c in _service(_calendar(), self._snapshot()).list_calendars()] == ["team"]

    def test_feed_range_extends_open_recurrences(self):
        service = _service(_calendar(), self._snapshot())

        start, end = service.feed_range(_calendar(), self._snapshot())

        assert start == date(2025, 6, 2)
        assert end == TODAY + timedelta(days=365)

    def test_feed_range_respects_calendar_bounds(self):
        calendar = _calendar(start_date=date(2025, 6, 10), end_date=date(2025, 6, 20))
        service = _service(calendar, self._snapshot())

        assert service.feed_range(calendar, self._snapshot()) == (date(2025, 6, 10), date(2025, 6, 20))

    def test_unknown_calendar(self):
        with pytest.raises(NotFoundError):
            _service(_calendar(), self._snapshot()).build_feed("missing")

    def test_bad_snapshot_records_leave_other_dates_published(self):
        """An unreadable window or recurrence only drops itself from the feed."""
        document = {
            "calendars": [
                {
                    "id": "team",
                    "name": "Team",
                    "threshold": 1,
                    "timezone": "UTC",
                    "participants": [{"id": "p1", "name": "Alice"}],
                    "availabilities": [
                        {"participant_id": "p1", "date": "2025-06-16", "start_time": "10:00", "end_time": "12:00"},
                        {"participant_id": "p1", "date": "2025-06-17", "start_time": "25:00"},
                    ],
                    "recurrences": [{"id": "r1", "participant_id": "p1", "day_of_week": 9}],
                }
            ]
        }
        calendar, snapshot = parse_calendar_document(document)["team"]

        response = _service(calendar, snapshot).build_feed("team")

        assert "DTSTART:20250616T100000" in response.body
        assert "DTSTART:20250617" not in response.body


class TestSummaries:
    """Tests for date and range summaries."""

    def _service(self) -> FeedService:
        snapshot = Snapshot(
            participants=(ALICE, BOB),
            windows=(
                AvailabilityWindow("p1", date(2025, 6, 16), time(9, 0), time(13, 0), note="remote"),
                AvailabilityWindow("p2", date(2025, 6, 16), time(11, 0), time(17, 0)),
                AvailabilityWindow("p1", date(2025, 6, 18)),
            ),
        )
        return _service(_calendar(), snapshot, max_range_days=31)

    def test_date_summary(self):
        summary = self._service().date_summary("team", "2025-06-16")

        assert summary.total_count == 2
        assert [entry.name for entry in summary.entries] == ["Alice", "Bob"]
        assert summary.entries[0].start_time == "09:00"
        assert summary.entries[0].note == "remote"
        assert [str(slot.window) for slot in summary.slots] == ["11:00-13:00"]

    def test_date_summary_without_entries(self):
        summary = self._service().date_summary("team", "2025-06-17")

        assert summary.total_count == 0
        assert summary.entries == ()

    def test_range_summary_lists_dates_with_entries(self):
        summaries = self._service().range_summary("team", "2025-06-01", "2025-06-30")

        assert [s.date for s in summaries] == [date(2025, 6, 16), date(2025, 6, 18)]
        assert summaries[1].slots == ()
        assert summaries[1].entries[0].start_time is None

    def test_range_summary_rejects_reversed_range(self):
        with pytest.raises(ValidationError, match="before range start"):
            self._service().range_summary("team", "2025-06-30", "2025-06-01")

    def test_range_summary_rejects_long_range(self):
        with pytest.raises(ValidationError, match="exceeds the maximum"):
            self._service().range_summary("team", "2025-01-01", "2025-12-31")


class TestResolveHost:
    """Tests for UID host selection."""

    def test_forwarded_host_wins(self):
        headers = {"X-Forwarded-Host": "public.example.org", "X-Real-Host": "real", "Host": "internal:8080"}

        assert resolve_host(headers, "default.test") == "public.example.org"

    def test_fallback_order(self):
        assert resolve_host({"X-Real-Host": "real", "Host": "internal"}, "default.test") == "real"
        assert resolve_host({"host": "internal"}, "default.test") == "internal"
        assert resolve_host({}, "default.test") == "default.test"

    def test_forwarded_list_keeps_first(self):
        assert resolve_host({"X-Forwarded-Host": "a.example.org, b.example.org"}, "d") == "a.example.org"

    def test_empty_header_is_skipped(self):
        assert resolve_host({"X-Forwarded-Host": " ", "Host": "internal"}, "d") == "internal"
