"""
Tests for configuration models.
"""

import json
from datetime import date, time

import pytest
from pydantic import ValidationError as PydanticValidationError

from quorumcal.config import AllowedHours, AppConfig, CalendarConfig, HourRange
from quorumcal.domain.eligibility import HolidayCalendar
from quorumcal.domain.exceptions import ConfigurationError
from quorumcal.domain.models import HolidaysPolicy

CHRISTMAS_2024 = date(2024, 12, 25)  # Wednesday
CHRISTMAS_EVE_2024 = date(2024, 12, 24)  # Tuesday

ALLOWED_HOURS_JSON = json.dumps({
    "weekdays": {"1": {"start": "18:00", "end": "23:00"}, "3": {"start": "19:00", "end": "22:00"}},
    "holidays": {"start": "10:00", "end": "20:00"},
    "holiday_eves": {"start": "16:00", "end": "23:59"},
})


def _holiday_calendar() -> HolidayCalendar:
    return HolidayCalendar(provider=lambda country, year: {CHRISTMAS_2024})


class TestAllowedHours:
    """Tests for the allowed-hours value object."""

    def test_from_json(self):
        hours = AllowedHours.from_json(ALLOWED_HOURS_JSON)

        assert hours.weekdays[1] == HourRange(start=time(18, 0), end=time(23, 0))
        assert hours.holidays.start == time(10, 0)

    @pytest.mark.parametrize("raw", [None, "", "  ", "null"])
    def test_empty_json_means_unrestricted(self, raw):
        assert AllowedHours.from_json(raw) == AllowedHours()

    @pytest.mark.parametrize("raw", ["{not json", "[1, 2]", '{"weekdays": {"9": {}}}'])
    def test_unparseable_json_raises(self, raw):
        with pytest.raises(ConfigurationError):
            AllowedHours.from_json(raw)

    def test_to_json_round_trip_drops_unset(self):
        hours = AllowedHours(weekdays={1: HourRange(start=time(18, 0), end=time(23, 0))})

        data = json.loads(hours.to_json())

        assert data["weekdays"] == {"1": {"start": "18:00:00", "end": "23:00:00"}}
        assert data["holidays"] == {}
        assert AllowedHours.from_json(hours.to_json()) == hours

    def test_range_for_weekday(self):
        hours = AllowedHours.from_json(ALLOWED_HOURS_JSON)

        assert hours.allowed_range_for_weekday(1).start == time(18, 0)
        assert hours.allowed_range_for_weekday(2).is_empty

    def test_holiday_on_allowed_weekday_combines_ranges(self):
        """Wednesday hours 19-22 widen with holiday hours 10-20 to 10-22."""
        hours = AllowedHours.from_json(ALLOWED_HOURS_JSON)
        calendar = CalendarConfig(
            id="c", name="C", timezone="Europe/Brussels",
            allowed_weekdays=[1, 3], holidays_policy="allow",
        )

        allowed = hours.allowed_range_for_date(CHRISTMAS_2024, calendar, _holiday_calendar())

        assert allowed == HourRange(start=time(10, 0), end=time(22, 0))

    def test_holiday_on_disallowed_weekday_replaces_range(self):
        hours = AllowedHours.from_json(ALLOWED_HOURS_JSON)
        calendar = CalendarConfig(
            id="c", name="C", timezone="Europe/Brussels",
            allowed_weekdays=[1], holidays_policy="allow",
        )

        allowed = hours.allowed_range_for_date(CHRISTMAS_2024, calendar, _holiday_calendar())

        assert allowed == hours.holidays

    def test_holiday_eve_range(self):
        hours = AllowedHours.from_json(ALLOWED_HOURS_JSON)
        calendar = CalendarConfig(
            id="c", name="C", timezone="Europe/Brussels",
            allowed_weekdays=[1], allow_holiday_eves=True,
        )

        allowed = hours.allowed_range_for_date(CHRISTMAS_EVE_2024, calendar, _holiday_calendar())

        assert allowed == HourRange(start=time(16, 0), end=time(23, 59))

    def test_allowed_weekday_without_hours_is_full_day(self):
        calendar = CalendarConfig(id="c", name="C", allowed_weekdays=[2])

        allowed = AllowedHours().allowed_range_for_date(CHRISTMAS_EVE_2024, calendar, _holiday_calendar())

        assert allowed == HourRange(start=time(0, 0), end=time(23, 59))


class TestCalendarConfig:
    """Tests for calendar settings."""

    def test_defaults(self):
        calendar = CalendarConfig(id="c", name="C")

        assert calendar.threshold == 1
        assert calendar.allowed_weekdays == [0, 1, 2, 3, 4, 5, 6]
        assert calendar.holidays_policy is HolidaysPolicy.IGNORE

    def test_threshold_must_be_positive(self):
        with pytest.raises(PydanticValidationError):
            CalendarConfig(id="c", name="C", threshold=0)

    def test_weekdays_validated_and_deduplicated(self):
        assert CalendarConfig(id="c", name="C", allowed_weekdays=[5, 1, 5]).allowed_weekdays == [1, 5]

        with pytest.raises(PydanticValidationError, match="between 0 and 6"):
            CalendarConfig(id="c", name="C", allowed_weekdays=[7])

    def test_allowed_hours_accepts_persisted_json(self):
        calendar = CalendarConfig(id="c", name="C", allowed_hours=ALLOWED_HOURS_JSON)

        assert calendar.allowed_hours.weekdays[3].end == time(22, 0)

    def test_allowed_hours_bad_json_raises_configuration_error(self):
        with pytest.raises(ConfigurationError):
            CalendarConfig(id="c", name="C", allowed_hours="{oops")

    def test_date_bounds(self):
        calendar = CalendarConfig(id="c", name="C", start_date="2025-06-01", end_date="2025-06-30")

        assert calendar.in_date_range(date(2025, 6, 1))
        assert not calendar.in_date_range(date(2025, 7, 1))

        with pytest.raises(PydanticValidationError):
            CalendarConfig(id="c", name="C", start_date="2025-06-30", end_date="2025-06-01")


class TestAppConfig:
    """Tests for loading the application config."""

    def test_load_from_yaml(self, tmp_path):
        config_file = tmp_path / "quorumcal.yaml"
        config_file.write_text(
            "default_domain: cal.example.org\n"
            "snapshot_path: data/snapshot.yaml\n"
            "log_level: info\n",
            encoding="utf-8",
        )

        config = AppConfig.load_from_yaml(config_file)

        assert config.default_domain == "cal.example.org"
        assert config.snapshot_path == tmp_path / "data" / "snapshot.yaml"
        assert config.log_level == "INFO"
        assert config.max_range_days == 366

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="Config file not found"):
            AppConfig.load_from_yaml(tmp_path / "missing.yaml")

    def test_invalid_yaml(self, tmp_path):
        config_file = tmp_path / "quorumcal.yaml"
        config_file.write_text("default_domain: [unclosed\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid YAML"):
            AppConfig.load_from_yaml(config_file)

    def test_non_mapping_root(self, tmp_path):
        config_file = tmp_path / "quorumcal.yaml"
        config_file.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="mapping"):
            AppConfig.load_from_yaml(config_file)

    def test_invalid_values(self, tmp_path):
        config_file = tmp_path / "quorumcal.yaml"
        config_file.write_text("max_range_days: 0\n", encoding="utf-8")

        with pytest.raises(ConfigurationError, match="Invalid configuration"):
            AppConfig.load_from_yaml(config_file)
