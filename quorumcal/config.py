"""
Configuration management using Pydantic models.

``AppConfig`` is the application's own YAML configuration. ``CalendarConfig``
and ``AllowedHours`` describe a calendar as the calendar-management store
hands it over; allowed hours are persisted as a JSON blob and only decoded
here, at the boundary.
"""

import json
from datetime import date, time
from pathlib import Path
from typing import Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from .domain.eligibility import HolidayCalendar
from .domain.exceptions import ConfigurationError
from .domain.models import DAY_END, DAY_START, HolidaysPolicy, time_of, weekday_of
from .domain.validation import parse_clock


class HourRange(BaseModel):
    """An allowed range of hours; either side may be unset."""
    start: Optional[time] = None
    end: Optional[time] = None

    @field_validator("start", "end", mode="before")
    @classmethod
    def parse_hour(cls, value):
        """Accept HH:MM strings as stored by the calendar store."""
        if isinstance(value, str):
            return parse_clock(value)
        return value

    @property
    def is_configured(self) -> bool:
        return self.start is not None and self.end is not None

    @property
    def is_empty(self) -> bool:
        return self.start is None and self.end is None

    def combine(self, other: "HourRange") -> "HourRange":
        """
        Widen this range with another: earliest start, latest end.

        An unconfigured side falls back to the other range entirely.
        """
        if not self.is_configured:
            return other
        if not other.is_configured:
            return self
        return HourRange(start=min(self.start, other.start), end=max(self.end, other.end))


FULL_DAY = HourRange(start=time_of(DAY_START), end=time_of(DAY_END))


class AllowedHours(BaseModel):
    """
    Per-calendar limits on the hours participants may declare.

    Weekday keys use the store numbering (0=Sunday).
    """
    weekdays: Dict[int, HourRange] = Field(default_factory=dict)
    holidays: HourRange = Field(default_factory=HourRange)
    holiday_eves: HourRange = Field(default_factory=HourRange)

    @field_validator("weekdays")
    @classmethod
    def validate_weekday_keys(cls, value: Dict[int, HourRange]) -> Dict[int, HourRange]:
        """Ensure weekday keys are between 0 and 6."""
        invalid = sorted(day for day in value if day not in range(7))
        if invalid:
            raise ValueError(f"allowed hours weekdays must be between 0 and 6, got {invalid}")
        return value

    @classmethod
    def from_json(cls, raw: Union[str, bytes, None]) -> "AllowedHours":
        """
        Decode the persisted JSON blob.

        Raises:
            ConfigurationError: If the blob is not valid allowed-hours JSON
        """
        if raw is None or not raw.strip():
            return cls()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Unparseable allowed_hours configuration: {exc}") from exc
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigurationError("allowed_hours configuration must be a JSON object")
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid allowed_hours configuration: {exc}") from exc

    def to_json(self) -> str:
        """Encode for persistence, dropping unset sides."""
        return self.model_dump_json(exclude_none=True)

    def allowed_range_for_weekday(self, day_of_week: int) -> HourRange:
        """Allowed hours for a weekday, used for recurrences (no holiday logic)."""
        return self.weekdays.get(day_of_week, HourRange())

    def allowed_range_for_date(
        self,
        day: date,
        calendar: "CalendarConfig",
        holiday_calendar: HolidayCalendar,
    ) -> HourRange:
        """
        Allowed hours for a concrete date.

        Holidays (under the ``allow`` policy) and holiday eves use their own
        hours. When the weekday is allowed as well, those hours are combined
        with the weekday's; otherwise they replace them.
        """
        weekday = weekday_of(day)
        weekday_allowed = weekday in calendar.allowed_weekdays
        weekday_range = HourRange()
        if weekday_allowed:
            weekday_range = self.weekdays.get(weekday, FULL_DAY)

        country = holiday_calendar.country_for_timezone(calendar.timezone)
        if country is not None:
            if calendar.holidays_policy is HolidaysPolicy.ALLOW and holiday_calendar.is_holiday(day, country):
                return self.holidays.combine(weekday_range) if weekday_allowed else self.holidays
            if calendar.allow_holiday_eves and holiday_calendar.is_holiday_eve(day, country):
                return self.holiday_eves.combine(weekday_range) if weekday_allowed else self.holiday_eves

        return weekday_range


class CalendarConfig(BaseModel):
    """Calendar settings supplied by the calendar-management store."""
    id: str
    name: str
    description: str = ""
    threshold: int = Field(default=1, ge=1)
    allowed_weekdays: List[int] = Field(default_factory=lambda: list(range(7)))
    timezone: str = "UTC"
    holidays_policy: HolidaysPolicy = HolidaysPolicy.IGNORE
    allow_holiday_eves: bool = False
    min_duration_hours: int = Field(default=0, ge=0)
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    allowed_hours: AllowedHours = Field(default_factory=AllowedHours)
    total_participants: Optional[int] = None

    @field_validator("allowed_weekdays")
    @classmethod
    def validate_allowed_weekdays(cls, value: List[int]) -> List[int]:
        """Ensure weekdays are in valid range and deduplicated."""
        invalid_days = [day for day in value if day not in range(7)]
        if invalid_days:
            raise ValueError(f"allowed_weekdays must be between 0 and 6, got {invalid_days}")
        return sorted(set(value))

    @field_validator("allowed_hours", mode="before")
    @classmethod
    def decode_allowed_hours(cls, value):
        """The store persists allowed hours as a JSON string."""
        if value is None:
            return AllowedHours()
        if isinstance(value, (str, bytes)):
            return AllowedHours.from_json(value)
        return value

    @model_validator(mode="after")
    def validate_date_bounds(self) -> "CalendarConfig":
        """Ensure the optional date range is ordered."""
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self

    def in_date_range(self, day: date) -> bool:
        """Check the optional calendar start/end bounds."""
        if self.start_date is not None and day < self.start_date:
            return False
        if self.end_date is not None and day > self.end_date:
            return False
        return True


class AppConfig(BaseModel):
    """Application configuration."""
    default_domain: str = "localhost"
    product_id: str = "-//quorumcal//quorumcal feed//EN"
    snapshot_path: Optional[Path] = None
    snapshot_url: Optional[str] = None
    request_timeout: float = Field(default=30.0, gt=0)
    max_range_days: int = Field(default=366, ge=1)
    recurrence_horizon_days: int = Field(default=365, ge=1)
    log_level: str = "WARNING"

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Accept standard logging level names in any case."""
        level = value.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {value}")
        return level

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ConfigurationError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a quorumcal.yaml file. See quorumcal.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ConfigurationError("Config file must contain a mapping at the root level.")

        try:
            config = cls(**data)
        except PydanticValidationError as exc:
            raise ConfigurationError(f"Invalid configuration in {config_path}: {exc}") from exc

        # Relative snapshot paths are relative to the config file
        if config.snapshot_path is not None and not config.snapshot_path.is_absolute():
            config.snapshot_path = config_path.parent / config.snapshot_path

        return config


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for quorumcal.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "quorumcal.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "quorumcal.yaml"

    return config_path
