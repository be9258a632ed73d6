"""
Date eligibility: allowed weekdays, public holidays and holiday eves.

Holiday data comes from the ``holidays`` package, keyed by the country that
owns the calendar's timezone (looked up in the pytz zone table). Lookups are
memoized in a ``HolidayCalendar`` instance that callers create and inject, so
there is no process-wide cache.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, FrozenSet, Iterable, Optional, Tuple

import holidays
import pytz
from dateutil.relativedelta import relativedelta

from .models import HolidaysPolicy, weekday_of

logger = logging.getLogger(__name__)

HolidayProvider = Callable[[str, int], Iterable[date]]


def library_holidays(country_code: str, year: int) -> FrozenSet[date]:
    """Public holidays of a country for one year, from the holidays package."""
    try:
        calendar = holidays.country_holidays(country_code, years=year)
    except NotImplementedError:
        logger.warning("No holiday data for country %s; treating every day as a regular day", country_code)
        return frozenset()
    return frozenset(calendar.keys())


class HolidayCalendar:
    """
    Read-through cache of public holidays per (country, year).

    Also resolves IANA timezones to ISO country codes. Instances are cheap to
    create; share one per process or per request as the caller sees fit.
    """

    def __init__(self, provider: HolidayProvider = library_holidays):
        self._provider = provider
        self._holidays: Dict[Tuple[str, int], FrozenSet[date]] = {}
        self._zone_index: Optional[Dict[str, str]] = None

    def country_for_timezone(self, timezone: str) -> Optional[str]:
        """
        Resolve an IANA timezone to the country that uses it.

        Returns None for zones without a country (e.g. ``UTC``) or unknown names.
        """
        if self._zone_index is None:
            index: Dict[str, str] = {}
            for country_code, zones in pytz.country_timezones.items():
                for zone in zones:
                    index.setdefault(zone, country_code.upper())
            self._zone_index = index
        country = self._zone_index.get(timezone)
        if country is None:
            logger.debug("Timezone %r has no country; holiday checks are skipped", timezone)
        return country

    def holidays_for(self, country_code: str, year: int) -> FrozenSet[date]:
        """Return the holidays of ``country_code`` in ``year``, computing them once."""
        key = (country_code.upper(), year)
        if key not in self._holidays:
            self._holidays[key] = frozenset(self._provider(key[0], year))
            logger.debug("Loaded %d holidays for %s/%d", len(self._holidays[key]), key[0], year)
        return self._holidays[key]

    def is_holiday(self, day: date, country_code: str) -> bool:
        """Check if a date is a public holiday in the given country."""
        return day in self.holidays_for(country_code, day.year)

    def is_holiday_eve(self, day: date, country_code: str) -> bool:
        """Check if the day after ``day`` is a public holiday."""
        return self.is_holiday(day + relativedelta(days=1), country_code)


@dataclass(frozen=True)
class EligibilityVerdict:
    """Outcome of an eligibility check with a short human-readable reason."""
    allowed: bool
    reason: str
    is_holiday: bool = False
    is_holiday_eve: bool = False
    country_code: Optional[str] = None


class DateEligibility:
    """
    Decides whether a date may carry events for a calendar.

    Rules, in order:
    1. ``block`` policy: a holiday is rejected
    2. ``allow`` policy: a holiday is accepted regardless of weekday
    3. Otherwise the weekday must be allowed
    4. A non-allowed weekday is still accepted as a holiday eve when enabled
    """

    def __init__(self, holiday_calendar: Optional[HolidayCalendar] = None):
        self.holiday_calendar = holiday_calendar or HolidayCalendar()

    def is_allowed(
        self,
        day: date,
        timezone: str,
        allowed_weekdays: Iterable[int],
        holidays_policy: HolidaysPolicy,
        allow_holiday_eves: bool,
    ) -> bool:
        """Return True if ``day`` is usable for the calendar."""
        return self.explain(
            day,
            timezone,
            allowed_weekdays,
            holidays_policy,
            allow_holiday_eves,
        ).allowed

    def explain(
        self,
        day: date,
        timezone: str,
        allowed_weekdays: Iterable[int],
        holidays_policy: HolidaysPolicy,
        allow_holiday_eves: bool,
    ) -> EligibilityVerdict:
        """Evaluate the rules and report which one decided."""
        policy = HolidaysPolicy(holidays_policy)
        country = self.holiday_calendar.country_for_timezone(timezone)
        holiday = country is not None and self.holiday_calendar.is_holiday(day, country)

        if holiday and policy is HolidaysPolicy.BLOCK:
            return EligibilityVerdict(False, "public holiday (blocked)", True, False, country)
        if holiday and policy is HolidaysPolicy.ALLOW:
            return EligibilityVerdict(True, "public holiday (allowed)", True, False, country)

        if weekday_of(day) in set(allowed_weekdays):
            return EligibilityVerdict(True, "allowed weekday", holiday, False, country)

        if allow_holiday_eves and country is not None and self.holiday_calendar.is_holiday_eve(day, country):
            return EligibilityVerdict(True, "holiday eve", holiday, True, country)

        return EligibilityVerdict(False, "weekday not allowed", holiday, False, country)
