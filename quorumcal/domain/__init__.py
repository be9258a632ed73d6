"""
Domain layer - Pure business logic for availability resolution.
"""

from .aggregator import AvailabilityAggregator
from .eligibility import DateEligibility, HolidayCalendar
from .exceptions import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    QuorumCalError,
    StoreError,
    ValidationError,
)
from .models import (
    ALL_DAY,
    AvailabilityWindow,
    HolidaysPolicy,
    Participant,
    RecurrencePattern,
    ResolvedSlot,
    Snapshot,
    Source,
    TimeWindow,
)
from .recurrence import RecurrenceExpansion, expand
from .slot_resolver import QuorumSlotResolver

__all__ = [
    "ALL_DAY",
    "AvailabilityAggregator",
    "AvailabilityWindow",
    "ConfigurationError",
    "ConflictError",
    "DateEligibility",
    "HolidayCalendar",
    "HolidaysPolicy",
    "NotFoundError",
    "Participant",
    "QuorumCalError",
    "QuorumSlotResolver",
    "RecurrenceExpansion",
    "RecurrencePattern",
    "ResolvedSlot",
    "Snapshot",
    "Source",
    "StoreError",
    "TimeWindow",
    "ValidationError",
    "expand",
]
