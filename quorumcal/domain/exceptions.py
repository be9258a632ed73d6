"""
Domain-specific exception hierarchy for quorumcal.
"""


class QuorumCalError(Exception):
    """Base class for all application-level errors."""


class ValidationError(QuorumCalError, ValueError):
    """Raised when a date, time, weekday or range is malformed or out of bounds."""


class ConflictError(QuorumCalError):
    """Raised when a write collides with existing availability data."""


class NotFoundError(QuorumCalError):
    """Raised when a calendar, participant or recurrence does not exist."""


class ConfigurationError(QuorumCalError):
    """Raised when persisted configuration cannot be parsed."""


class StoreError(QuorumCalError):
    """Raised when an availability store cannot be reached or returns garbage."""
