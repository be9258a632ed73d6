"""
Service layer helpers that orchestrate adapters and domain logic.
"""

from .feed import AvailabilityStore, DateSummary, FeedResponse, FeedService, ParticipantEntry, resolve_host

__all__ = [
    "AvailabilityStore",
    "DateSummary",
    "FeedResponse",
    "FeedService",
    "ParticipantEntry",
    "resolve_host",
]
