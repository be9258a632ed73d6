"""
Adapters layer - Snapshot stores and iCalendar output.
"""

from .http_snapshot_client import HttpSnapshotClient
from .ics_renderer import ICSRenderer, event_uid
from .snapshot_store import InMemoryStore, SnapshotFileStore, parse_calendar_document

__all__ = [
    "HttpSnapshotClient",
    "ICSRenderer",
    "InMemoryStore",
    "SnapshotFileStore",
    "event_uid",
    "parse_calendar_document",
]
