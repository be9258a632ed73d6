"""
HTTP client for availability snapshots published by the calendar-management service.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from ..config import CalendarConfig
from ..domain.exceptions import NotFoundError, StoreError
from ..domain.models import Snapshot
from .snapshot_store import parse_calendar_document

logger = logging.getLogger(__name__)


class HttpSnapshotClient:
    """
    Read-only store that fetches a JSON snapshot document over HTTP.

    The document has the same shape as a snapshot file. It is fetched on
    first use and kept until ``refresh()`` is called.
    """

    def __init__(self, url: str, timeout: float = 30.0, api_token: Optional[str] = None):
        """
        Initialize the snapshot client.

        Args:
            url: URL of the snapshot document
            timeout: Request timeout in seconds
            api_token: Optional bearer token sent with each request
        """
        self.url = url
        self.timeout = timeout
        self.headers = {"Accept": "application/json"}
        if api_token:
            self.headers["Authorization"] = f"Bearer {api_token}"
        self._calendars: Optional[Dict[str, Tuple[CalendarConfig, Snapshot]]] = None

    def fetch_document(self) -> Dict[str, Any]:
        """
        Download the raw snapshot document.

        Raises:
            NotFoundError: If the server answers 404
            StoreError: If the request fails or the body is not JSON
        """
        try:
            response = requests.get(self.url, headers=self.headers, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise StoreError(f"Failed to fetch availability snapshot: {e}") from e

        if response.status_code == 404:
            raise NotFoundError(f"Snapshot not found at {self.url}")

        try:
            response.raise_for_status()
            return response.json()
        except requests.exceptions.HTTPError as e:
            raise StoreError(f"Snapshot request failed: {e}") from e
        except ValueError as e:
            raise StoreError(f"Snapshot response is not valid JSON: {e}") from e

    def refresh(self) -> None:
        self._calendars = parse_calendar_document(self.fetch_document())
        logger.info("Fetched %d calendar(s) from %s", len(self._calendars), self.url)

    def _loaded(self) -> Dict[str, Tuple[CalendarConfig, Snapshot]]:
        if self._calendars is None:
            self.refresh()
        return self._calendars

    def list_calendars(self) -> List[CalendarConfig]:
        return [calendar for calendar, _ in self._loaded().values()]

    def get_calendar(self, calendar_id: str) -> CalendarConfig:
        try:
            return self._loaded()[calendar_id][0]
        except KeyError:
            raise NotFoundError(f"Calendar not found: {calendar_id}") from None

    def get_snapshot(self, calendar_id: str) -> Snapshot:
        try:
            return self._loaded()[calendar_id][1]
        except KeyError:
            raise NotFoundError(f"Calendar not found: {calendar_id}") from None
