"""Event source backed by a Google Sheets spreadsheet."""
import logging
import threading
from typing import List, Optional
from urllib.parse import quote

import requests

from errors import MalformedResponseError, TransportError
from processor.event_processor import EventProcessor
from processor.models import ContractEventBatch, Event
from sources.event_source import EventSource

logger = logging.getLogger(__name__)


class SheetsEventSource(EventSource):
    """Read events from the values API of a Google Sheets spreadsheet."""

    BASE_URL = "https://sheets.googleapis.com/v4/spreadsheets"
    FALLBACK_RANGE = 'A:Z'

    def __init__(
        self,
        sheet_id: str,
        api_key: str,
        sheet_name: str = 'Genlayer events',
        timeout: int = 30,
        processor: Optional[EventProcessor] = None
    ):
        """
        Initialize the source.

        Args:
            sheet_id: Spreadsheet ID
            api_key: Google API key with Sheets read access
            sheet_name: Tab holding the events (default: "Genlayer events")
            timeout: HTTP request timeout in seconds (default: 30)
            processor: Batch processor (default: a new EventProcessor)
        """
        self.sheet_id = sheet_id
        self.api_key = api_key
        self.sheet_name = sheet_name
        self.timeout = timeout
        self.processor = processor or EventProcessor()
        self.session = requests.Session()

    @property
    def primary_range(self) -> str:
        # Tab names with spaces must be quoted in A1 notation
        return f"'{self.sheet_name}'!{self.FALLBACK_RANGE}"

    def read(self) -> List[Event]:
        """
        Fetch the sheet and transform its rows into events.

        Falls back to the first tab when the named tab cannot be resolved.

        Raises:
            TransportError: If the request fails
            MalformedResponseError: If the response is not a values payload
        """
        response = self._fetch(self.primary_range)

        if response.status_code == 400 and 'Unable to parse range' in response.text:
            logger.warning(
                f"Sheet tab '{self.sheet_name}' not found, falling back to first tab"
            )
            response = self._fetch(self.FALLBACK_RANGE)

        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise TransportError(f"Failed to fetch sheet data: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError("Sheet response is not JSON") from e

        rows = data.get('values', []) if isinstance(data, dict) else None
        if not isinstance(rows, list):
            raise MalformedResponseError("Sheet response has no values list")

        records = self.processor.rows_to_records(rows)
        logger.info(f"Fetched {len(records)} event rows from sheet {self.sheet_id}")
        return self.processor.transform(ContractEventBatch(records=records))

    def refresh(self, cancel_event: Optional[threading.Event] = None) -> None:
        """Sheets are read live; there is nothing to refresh."""
        logger.debug("Sheets source is always current, skipping refresh")
        return None

    def close(self) -> None:
        self.session.close()

    def _fetch(self, cell_range: str) -> requests.Response:
        url = f"{self.BASE_URL}/{self.sheet_id}/values/{quote(cell_range, safe='')}"
        try:
            return self.session.get(url, params={'key': self.api_key}, timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"Sheet request failed: {e}")
            raise TransportError(f"Failed to fetch sheet data: {e}") from e
