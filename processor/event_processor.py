"""Event processor for decoding and normalizing raw event batches."""
import dataclasses
import hashlib
import json
import logging
import re
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from errors import MalformedResponseError
from processor.date_parser import UNKNOWN_TIME
from processor.models import ContractEventBatch, Event, EventType
from processor.status_classifier import classify

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r'^```(?:json)?\s*\n?([\s\S]*?)\n?```$')

# Checked in order; first substring match wins
_TYPE_KEYWORDS = [
    (('quiz',), EventType.QUIZ),
    (('workshop',), EventType.WORKSHOP),
    (('ama', 'ask'), EventType.AMA),
    (('game', 'play'), EventType.GAME),
    (('announcement',), EventType.ANNOUNCEMENTS),
    (('stream', 'live'), EventType.MEETING),
]

SHEET_COLUMNS = ('title', 'description', 'date', 'time', 'type', 'discord_link')


def strip_code_fence(text: str) -> str:
    """
    Remove a surrounding markdown code fence from a JSON payload.

    Args:
        text: Payload, possibly wrapped in ```json ... ```

    Returns:
        The fenced content, or the input unchanged when not fenced
    """
    if not isinstance(text, str):
        return text
    match = _CODE_FENCE.match(text.strip())
    return match.group(1).strip() if match else text


class EventProcessor:
    """Processor for turning raw event batches into Event objects."""

    def parse_batch(self, payload: Union[str, Mapping[str, Any]]) -> ContractEventBatch:
        """
        Decode a raw read result into a ContractEventBatch.

        Args:
            payload: JSON string (optionally fenced) or an already-decoded dict

        Returns:
            ContractEventBatch; empty when the payload carries no event list

        Raises:
            MalformedResponseError: If the payload is not a JSON object
        """
        if isinstance(payload, (bytes, bytearray)):
            payload = payload.decode('utf-8', errors='replace')

        if isinstance(payload, str):
            try:
                payload = json.loads(strip_code_fence(payload))
            except json.JSONDecodeError as e:
                raise MalformedResponseError(f"Event payload is not valid JSON: {e}") from e

        if not isinstance(payload, Mapping):
            raise MalformedResponseError(
                f"Event payload must be a JSON object, got {type(payload).__name__}"
            )

        records = payload.get('events')
        if not isinstance(records, list):
            logger.warning("Event payload has no 'events' list, treating as empty")
            records = []

        return ContractEventBatch(
            records=records,
            last_sync=payload.get('last_sync'),
            total_count=payload.get('total_count')
        )

    def transform(self, batch: ContractEventBatch,
                  now: Optional[datetime] = None) -> List[Event]:
        """
        Transform raw records into Events with freshly classified statuses.

        Args:
            batch: Decoded batch from a remote read
            now: Reference time for status classification

        Returns:
            List of valid Event objects, in batch order
        """
        events = []

        for index, record in enumerate(batch.records):
            try:
                event = self._transform_record(record, index, now)
                if event:
                    events.append(event)
            except (TypeError, ValueError, AttributeError) as e:
                logger.warning(f"Failed to transform event record {index}: {e}")
                continue

        logger.info(
            f"Transformed {len(events)} valid events out of "
            f"{len(batch.records)} records"
        )
        return events

    def restamp(self, events: List[Event],
                now: Optional[datetime] = None) -> List[Event]:
        """Return copies of events with statuses recomputed against now."""
        return [
            dataclasses.replace(event, status=classify(event.date, event.time, now))
            for event in events
        ]

    def rows_to_records(self, rows: List[List[str]]) -> List[Dict[str, str]]:
        """
        Convert spreadsheet rows into raw event records.

        The first row is a header and is skipped, as are rows with an
        empty first cell.

        Args:
            rows: Cell values, columns ordered as SHEET_COLUMNS

        Returns:
            List of raw records ready for transform()
        """
        records = []
        for row in rows[1:]:
            if not row or not str(row[0]).strip():
                continue
            record = {
                column: row[i] if i < len(row) else ''
                for i, column in enumerate(SHEET_COLUMNS)
            }
            records.append(record)
        return records

    def _transform_record(self, record: Any, index: int,
                          now: Optional[datetime]) -> Optional[Event]:
        """
        Transform a single raw record.

        Returns:
            Event object or None if validation fails
        """
        if not isinstance(record, Mapping):
            logger.warning(f"Event record {index} is not an object, skipping")
            return None

        if not self._validate_required_fields(record, index):
            return None

        title = str(record['title']).strip()
        description = str(record.get('description') or '')
        date = str(record.get('date') or '').strip()
        raw_time = str(record.get('time') or record.get('start_time') or UNKNOWN_TIME).strip()

        return Event(
            id=self.generate_event_id(title=title, date=date, index=index),
            title=title,
            description=description,
            date=date,
            time=self.format_time(raw_time),
            type=self.map_event_type(record.get('type')),
            status=classify(date, raw_time, now),
            discord_link=record.get('discord_link') or None
        )

    def _validate_required_fields(self, record: Mapping[str, Any], index: int) -> bool:
        """
        Validate that a non-empty title is present.

        A missing date is allowed; such events classify as upcoming.

        Returns:
            True if valid, False otherwise
        """
        if not str(record.get('title') or '').strip():
            logger.warning(f"Event record {index} missing required field: title")
            return False

        return True

    def format_time(self, time_str: str) -> str:
        """Trim HH:MM:SS to HH:MM for display; other forms pass through."""
        if time_str.count(':') == 2:
            return time_str[:5]
        return time_str

    def map_event_type(self, raw_type: Any) -> EventType:
        """
        Map a free-form type label onto an EventType.

        Args:
            raw_type: Label such as "Weekly Quiz" or "Live stream"

        Returns:
            Matching EventType, MEETING when nothing matches
        """
        normalized = str(raw_type or '').lower().strip()
        for keywords, event_type in _TYPE_KEYWORDS:
            if any(keyword in normalized for keyword in keywords):
                return event_type
        return EventType.MEETING

    def generate_event_id(self, title: str, date: str, index: int) -> str:
        """
        Generate a deterministic identifier from title, date and batch position.

        Args:
            title: Event title
            date: Event date as received
            index: Position of the record in its batch

        Returns:
            Event ID (SHA256 hash)
        """
        composite = f"{title}|{date}|{index}"
        hash_obj = hashlib.sha256(composite.encode('utf-8'))
        return hash_obj.hexdigest()
