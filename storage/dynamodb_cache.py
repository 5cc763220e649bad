"""DynamoDB-backed cache of the last known good event set."""
import json
import logging
from datetime import datetime, timezone
from typing import List, Optional

import boto3
from botocore.exceptions import ClientError

from errors import CacheError
from processor.models import CacheRecord, Event

logger = logging.getLogger(__name__)


class DynamoDBCache:
    """
    Key/value cache stored as two items in a DynamoDB table.

    Items are keyed by `cache_key`: `<prefix>_events_data` holds a JSON array
    of event records and `<prefix>_last_sync` an ISO-8601 timestamp.
    """

    KEY_ATTRIBUTE = 'cache_key'
    VALUE_ATTRIBUTE = 'value'

    def __init__(self, table_name: str, prefix: str = 'genlayer'):
        """
        Initialize DynamoDB resource and table reference.

        Args:
            table_name: Name of the DynamoDB table
            prefix: Namespace for this dataset's keys (default: "genlayer")
        """
        self.table_name = table_name
        self.events_key = f"{prefix}_events_data"
        self.last_sync_key = f"{prefix}_last_sync"
        self.dynamodb = boto3.resource('dynamodb')
        self.table = self.dynamodb.Table(table_name)
        logger.info(f"Initialized DynamoDBCache for table: {table_name}")

    def save(self, events: List[Event], synced_at: Optional[datetime] = None) -> datetime:
        """
        Overwrite the cached snapshot.

        Args:
            events: Events to cache
            synced_at: Sync time (default: now, UTC)

        Returns:
            The sync timestamp that was stored

        Raises:
            CacheError: If DynamoDB rejects the write
        """
        if synced_at is None:
            synced_at = datetime.now(timezone.utc)

        events_json = json.dumps([event.to_record() for event in events])

        try:
            with self.table.batch_writer() as writer:
                writer.put_item(Item={
                    self.KEY_ATTRIBUTE: self.events_key,
                    self.VALUE_ATTRIBUTE: events_json
                })
                writer.put_item(Item={
                    self.KEY_ATTRIBUTE: self.last_sync_key,
                    self.VALUE_ATTRIBUTE: synced_at.isoformat()
                })
        except ClientError as e:
            logger.error(f"Error saving events to cache: {e}")
            raise CacheError(f"Failed to save events to cache: {e}") from e

        logger.info(f"Cached {len(events)} events (synced {synced_at.isoformat()})")
        return synced_at

    def load(self) -> Optional[CacheRecord]:
        """
        Read the cached snapshot.

        Returns:
            CacheRecord, or None when nothing usable is cached

        Raises:
            CacheError: If DynamoDB rejects the read
        """
        events_value = self._get_value(self.events_key)
        if events_value is None:
            logger.info("No cached events found")
            return None

        try:
            records = json.loads(events_value)
            events = [Event.from_record(record) for record in records]
        except (TypeError, KeyError, ValueError) as e:
            logger.warning(f"Failed to decode cached events: {e}")
            return None

        return CacheRecord(events=events, last_synced_at=self.get_last_sync())

    def get_last_sync(self) -> Optional[datetime]:
        """Return the timestamp of the last successful sync, if any."""
        value = self._get_value(self.last_sync_key)
        if value is None:
            return None
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            logger.warning(f"Ignoring malformed cached sync timestamp: {value}")
            return None

    def clear(self) -> None:
        """
        Delete the cached snapshot and sync timestamp.

        Raises:
            CacheError: If DynamoDB rejects the delete
        """
        try:
            with self.table.batch_writer() as writer:
                writer.delete_item(Key={self.KEY_ATTRIBUTE: self.events_key})
                writer.delete_item(Key={self.KEY_ATTRIBUTE: self.last_sync_key})
        except ClientError as e:
            logger.error(f"Error clearing cache: {e}")
            raise CacheError(f"Failed to clear cache: {e}") from e

        logger.info("Cleared cached events")

    def _get_value(self, key: str) -> Optional[str]:
        try:
            response = self.table.get_item(Key={self.KEY_ATTRIBUTE: key})
        except ClientError as e:
            logger.error(f"Error reading cache key {key}: {e}")
            raise CacheError(f"Failed to read cache: {e}") from e

        item = response.get('Item')
        if not item:
            return None
        return item.get(self.VALUE_ATTRIBUTE)
