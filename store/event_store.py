"""Read-through/write-through store reconciling an event source with the cache."""
import logging
import threading
from concurrent.futures import Future
from datetime import datetime
from typing import List, Optional

from errors import CacheError, EventSyncError
from processor.event_processor import EventProcessor
from processor.models import Event, SyncOutcome
from sources.event_source import EventSource
from storage.dynamodb_cache import DynamoDBCache

logger = logging.getLogger(__name__)


class EventStore:
    """
    Orchestrates reads, syncs and the local cache for one event dataset.

    Only one sync runs at a time; overlapping sync() calls wait on the
    in-flight one and share its result.
    """

    def __init__(self, source: EventSource, cache: DynamoDBCache,
                 processor: Optional[EventProcessor] = None):
        """
        Initialize the store.

        Args:
            source: Where events are read from and refreshed
            cache: Durable snapshot of the last good event set
            processor: Used to recompute statuses (default: a new EventProcessor)
        """
        self.source = source
        self.cache = cache
        self.processor = processor or EventProcessor()
        self.events: List[Event] = []
        self.last_synced_at: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.from_cache = False
        self._lock = threading.Lock()
        self._inflight: Optional[Future] = None

    @property
    def has_events(self) -> bool:
        return len(self.events) > 0

    @property
    def sync_in_progress(self) -> bool:
        with self._lock:
            return self._inflight is not None

    def outcome(self) -> SyncOutcome:
        """Snapshot of the current view for callers."""
        return SyncOutcome(
            events=list(self.events),
            last_synced_at=self.last_synced_at,
            from_cache=self.from_cache
        )

    def restore(self) -> List[Event]:
        """
        Populate the view from the cache without touching the source.

        Returns:
            Cached events with statuses recomputed, or [] if nothing is cached
        """
        record = self.cache.load()
        if record is None:
            return []
        self._set_view(self.processor.restamp(record.events), record.last_synced_at,
                       from_cache=True)
        logger.info(f"Restored {len(self.events)} events from cache")
        return self.events

    def load(self) -> List[Event]:
        """
        Read events from the source, syncing when it has none.

        Falls back to the cached snapshot when the read (or the fallback
        sync) fails.

        Returns:
            Current events with freshly classified statuses

        Raises:
            EventSyncError: If the source fails and nothing is cached
        """
        self.last_error = None
        try:
            events = self.source.read()
            if not events:
                logger.info("Source returned no events, syncing")
                return self.sync()

            synced_at = self._persist(events)
            self._set_view(events, synced_at, from_cache=False)
            return self.events

        except EventSyncError as e:
            logger.warning(
                f"Loading events failed, falling back to cache: {e}",
                extra={'error_type': type(e).__name__}
            )
            record = self.cache.load()
            if record is None or not record.events:
                self.last_error = str(e)
                logger.error(f"No cached events to fall back to: {e}")
                raise

            self._set_view(self.processor.restamp(record.events), record.last_synced_at,
                           from_cache=True)
            logger.info(f"Serving {len(self.events)} cached events")
            return self.events

    def sync(self, cancel_event: Optional[threading.Event] = None) -> List[Event]:
        """
        Refresh the source, then read and cache the result.

        Overlapping calls share the in-flight sync instead of starting another.

        Args:
            cancel_event: Set to abort waiting on the ledger

        Returns:
            Events read after the refresh

        Raises:
            EventSyncError: If the refresh or the follow-up read fails
        """
        with self._lock:
            if self._inflight is not None:
                inflight = self._inflight
                owner = False
            else:
                inflight = self._inflight = Future()
                owner = True

        if not owner:
            logger.info("Sync already in progress, waiting for its result")
            return inflight.result()

        try:
            events = self._run_sync(cancel_event)
        except BaseException as e:
            inflight.set_exception(e)
            raise
        else:
            inflight.set_result(events)
            return events
        finally:
            with self._lock:
                self._inflight = None

    def clear_cache(self) -> None:
        """Remove the cached snapshot; the source is not touched."""
        self.cache.clear()
        self._set_view([], None, from_cache=False)

    def close(self) -> None:
        self.source.close()

    def _run_sync(self, cancel_event: Optional[threading.Event]) -> List[Event]:
        self.last_error = None
        logger.info("Syncing events from source")
        try:
            receipt = self.source.refresh(cancel_event=cancel_event)
            if receipt is not None:
                logger.info(
                    f"Sync transaction {receipt.tx_id} {receipt.status.value}, "
                    f"reading updated events",
                    extra={'appealed': receipt.appealed, 'attempts': receipt.attempts}
                )
            events = self.source.read()
        except EventSyncError as e:
            self.last_error = str(e)
            logger.error(
                f"Error syncing events: {e}",
                extra={'error_type': type(e).__name__}
            )
            raise

        if not events:
            logger.warning("Sync produced no events, keeping existing cache")
            self._set_view([], self.last_synced_at, from_cache=False)
            return self.events

        synced_at = self._persist(events)
        self._set_view(events, synced_at, from_cache=False)
        logger.info(f"Synced {len(events)} events")
        return self.events

    def _persist(self, events: List[Event]) -> Optional[datetime]:
        try:
            return self.cache.save(events)
        except CacheError as e:
            logger.warning(f"Failed to save events to cache: {e}")
            return None

    def _set_view(self, events: List[Event], synced_at: Optional[datetime],
                  from_cache: bool) -> None:
        self.events = events
        self.last_synced_at = synced_at
        self.from_cache = from_cache
