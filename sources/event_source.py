"""Event sources: where the store reads events from and how it refreshes them."""
import logging
import threading
from abc import ABC, abstractmethod
from typing import List, Optional

from ledger.rpc_client import RemoteLedgerClient
from ledger.transaction_waiter import TransactionWaiter
from processor.event_processor import EventProcessor
from processor.models import Event, Receipt

logger = logging.getLogger(__name__)


class EventSource(ABC):
    """A place events can be read from and, optionally, refreshed."""

    @abstractmethod
    def read(self) -> List[Event]:
        """Read the current event set."""

    @abstractmethod
    def refresh(self, cancel_event: Optional[threading.Event] = None) -> Optional[Receipt]:
        """Ask the source to bring its event set up to date."""

    def close(self) -> None:
        """Release any held resources."""


class LedgerEventSource(EventSource):
    """Events held by a contract on the consensus ledger."""

    READ_FUNCTION = 'read_events'
    SYNC_FUNCTION = 'sync_events'

    def __init__(
        self,
        client: RemoteLedgerClient,
        waiter: TransactionWaiter,
        address: str,
        processor: Optional[EventProcessor] = None
    ):
        """
        Initialize the source.

        Args:
            client: Ledger client owned by this source
            waiter: Waiter driving sync transactions to acceptance
            address: Contract address
            processor: Batch processor (default: a new EventProcessor)
        """
        self.client = client
        self.waiter = waiter
        self.address = address
        self.processor = processor or EventProcessor()

    def read(self) -> List[Event]:
        """
        Read events from the contract (free call).

        Raises:
            ClientUnavailableError: If the client cannot connect
            TransportError: If the call fails
            MalformedResponseError: If the result is not an event batch
        """
        logger.info(f"Reading events from contract {self.address}")
        raw = self.client.read_state(self.address, {'function': self.READ_FUNCTION, 'args': []})
        batch = self.processor.parse_batch(raw)
        logger.info(
            f"Contract returned {len(batch.records)} records "
            f"(reported total {batch.total_count}, last sync {batch.last_sync})"
        )
        return self.processor.transform(batch)

    def refresh(self, cancel_event: Optional[threading.Event] = None) -> Receipt:
        """
        Submit a sync transaction and wait until the ledger accepts it.

        Raises:
            ClientUnavailableError, TransportError: If submission fails
            ConsensusTimeoutError: If the transaction is never accepted
            WaitCancelledError: If the caller cancels the wait
        """
        handle = self.client.submit(self.address, {
            'function': self.SYNC_FUNCTION,
            'args': [],
            'value': 0
        })
        logger.info(f"Submitted {self.SYNC_FUNCTION} transaction {handle.tx_id}")
        return self.waiter.await_outcome(handle, cancel_event=cancel_event)

    def close(self) -> None:
        self.client.close()
