"""Drive a submitted ledger transaction to acceptance, appealing once if rejected."""
import logging
import threading
import time
from enum import Enum
from typing import List, Optional

from errors import (
    ConsensusRejectedError,
    ConsensusTimeoutError,
    TransportError,
    WaitCancelledError,
)
from ledger.rpc_client import RemoteLedgerClient
from processor.models import Receipt, TransactionHandle, TransactionStatus

logger = logging.getLogger(__name__)


class WaiterState(str, Enum):
    """States of the polling/appeal state machine."""
    SUBMITTED = 'SUBMITTED'
    POLLING = 'POLLING'
    ACCEPTED = 'ACCEPTED'
    REJECTED_PENDING_APPEAL = 'REJECTED_PENDING_APPEAL'
    TIMED_OUT = 'TIMED_OUT'
    APPEALED = 'APPEALED'
    FATAL = 'FATAL'


class TransactionWaiter:
    """
    Poll a transaction until the ledger accepts it.

    When the first polling budget runs out, an explicit status check decides
    between appealing (the ledger rejected it) and giving up (still pending,
    the network is stuck). Only one appeal is attempted per submission.
    """

    def __init__(
        self,
        client: RemoteLedgerClient,
        poll_interval: float = 5.0,
        poll_retries: int = 100,
        appeal_retries: Optional[int] = None
    ):
        """
        Initialize the waiter.

        Args:
            client: Ledger client used for polling and appeals
            poll_interval: Seconds between status polls (default: 5)
            poll_retries: Polls before the first escalation decision (default: 100)
            appeal_retries: Polls allowed for the appeal (default: poll_retries)
        """
        if poll_retries < 1:
            raise ValueError("poll_retries must be at least 1")
        self.client = client
        self.poll_interval = poll_interval
        self.poll_retries = poll_retries
        self.appeal_retries = appeal_retries if appeal_retries is not None else poll_retries
        if self.appeal_retries < 1:
            raise ValueError("appeal_retries must be at least 1")
        self.state: Optional[WaiterState] = None
        self.history: List[WaiterState] = []

    def await_outcome(
        self,
        handle: TransactionHandle,
        cancel_event: Optional[threading.Event] = None,
        deadline: Optional[float] = None
    ) -> Receipt:
        """
        Wait for a transaction to be accepted.

        Args:
            handle: Handle returned by the ledger on submit
            cancel_event: Set by the caller to abort the wait early
            deadline: Absolute time.monotonic() value after which to abort

        Returns:
            Receipt for the accepted transaction (or its appeal)

        Raises:
            ClientUnavailableError: If the client cannot connect
            ConsensusTimeoutError: If the first budget ends while still pending
            ConsensusRejectedError: If the appeal is not accepted either
            WaitCancelledError: If cancelled or past the deadline
        """
        self.history = []
        self._transition(WaiterState.SUBMITTED, handle)
        self.client.connect()

        status, attempts = self._poll(handle, self.poll_retries, cancel_event, deadline)
        if status is not None and status.is_accepted:
            return self._accept(handle, status, attempts)

        logger.warning(
            f"Transaction {handle.tx_id} not accepted after {attempts} polls, "
            f"checking status before escalating"
        )
        self._check_cancelled(handle, cancel_event, deadline)
        try:
            status = self.client.poll_status(handle)
        except TransportError as e:
            self._transition(WaiterState.TIMED_OUT, handle)
            logger.error(f"Status check for {handle.tx_id} failed, giving up: {e}")
            raise ConsensusTimeoutError(
                f"Transaction {handle.tx_id} was not accepted after {attempts} polls "
                f"and its status could not be checked: {e}",
                tx_id=handle.tx_id
            ) from e
        attempts += 1

        if status.is_accepted:
            return self._accept(handle, status, attempts)

        if status != TransactionStatus.REJECTED:
            self._transition(WaiterState.TIMED_OUT, handle)
            logger.error(
                f"Transaction {handle.tx_id} still {status.value} after "
                f"{attempts} polls, giving up"
            )
            raise ConsensusTimeoutError(
                f"Transaction {handle.tx_id} was not accepted after {attempts} polls "
                f"(last status {status.value})",
                tx_id=handle.tx_id
            )

        self._transition(WaiterState.REJECTED_PENDING_APPEAL, handle)
        self._check_cancelled(handle, cancel_event, deadline)
        appeal_handle = self.client.appeal(handle)
        self._transition(WaiterState.APPEALED, appeal_handle)
        logger.info(f"Appealed transaction {handle.tx_id} as {appeal_handle.tx_id}")

        status, appeal_attempts = self._poll(
            appeal_handle, self.appeal_retries, cancel_event, deadline
        )
        attempts += appeal_attempts
        if status is not None and status.is_accepted:
            return self._accept(appeal_handle, status, attempts, original=handle)

        self._transition(WaiterState.FATAL, appeal_handle)
        last_status = status.value if status is not None else 'UNKNOWN'
        logger.error(
            f"Appeal {appeal_handle.tx_id} of {handle.tx_id} not accepted "
            f"(last status {last_status})"
        )
        raise ConsensusRejectedError(
            f"Transaction {handle.tx_id} was rejected and its appeal "
            f"{appeal_handle.tx_id} was not accepted",
            tx_id=appeal_handle.tx_id
        )

    def _poll(
        self,
        handle: TransactionHandle,
        retries: int,
        cancel_event: Optional[threading.Event],
        deadline: Optional[float]
    ) -> tuple[Optional[TransactionStatus], int]:
        """
        Poll up to `retries` times, stopping early on acceptance.

        A transport failure spends the attempt and polling continues.

        Returns:
            Tuple of (last observed status or None, polls made)
        """
        self._transition(WaiterState.POLLING, handle)
        status = None

        for attempt in range(retries):
            self._check_cancelled(handle, cancel_event, deadline)

            try:
                status = self.client.poll_status(handle)
            except TransportError as e:
                logger.warning(
                    f"Status poll failed for {handle.tx_id} "
                    f"(attempt {attempt + 1}/{retries}): {e}"
                )
                status = None
            else:
                logger.debug(
                    f"Transaction {handle.tx_id} is {status.value} "
                    f"(attempt {attempt + 1}/{retries})"
                )
                if status.is_accepted:
                    return status, attempt + 1

            if attempt < retries - 1:
                self._sleep(handle, cancel_event, deadline)

        return status, retries

    def _sleep(self, handle: TransactionHandle,
               cancel_event: Optional[threading.Event],
               deadline: Optional[float]) -> None:
        delay = self.poll_interval
        if deadline is not None:
            delay = max(0.0, min(delay, deadline - time.monotonic()))

        if cancel_event is not None:
            if cancel_event.wait(delay):
                self._check_cancelled(handle, cancel_event, deadline)
        elif delay > 0:
            time.sleep(delay)

    def _check_cancelled(self, handle: TransactionHandle,
                         cancel_event: Optional[threading.Event],
                         deadline: Optional[float]) -> None:
        if cancel_event is not None and cancel_event.is_set():
            logger.info(f"Wait for {handle.tx_id} cancelled by caller")
            raise WaitCancelledError(f"Wait for transaction {handle.tx_id} was cancelled")
        if deadline is not None and time.monotonic() >= deadline:
            logger.info(f"Wait for {handle.tx_id} passed its deadline")
            raise WaitCancelledError(f"Wait for transaction {handle.tx_id} passed its deadline")

    def _accept(self, handle: TransactionHandle, status: TransactionStatus,
                attempts: int, original: Optional[TransactionHandle] = None) -> Receipt:
        self._transition(WaiterState.ACCEPTED, handle)
        logger.info(f"Transaction {handle.tx_id} {status.value} after {attempts} polls")
        return Receipt(
            tx_id=handle.tx_id,
            status=status,
            appealed=original is not None,
            original_tx_id=original.tx_id if original else None,
            attempts=attempts
        )

    def _transition(self, state: WaiterState, handle: TransactionHandle) -> None:
        self.state = state
        self.history.append(state)
        logger.debug(f"Transaction {handle.tx_id} -> {state.value}")
