"""Clients for the remote consensus ledger holding the events contract."""
import itertools
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import requests

from errors import ClientUnavailableError, MalformedResponseError, TransportError
from processor.models import TransactionHandle, TransactionStatus

logger = logging.getLogger(__name__)


class RemoteLedgerClient(ABC):
    """Interface the sync core needs from a consensus ledger."""

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """True when an authenticated session is open."""

    @abstractmethod
    def connect(self) -> None:
        """Open the session; raises ClientUnavailableError if it cannot."""

    @abstractmethod
    def read_state(self, address: str, query: Dict[str, Any]) -> Any:
        """Free read of contract state."""

    @abstractmethod
    def submit(self, address: str, mutation: Dict[str, Any]) -> TransactionHandle:
        """Paid write; returns a pending handle immediately."""

    @abstractmethod
    def poll_status(self, handle: TransactionHandle) -> TransactionStatus:
        """Current status of a submitted transaction."""

    @abstractmethod
    def appeal(self, handle: TransactionHandle) -> TransactionHandle:
        """Request re-adjudication of a rejected transaction."""

    def reset(self) -> None:
        """Drop the session so the next call reconnects."""
        self.close()

    def close(self) -> None:
        """Release any held resources."""


class JsonRpcLedgerClient(RemoteLedgerClient):
    """
    JSON-RPC 2.0 client for a ledger gateway.

    The gateway holds the signing account; this client authenticates with a
    bearer credential. Requests are never retried here.
    """

    READ_METHOD = 'ledger_readContract'
    SUBMIT_METHOD = 'ledger_writeContract'
    STATUS_METHOD = 'ledger_getTransactionStatus'
    APPEAL_METHOD = 'ledger_appealTransaction'

    def __init__(self, rpc_url: str, api_key: Optional[str], timeout: int = 30):
        """
        Initialize the client without opening a session.

        Args:
            rpc_url: Gateway JSON-RPC endpoint
            api_key: Session credential; None or empty means unavailable
            timeout: HTTP request timeout in seconds (default: 30)
        """
        self.rpc_url = rpc_url
        self.api_key = api_key
        self.timeout = timeout
        self.session: Optional[requests.Session] = None
        self._ids = itertools.count(1)

    @property
    def is_connected(self) -> bool:
        return self.session is not None

    def connect(self) -> None:
        """
        Open an authenticated HTTP session, if not already open.

        Raises:
            ClientUnavailableError: If no credential or endpoint is configured
        """
        if self.session is not None:
            return

        if not self.api_key:
            logger.error("Missing ledger credential, cannot connect")
            raise ClientUnavailableError("Ledger client has no credential configured")
        if not self.rpc_url:
            logger.error("Missing ledger RPC URL, cannot connect")
            raise ClientUnavailableError("Ledger client has no RPC URL configured")

        session = requests.Session()
        session.headers.update({
            'Authorization': f"Bearer {self.api_key}",
            'Content-Type': 'application/json'
        })
        self.session = session
        logger.info(f"Connected ledger client to {self.rpc_url}")

    def close(self) -> None:
        if self.session is not None:
            self.session.close()
            self.session = None
            logger.info("Closed ledger client session")

    def read_state(self, address: str, query: Dict[str, Any]) -> Any:
        return self._call(self.READ_METHOD, {
            'address': address,
            'function': query.get('function'),
            'args': query.get('args', [])
        })

    def submit(self, address: str, mutation: Dict[str, Any]) -> TransactionHandle:
        result = self._call(self.SUBMIT_METHOD, {
            'address': address,
            'function': mutation.get('function'),
            'args': mutation.get('args', []),
            'value': str(mutation.get('value', 0))
        })
        return TransactionHandle(tx_id=self._extract_tx_id(result))

    def poll_status(self, handle: TransactionHandle) -> TransactionStatus:
        result = self._call(self.STATUS_METHOD, {'hash': handle.tx_id})
        raw_status = result.get('status') if isinstance(result, dict) else result
        status = TransactionStatus.from_wire(raw_status)
        handle.status = status
        return status

    def appeal(self, handle: TransactionHandle) -> TransactionHandle:
        result = self._call(self.APPEAL_METHOD, {'txId': handle.tx_id})
        return TransactionHandle(tx_id=self._extract_tx_id(result))

    def _call(self, method: str, params: Dict[str, Any]) -> Any:
        """
        Perform a single JSON-RPC call.

        Raises:
            ClientUnavailableError: If the session cannot be opened
            TransportError: On HTTP failure or a JSON-RPC error member
            MalformedResponseError: If the response body is not JSON-RPC
        """
        self.connect()

        payload = {
            'jsonrpc': '2.0',
            'id': next(self._ids),
            'method': method,
            'params': params
        }
        logger.debug(f"Calling {method}")

        try:
            response = self.session.post(self.rpc_url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            logger.warning(f"Ledger call {method} failed: {e}")
            raise TransportError(f"{method} failed: {e}") from e

        try:
            body = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"{method} returned a non-JSON body") from e

        if not isinstance(body, dict):
            raise MalformedResponseError(f"{method} returned an unexpected body")

        if body.get('error'):
            error = body['error']
            message = error.get('message') if isinstance(error, dict) else str(error)
            logger.warning(f"Ledger call {method} returned error: {message}")
            raise TransportError(f"{method} returned error: {message}")

        if 'result' not in body:
            raise MalformedResponseError(f"{method} response has no result")

        return body['result']

    def _extract_tx_id(self, result: Any) -> str:
        if isinstance(result, dict):
            result = result.get('hash') or result.get('txId')
        if not isinstance(result, str) or not result:
            raise MalformedResponseError("Ledger did not return a transaction hash")
        return result
