"""Exception types raised by the events sync core."""


class EventSyncError(Exception):
    """Base class for every failure the sync core surfaces."""


class TransportError(EventSyncError):
    """Network or RPC failure talking to a remote source."""


class ClientUnavailableError(EventSyncError):
    """No connected, authenticated ledger client is available."""


class MalformedResponseError(EventSyncError):
    """A remote payload could not be decoded into an event batch."""


class ConsensusTimeoutError(EventSyncError):
    """Polling budget exhausted without the transaction being accepted."""

    def __init__(self, message: str, tx_id: str = None):
        super().__init__(message)
        self.tx_id = tx_id


class ConsensusRejectedError(ConsensusTimeoutError):
    """The appeal was not accepted either; escalation is exhausted."""


class WaitCancelledError(EventSyncError):
    """The caller cancelled the wait or its deadline passed."""


class CacheError(EventSyncError):
    """The local cache could not be read or written."""


class InvalidDateError(ValueError):
    """A date/time string could not be parsed.

    Never raised out of the parser; it travels inside a ParseResult.
    """

    def __init__(self, raw: str, reason: str = "unrecognised format"):
        super().__init__(f"Invalid date '{raw}': {reason}")
        self.raw = raw
        self.reason = reason
