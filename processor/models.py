"""Data models for event processing and transaction tracking."""
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from errors import InvalidDateError


class EventType(str, Enum):
    """Kinds of community events."""
    QUIZ = 'quiz'
    MEETING = 'meeting'
    WORKSHOP = 'workshop'
    AMA = 'ama'
    GAME = 'game'
    ANNOUNCEMENTS = 'announcements'


class EventStatus(str, Enum):
    """Lifecycle phase of an event relative to now."""
    ACTIVE = 'active'
    UPCOMING = 'upcoming'
    PAST = 'past'


@dataclass
class Event:
    """Normalized event as exposed to the presentation layer."""
    id: str
    title: str
    description: str
    date: str
    time: str
    type: EventType
    status: EventStatus
    discord_link: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        """Serialize to a plain JSON-compatible dict."""
        record = asdict(self)
        record['type'] = self.type.value
        record['status'] = self.status.value
        if self.discord_link is None:
            del record['discord_link']
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> 'Event':
        """Build an Event from a dict produced by to_record."""
        return cls(
            id=record['id'],
            title=record['title'],
            description=record.get('description', ''),
            date=record['date'],
            time=record.get('time', 'TBD'),
            type=EventType(record.get('type', EventType.MEETING.value)),
            status=EventStatus(record.get('status', EventStatus.UPCOMING.value)),
            discord_link=record.get('discord_link')
        )


@dataclass
class ContractEventBatch:
    """Raw batch returned by a remote read, before transformation."""
    records: List[Any]
    last_sync: Optional[str] = None
    total_count: Optional[int] = None


class TransactionStatus(str, Enum):
    """Status reported by the ledger for a submitted transaction."""
    PENDING = 'PENDING'
    PROPOSING = 'PROPOSING'
    COMMITTING = 'COMMITTING'
    REVEALING = 'REVEALING'
    ACCEPTED = 'ACCEPTED'
    FINALIZED = 'FINALIZED'
    UNDETERMINED = 'UNDETERMINED'
    REJECTED = 'REJECTED'
    CANCELED = 'CANCELED'
    UNKNOWN = 'UNKNOWN'

    @classmethod
    def from_wire(cls, value: Any) -> 'TransactionStatus':
        """Map a status string from the ledger, tolerating unknown values."""
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            return cls.UNKNOWN

    @property
    def is_accepted(self) -> bool:
        return self in (TransactionStatus.ACCEPTED, TransactionStatus.FINALIZED)


@dataclass
class TransactionHandle:
    """Opaque identifier for a submitted state change."""
    tx_id: str
    status: TransactionStatus = TransactionStatus.PENDING


@dataclass
class Receipt:
    """Terminal positive outcome of a transaction wait."""
    tx_id: str
    status: TransactionStatus
    appealed: bool = False
    original_tx_id: Optional[str] = None
    attempts: int = 0


@dataclass
class CacheRecord:
    """Last known good event set and when it was synced."""
    events: List[Event]
    last_synced_at: Optional[datetime]


@dataclass
class ParseResult:
    """Outcome of a date parse: either a timestamp or the reason it failed."""
    value: Optional[datetime] = None
    error: Optional[InvalidDateError] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    def value_or(self, default: Optional[datetime]) -> Optional[datetime]:
        return self.value if self.ok else default


@dataclass
class SyncOutcome:
    """Event view handed back to callers of the store."""
    events: List[Event] = field(default_factory=list)
    last_synced_at: Optional[datetime] = None
    from_cache: bool = False

    @property
    def has_events(self) -> bool:
        return len(self.events) > 0
