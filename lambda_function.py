"""AWS Lambda handler for the community events sync."""
import json
import logging
import time
from typing import Any, Dict

from ledger.rpc_client import JsonRpcLedgerClient
from ledger.transaction_waiter import TransactionWaiter
from settings import SOURCE_LEDGER, SOURCE_SHEETS, Settings, load_settings
from sources.event_source import EventSource, LedgerEventSource
from sources.sheets_source import SheetsEventSource
from storage.dynamodb_cache import DynamoDBCache
from store.event_store import EventStore

ACTIONS = ('load', 'sync', 'clear', 'restore')


# Configure JSON logging
class JsonFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            'timestamp': self.formatTime(record),
            'level': record.levelname,
            'message': record.getMessage(),
            'logger': record.name
        }

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        return json.dumps(log_data)


def setup_logging(log_level: str = 'INFO') -> None:
    """
    Configure logging with JSON formatter.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
    """
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler()
    handler.setFormatter(JsonFormatter())
    root_logger.addHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))


def build_source(settings: Settings) -> EventSource:
    """
    Construct the event source named by EVENT_SOURCE.

    Raises:
        ValueError: If the configured source is unknown
    """
    if settings.event_source == SOURCE_LEDGER:
        client = JsonRpcLedgerClient(
            rpc_url=settings.ledger_rpc_url,
            api_key=settings.ledger_api_key,
            timeout=settings.timeout_seconds
        )
        waiter = TransactionWaiter(
            client,
            poll_interval=settings.poll_interval_seconds,
            poll_retries=settings.poll_retries,
            appeal_retries=settings.appeal_retries
        )
        return LedgerEventSource(client, waiter, settings.contract_address)

    if settings.event_source == SOURCE_SHEETS:
        return SheetsEventSource(
            sheet_id=settings.sheet_id,
            api_key=settings.sheets_api_key,
            sheet_name=settings.sheet_name,
            timeout=settings.timeout_seconds
        )

    raise ValueError(f"Unknown event source: {settings.event_source}")


def build_store(settings: Settings) -> EventStore:
    """Wire source and cache into an EventStore."""
    cache = DynamoDBCache(table_name=settings.table_name, prefix=settings.cache_prefix)
    return EventStore(source=build_source(settings), cache=cache)


def _response(status_code: int, body: Dict[str, Any]) -> Dict[str, Any]:
    return {'statusCode': status_code, 'body': json.dumps(body)}


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Main Lambda handler for the events sync.

    Args:
        event: Invocation payload, {"action": "load" | "sync" | "clear" | "restore"}
        context: Lambda context object

    Returns:
        Response dict with statusCode and a JSON body holding the event view
    """
    settings = load_settings()

    setup_logging(settings.log_level)
    logger = logging.getLogger(__name__)

    start_time = time.time()
    action = (event or {}).get('action', 'load')

    if action not in ACTIONS:
        logger.warning(f"Unknown action requested: {action}")
        return _response(400, {
            'message': f"Unknown action '{action}'",
            'allowed_actions': list(ACTIONS)
        })

    logger.info(
        f"Lambda execution started",
        extra={
            'action': action,
            'table_name': settings.table_name,
            'event_source': settings.event_source
        }
    )

    store = None
    try:
        store = build_store(settings)

        if action == 'load':
            store.load()
        elif action == 'sync':
            store.sync()
        elif action == 'clear':
            store.clear_cache()
        else:
            store.restore()

        outcome = store.outcome()
        duration = time.time() - start_time

        logger.info(
            f"Lambda execution completed successfully",
            extra={
                'action': action,
                'duration_seconds': round(duration, 2),
                'event_count': len(outcome.events),
                'from_cache': outcome.from_cache
            }
        )

        return _response(200, {
            'message': f"{action.capitalize()} completed successfully",
            'events': [e.to_record() for e in outcome.events],
            'has_events': outcome.has_events,
            'from_cache': outcome.from_cache,
            'last_sync': outcome.last_synced_at.isoformat() if outcome.last_synced_at else None,
            'duration_seconds': round(duration, 2)
        })

    except Exception as e:
        duration = time.time() - start_time

        logger.error(
            f"Lambda execution failed: {str(e)}",
            extra={
                'action': action,
                'duration_seconds': round(duration, 2),
                'error_type': type(e).__name__
            },
            exc_info=True
        )

        body = {
            'message': f"{action.capitalize()} failed",
            'error': str(e),
            'error_type': type(e).__name__,
            'duration_seconds': round(duration, 2)
        }
        if action == 'sync':
            body['note'] = 'Previously cached events were left in place'
        return _response(500, body)

    finally:
        if store is not None:
            store.close()
