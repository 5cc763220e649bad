"""Configuration read from environment variables."""
import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

logger = logging.getLogger(__name__)

SOURCE_LEDGER = 'ledger'
SOURCE_SHEETS = 'sheets'


@dataclass
class Settings:
    """Runtime configuration for the events sync."""
    table_name: str = 'community-events-cache'
    log_level: str = 'INFO'
    event_source: str = SOURCE_LEDGER
    cache_prefix: str = 'genlayer'
    timeout_seconds: int = 30
    ledger_rpc_url: str = ''
    ledger_api_key: str = ''
    contract_address: str = ''
    poll_interval_seconds: int = 5
    poll_retries: int = 100
    appeal_retries: int = 100
    sheet_id: str = ''
    sheet_name: str = 'Genlayer events'
    sheets_api_key: str = ''


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw == '':
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Invalid integer for {name}: {raw!r}, using {default}")
        return default


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build Settings from environment variables.

    Args:
        env: Mapping to read from (default: os.environ)

    Returns:
        Settings populated from the environment, defaults elsewhere
    """
    if env is None:
        env = os.environ

    defaults = Settings()
    return Settings(
        table_name=env.get('TABLE_NAME', defaults.table_name),
        log_level=env.get('LOG_LEVEL', defaults.log_level),
        event_source=env.get('EVENT_SOURCE', defaults.event_source).strip().lower(),
        cache_prefix=env.get('CACHE_PREFIX', defaults.cache_prefix),
        timeout_seconds=_int_env(env, 'TIMEOUT_SECONDS', defaults.timeout_seconds),
        ledger_rpc_url=env.get('LEDGER_RPC_URL', defaults.ledger_rpc_url),
        ledger_api_key=env.get('LEDGER_API_KEY', defaults.ledger_api_key),
        contract_address=env.get('CONTRACT_ADDRESS', defaults.contract_address),
        poll_interval_seconds=_int_env(env, 'POLL_INTERVAL_SECONDS', defaults.poll_interval_seconds),
        poll_retries=_int_env(env, 'POLL_RETRIES', defaults.poll_retries),
        appeal_retries=_int_env(env, 'APPEAL_RETRIES', defaults.appeal_retries),
        sheet_id=env.get('SHEET_ID', defaults.sheet_id),
        sheet_name=env.get('SHEET_NAME', defaults.sheet_name),
        sheets_api_key=env.get('SHEETS_API_KEY', defaults.sheets_api_key)
    )
