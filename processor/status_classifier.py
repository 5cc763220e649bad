"""Classify events as active, upcoming or past relative to now."""
import logging
from datetime import datetime, timedelta
from typing import Optional

from processor.date_parser import MIDNIGHT, DateParser, combine
from processor.models import EventStatus

logger = logging.getLogger(__name__)

ACTIVE_WINDOW = timedelta(hours=2)

_parser = DateParser()


def event_timestamp(date_str: str, time_str: str) -> Optional[datetime]:
    """
    Resolve the start of an event, falling back to midnight on a bad time.

    Returns:
        Event datetime, or None when the date itself is unusable
    """
    result = _parser.parse(combine(date_str, time_str))
    if result.ok:
        return result.value

    logger.debug(f"Unparseable event time, retrying at midnight: {result.error}")
    return _parser.parse(combine(date_str, MIDNIGHT)).value_or(None)


def classify(date_str: str, time_str: str,
             now: Optional[datetime] = None) -> EventStatus:
    """
    Determine an event's status from its date and time.

    An event is active from two hours before its start until two hours
    after it; unparseable dates are always treated as upcoming.

    Args:
        date_str: Event date
        time_str: Event time, may be "TBD"
        now: Reference time (default: current local time)

    Returns:
        EventStatus for the event
    """
    if now is None:
        now = datetime.now()

    timestamp = event_timestamp(date_str, time_str)
    if timestamp is None:
        logger.warning(f"Invalid event date '{date_str}', treating as upcoming")
        return EventStatus.UPCOMING

    delta = timestamp - now
    if -ACTIVE_WINDOW <= delta <= ACTIVE_WINDOW:
        return EventStatus.ACTIVE
    if delta < -ACTIVE_WINDOW:
        return EventStatus.PAST
    return EventStatus.UPCOMING
