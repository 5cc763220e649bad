"""Tolerant parsing of the date/time strings found in event payloads."""
import logging
import re
from datetime import datetime
from typing import Optional

from errors import InvalidDateError
from processor.models import ParseResult

logger = logging.getLogger(__name__)

MIDNIGHT = '00:00:00'
UNKNOWN_TIME = 'TBD'

_MERIDIAN_PATTERN = re.compile(r'(\d+):(\d+)\s?(AM|PM)', re.IGNORECASE)


def normalize_time(time_str: Optional[str]) -> str:
    """
    Normalize a time string to HH:MM:SS for parsing.

    Args:
        time_str: Raw time (e.g. "13:30", "13:30:00", "2:00 PM", "TBD")

    Returns:
        Time with seconds appended; unknown or empty times become midnight
    """
    cleaned = (time_str or '').strip()
    if not cleaned or cleaned.upper() == UNKNOWN_TIME:
        return MIDNIGHT

    parts = cleaned.split(':')
    if len(parts) == 2:
        return f"{cleaned}:00"
    if len(parts) == 3:
        return cleaned
    return MIDNIGHT


def combine(date_str: Optional[str], time_str: Optional[str]) -> str:
    """Join a date and a time into the single string the parser expects."""
    return f"{(date_str or '').strip()}T{normalize_time(time_str)}"


class DateParser:
    """Parser for compact ISO timestamps and US-style date/time strings."""

    def parse(self, raw: Optional[str]) -> ParseResult:
        """
        Parse a date/time string into a naive local datetime.

        Tries a generic ISO parse first, then falls back to splitting the
        date and time parts by hand (MM/DD/YYYY or YYYY-MM-DD, 12- or 24-hour).

        Args:
            raw: Date/time string, e.g. "2025-01-06T13:30:00" or
                "1/6/2026T2:00 PM:00"

        Returns:
            ParseResult holding the timestamp, or the InvalidDateError
            describing why it could not be parsed. Never raises.
        """
        if not isinstance(raw, str) or not raw.strip():
            return ParseResult(error=InvalidDateError(str(raw), 'empty input'))

        raw = raw.strip()

        try:
            parsed = datetime.fromisoformat(raw)
            if parsed.tzinfo is not None:
                parsed = parsed.astimezone().replace(tzinfo=None)
            return ParseResult(value=parsed)
        except ValueError:
            pass

        try:
            return ParseResult(value=self._parse_fields(raw))
        except InvalidDateError as e:
            return ParseResult(error=e)
        except (ValueError, OverflowError) as e:
            return ParseResult(error=InvalidDateError(raw, str(e)))

    def _parse_fields(self, raw: str) -> datetime:
        """
        Build a datetime from discrete year/month/day/hour/minute fields.

        Raises:
            InvalidDateError: If the string does not have the expected shape
            ValueError: If a field is not a number or out of range
        """
        date_part, sep, time_part = raw.partition('T')
        if not sep or not date_part or not time_part:
            raise InvalidDateError(raw, 'missing date/time separator')

        year, month, day = self._split_date(raw, date_part)

        upper = time_part.upper()
        if 'AM' in upper or 'PM' in upper:
            match = _MERIDIAN_PATTERN.search(time_part)
            if not match:
                raise InvalidDateError(raw, 'unreadable 12-hour time')
            hours = int(match.group(1))
            minutes = int(match.group(2))
            meridian = match.group(3).upper()
            if meridian == 'PM' and hours < 12:
                hours += 12
            if meridian == 'AM' and hours == 12:
                hours = 0
        else:
            pieces = time_part.split(':')
            if len(pieces) < 2:
                raise InvalidDateError(raw, 'unreadable 24-hour time')
            hours = int(pieces[0])
            minutes = int(pieces[1])

        return datetime(year, month, day, hours, minutes)

    def _split_date(self, raw: str, date_part: str) -> tuple[int, int, int]:
        """Return (year, month, day) from MM/DD/YYYY or YYYY-MM-DD."""
        if '/' in date_part:
            pieces = date_part.split('/')
            if len(pieces) != 3:
                raise InvalidDateError(raw, 'expected MM/DD/YYYY')
            month, day, year = (int(p) for p in pieces)
        elif '-' in date_part:
            pieces = date_part.split('-')
            if len(pieces) != 3:
                raise InvalidDateError(raw, 'expected YYYY-MM-DD')
            year, month, day = (int(p) for p in pieces)
        else:
            raise InvalidDateError(raw, 'unrecognised date part')
        return year, month, day
