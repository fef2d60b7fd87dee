"""
Parsing of Claude Code session log lines and date filters.

Each line of a session log is one JSON object. Only assistant turns carry
token usage; every other line is skipped silently. Lines that are not valid
JSON, or assistant turns missing identifying fields, are classified so the
caller can report them without treating ordinary user turns as errors.
"""

import calendar
import json
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .models import (
    MISSING_FIELDS,
    PARSE_ERROR,
    SKIPPED,
    LineOutcome,
    UsageRecord,
)

_RELATIVE_DATE = re.compile(r"^(\d+)([dwmMy])$")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO-8601 timestamp into an aware UTC datetime.

    A trailing "Z" is accepted and values without an offset are taken as
    UTC. Returns None for anything that does not resolve to a valid instant.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _shift_months(moment: datetime, months: int) -> datetime:
    month_index = moment.year * 12 + (moment.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def parse_relative_date(value: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse a relative date such as "7d", "2w", "1m"/"1M" or "1y".

    Args:
        value: Relative date string
        now: Reference time (defaults to the current UTC time)

    Returns:
        The reference time minus the given amount, or None if the value is
        not in relative format or out of the representable range
    """
    match = _RELATIVE_DATE.match(value)
    if not match:
        return None

    amount = int(match.group(1))
    unit = match.group(2)
    reference = now or datetime.now(timezone.utc)

    try:
        if unit == "d":
            return reference - timedelta(days=amount)
        if unit == "w":
            return reference - timedelta(weeks=amount)
        if unit in ("m", "M"):
            return _shift_months(reference, amount)
        return _shift_months(reference, amount * 12)
    except (OverflowError, ValueError):
        # Amount reaches past the representable date range
        return None


def parse_since_date(value: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """Parse a --since value: relative format first, then ISO-8601."""
    relative = parse_relative_date(value, now)
    if relative is not None:
        return relative
    return parse_timestamp(value)


def _token_count(value: Any) -> int:
    # bool is an int subclass; JSON true/false are not token counts
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float) and value.is_integer():
        return max(int(value), 0)
    return 0


def _non_empty_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) and value else None


def parse_jsonl_line(line: str, since: Optional[datetime] = None) -> LineOutcome:
    """Classify one session log line.

    Args:
        line: Raw line without its terminator
        since: Optional cutoff; earlier records are skipped

    Returns:
        A RECORD outcome with a normalized UsageRecord, PARSE_ERROR for
        invalid JSON, MISSING_FIELDS for assistant usage lacking session id,
        timestamp or model, and SKIPPED for everything else
    """
    if not line.strip():
        return SKIPPED

    try:
        entry = json.loads(line)
    except (ValueError, RecursionError):
        return PARSE_ERROR
    if not isinstance(entry, dict):
        return PARSE_ERROR

    message = entry.get("message")
    if entry.get("type") != "assistant" or not isinstance(message, dict):
        return SKIPPED
    usage = message.get("usage")
    if not isinstance(usage, dict):
        return SKIPPED

    session_id = _non_empty_str(entry.get("sessionId"))
    timestamp = _non_empty_str(entry.get("timestamp"))
    model = _non_empty_str(message.get("model"))
    if session_id is None or timestamp is None or model is None:
        return MISSING_FIELDS

    moment = parse_timestamp(timestamp)
    if moment is None:
        return SKIPPED
    if since is not None and moment < since:
        return SKIPPED

    record = UsageRecord(
        session_id=session_id,
        timestamp=timestamp,
        model=model,
        input_tokens=_token_count(usage.get("input_tokens")),
        output_tokens=_token_count(usage.get("output_tokens")),
        cache_read_tokens=_token_count(usage.get("cache_read_input_tokens")),
        cache_creation_tokens=_token_count(usage.get("cache_creation_input_tokens")),
    )
    if record.total_tokens == 0:
        return SKIPPED

    return LineOutcome.of(record)
