"""
Summary statistics over accumulated usage records.
"""

from datetime import datetime, timezone
from typing import Sequence

from .models import RecordStatistics, UsageRecord
from .parser import parse_timestamp

_EARLIEST = datetime.min.replace(tzinfo=timezone.utc)


def _instant(record: UsageRecord) -> datetime:
    return parse_timestamp(record.timestamp) or _EARLIEST


def calculate_statistics(records: Sequence[UsageRecord]) -> RecordStatistics:
    """Compute counts, token totals and the time range of a record set.

    Timestamps are compared as instants but reported as they appear in the
    logs. An empty input yields zero totals and empty timestamps.
    """
    if not records:
        return RecordStatistics()

    by_time = sorted(records, key=_instant)

    return RecordStatistics(
        total_records=len(records),
        oldest_timestamp=by_time[0].timestamp,
        newest_timestamp=by_time[-1].timestamp,
        total_input_tokens=sum(r.input_tokens for r in records),
        total_output_tokens=sum(r.output_tokens for r in records),
        total_cache_read_tokens=sum(r.cache_read_tokens for r in records),
        total_cache_creation_tokens=sum(r.cache_creation_tokens for r in records),
    )
