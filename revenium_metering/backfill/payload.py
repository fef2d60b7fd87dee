"""
OTLP logs payloads for usage records.

Each usage record becomes one log record shaped like the
`claude_code.api_request` events Claude Code exports itself, so the backend
treats backfilled and live usage the same way.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Sequence

from ..api.otlp import build_resource_logs, int_attribute, string_attribute
from ..config.constants import API_REQUEST_EVENT
from ..utils.hashing import generate_transaction_id
from .models import UsageRecord
from .parser import parse_timestamp

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_NANOS_PER_MILLI = 1_000_000


@dataclass(frozen=True)
class PayloadOptions:
    """Attribution attached to every record of a payload.

    `organization_id` and `product_id` are accepted for older configuration
    files and only used when the corresponding name is not set.
    """
    cost_multiplier: float
    email: Optional[str] = None
    organization_name: Optional[str] = None
    product_name: Optional[str] = None
    organization_id: Optional[str] = None
    product_id: Optional[str] = None


def to_unix_nano(timestamp: str) -> Optional[str]:
    """Convert a timestamp to nanoseconds since the epoch, as a string.

    Precision is milliseconds, matching what the session logs carry.
    Returns None if the timestamp cannot be parsed.
    """
    moment = parse_timestamp(timestamp)
    if moment is None:
        return None
    millis = (moment - _EPOCH) // timedelta(milliseconds=1)
    return str(millis * _NANOS_PER_MILLI)


def _log_record(
    record: UsageRecord,
    time_unix_nano: str,
    options: PayloadOptions
) -> Dict[str, Any]:
    attributes = [
        string_attribute("session.id", record.session_id),
        string_attribute("transaction_id", generate_transaction_id(
            record.session_id,
            record.timestamp,
            record.model,
            record.input_tokens,
            record.output_tokens,
            record.cache_read_tokens,
            record.cache_creation_tokens,
        )),
        string_attribute("model", record.model),
        int_attribute("input_tokens", record.input_tokens),
        int_attribute("output_tokens", record.output_tokens),
        int_attribute("cache_read_tokens", record.cache_read_tokens),
        int_attribute("cache_creation_tokens", record.cache_creation_tokens),
    ]

    organization = options.organization_name or options.organization_id
    product = options.product_name or options.product_id
    if options.email:
        attributes.append(string_attribute("user.email", options.email))
    if organization:
        attributes.append(string_attribute("organization.name", organization))
    if product:
        attributes.append(string_attribute("product.name", product))

    return {
        "timeUnixNano": time_unix_nano,
        "body": {"stringValue": API_REQUEST_EVENT},
        "attributes": attributes,
    }


def create_otlp_payload(records: Sequence[UsageRecord], options: PayloadOptions) -> Dict[str, Any]:
    """Build the OTLP logs payload for a batch of usage records.

    Records keep their input order. Records whose timestamp cannot be
    converted are left out rather than failing the batch.

    Args:
        records: Usage records of one batch
        options: Cost multiplier and attribution

    Returns:
        JSON-serializable payload dictionary
    """
    log_records = []
    for record in records:
        time_unix_nano = to_unix_nano(record.timestamp)
        if time_unix_nano is None:
            continue
        log_records.append(_log_record(record, time_unix_nano, options))

    return build_resource_logs(log_records, options.cost_multiplier)
