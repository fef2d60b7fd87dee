"""
Building blocks of the OTLP logs JSON shape accepted by Revenium.

Only the fields the backend reads are produced; this is not a general
OpenTelemetry encoder.
"""

from typing import Any, Dict, List

from .. import __version__
from ..config.constants import SERVICE_NAME


def string_attribute(key: str, value: str) -> Dict[str, Any]:
    return {"key": key, "value": {"stringValue": value}}


def int_attribute(key: str, value: int) -> Dict[str, Any]:
    return {"key": key, "value": {"intValue": value}}


def double_attribute(key: str, value: float) -> Dict[str, Any]:
    return {"key": key, "value": {"doubleValue": value}}


def build_resource_logs(log_records: List[Dict[str, Any]], cost_multiplier: float) -> Dict[str, Any]:
    """Wrap log records in a single resourceLogs/scopeLogs envelope.

    The cost multiplier is a resource attribute so it applies to every
    record of the payload.
    """
    return {
        "resourceLogs": [
            {
                "resource": {
                    "attributes": [
                        string_attribute("service.name", SERVICE_NAME),
                        double_attribute("cost_multiplier", float(cost_multiplier)),
                    ],
                },
                "scopeLogs": [
                    {
                        "scope": {"name": SERVICE_NAME, "version": __version__},
                        "logRecords": log_records,
                    },
                ],
            },
        ],
    }
