"""
Backfill of historical Claude Code usage.

Discovers local session logs, extracts token usage from them, and delivers
the usage to Revenium in batches with retry.
"""

from .models import (
    BatchDeliveryResult,
    FileDiscoveryResult,
    LineOutcome,
    OutcomeKind,
    RecordStatistics,
    UsageRecord,
)

__all__ = [
    "BatchDeliveryResult",
    "FileDiscoveryResult",
    "LineOutcome",
    "OutcomeKind",
    "RecordStatistics",
    "UsageRecord",
]
