"""
Data models for the backfill pipeline.

Records are created while scanning session logs, kept in memory until their
batch is sent, and never modified.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import List, Optional


@dataclass(frozen=True)
class UsageRecord:
    """Token usage of one assistant turn, as read from a session log."""
    session_id: str
    timestamp: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_read_tokens: int = 0
    cache_creation_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return (
            self.input_tokens
            + self.output_tokens
            + self.cache_read_tokens
            + self.cache_creation_tokens
        )


class OutcomeKind(Enum):
    """Classification of one session log line."""
    RECORD = auto()
    PARSE_ERROR = auto()
    MISSING_FIELDS = auto()
    SKIPPED = auto()  # Routine non-usage lines; never reported


@dataclass(frozen=True)
class LineOutcome:
    """Result of parsing one line. `record` is set only for RECORD outcomes."""
    kind: OutcomeKind
    record: Optional[UsageRecord] = None

    @classmethod
    def of(cls, record: UsageRecord) -> "LineOutcome":
        return cls(OutcomeKind.RECORD, record)

    @property
    def is_reported(self) -> bool:
        return self.kind is not OutcomeKind.SKIPPED


SKIPPED = LineOutcome(OutcomeKind.SKIPPED)
PARSE_ERROR = LineOutcome(OutcomeKind.PARSE_ERROR)
MISSING_FIELDS = LineOutcome(OutcomeKind.MISSING_FIELDS)


@dataclass(frozen=True)
class FileDiscoveryResult:
    """Session log files found under a root, plus per-directory errors."""
    files: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RecordStatistics:
    """Aggregates over a set of usage records."""
    total_records: int = 0
    oldest_timestamp: str = ""
    newest_timestamp: str = ""
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    total_cache_read_tokens: int = 0
    total_cache_creation_tokens: int = 0


@dataclass(frozen=True)
class BatchDeliveryResult:
    """Outcome of delivering one batch, including retries."""
    success: bool
    attempts: int
    error: Optional[str] = None


@dataclass(frozen=True)
class FailedBatch:
    """A batch that could not be delivered."""
    batch_number: int
    error: str
