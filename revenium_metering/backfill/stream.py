"""
Streaming of usage records out of one session log file.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterator, Optional, Union

from .models import LineOutcome
from .parser import parse_jsonl_line

logger = logging.getLogger(__name__)


def stream_jsonl_records(
    file_path: Union[str, Path],
    since: Optional[datetime] = None
) -> Iterator[LineOutcome]:
    """Lazily parse a session log, one line at a time.

    Only RECORD, PARSE_ERROR and MISSING_FIELDS outcomes are yielded. The
    file is closed when iteration finishes, when the consumer stops early,
    and when reading fails.

    Args:
        file_path: Path of the .jsonl file
        since: Optional cutoff passed to the line parser

    Yields:
        LineOutcome for every reportable line, in file order

    Raises:
        OSError: If the file cannot be opened or read
        UnicodeDecodeError: If the file is not valid UTF-8
    """
    # newline=None folds CRLF and CR line endings into "\n"
    with open(file_path, "r", encoding="utf-8", newline=None) as f:
        for line_number, line in enumerate(f, start=1):
            outcome = parse_jsonl_line(line.rstrip("\n"), since)
            if not outcome.is_reported:
                continue
            if outcome.record is None:
                logger.debug("%s:%d %s", file_path, line_number, outcome.kind.name)
            yield outcome
