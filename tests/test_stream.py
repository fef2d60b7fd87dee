"""
Unit tests for streaming records out of session log files.
"""

import json
import os
import tempfile
from datetime import datetime, timezone

import pytest

from revenium_metering.backfill.models import OutcomeKind
from revenium_metering.backfill.stream import stream_jsonl_records

VALID_LINE = json.dumps({
    "type": "assistant",
    "sessionId": "session-1",
    "timestamp": "2026-01-13T15:15:09.790Z",
    "message": {"model": "claude-sonnet-4", "usage": {"input_tokens": 10, "output_tokens": 5}},
})
MISSING_SESSION_LINE = json.dumps({
    "type": "assistant",
    "timestamp": "2026-01-13T15:16:00.000Z",
    "message": {"model": "claude-sonnet-4", "usage": {"input_tokens": 10}},
})
USER_LINE = json.dumps({"type": "user", "sessionId": "session-1", "message": {"content": "hi"}})


class TestStreamJsonlRecords:
    """Test line-by-line streaming of outcomes."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def _write(self, content: str, newline: str = "\n") -> str:
        path = os.path.join(self.temp_dir, "session.jsonl")
        with open(path, "w", encoding="utf-8", newline=newline) as f:
            f.write(content)
        return path

    def test_outcomes_in_line_order(self):
        path = self._write("\n".join([VALID_LINE, "{broken", MISSING_SESSION_LINE]) + "\n")

        kinds = [outcome.kind for outcome in stream_jsonl_records(path)]

        assert kinds == [OutcomeKind.RECORD, OutcomeKind.PARSE_ERROR, OutcomeKind.MISSING_FIELDS]

    def test_skipped_lines_are_not_yielded(self):
        path = self._write("\n".join([USER_LINE, "", VALID_LINE, USER_LINE]))

        outcomes = list(stream_jsonl_records(path))

        assert len(outcomes) == 1
        assert outcomes[0].record.session_id == "session-1"

    def test_crlf_line_endings(self):
        path = self._write(VALID_LINE + "\r\n" + VALID_LINE + "\r\n", newline="")

        outcomes = list(stream_jsonl_records(path))

        assert [o.kind for o in outcomes] == [OutcomeKind.RECORD, OutcomeKind.RECORD]

    def test_since_is_applied(self):
        path = self._write(VALID_LINE + "\n")
        cutoff = datetime(2027, 1, 1, tzinfo=timezone.utc)

        assert list(stream_jsonl_records(path, cutoff)) == []

    def test_missing_file_raises(self):
        with pytest.raises(OSError):
            list(stream_jsonl_records(os.path.join(self.temp_dir, "nope.jsonl")))

    def test_is_lazy_and_closes_on_early_exit(self):
        path = self._write("\n".join([VALID_LINE] * 5))

        generator = stream_jsonl_records(path)
        first = next(generator)
        generator.close()

        assert first.kind is OutcomeKind.RECORD
        assert generator.gi_frame is None
