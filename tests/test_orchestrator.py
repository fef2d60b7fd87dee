"""
Unit tests for the backfill orchestrator.

Runs are driven through BackfillDependencies fakes; nothing touches the
network or the real home directory.
"""

import io
import json
from pathlib import Path
from typing import List
from unittest.mock import Mock

import pytest
from rich.console import Console

from revenium_metering.backfill.models import (
    BatchDeliveryResult,
    FileDiscoveryResult,
    LineOutcome,
    MISSING_FIELDS,
    PARSE_ERROR,
    UsageRecord,
)
from revenium_metering.backfill.orchestrator import (
    BackfillAborted,
    BackfillDependencies,
    BackfillOptions,
    run_backfill,
)
from revenium_metering.backfill.stream import stream_jsonl_records
from revenium_metering.config.loader import MeteringConfig

CONFIG = MeteringConfig(
    api_key="hak_tenant_abcdef123456",
    endpoint="https://api.revenium.ai",
    email="dev@company.com",
    subscription_tier="max_20x",
)


def _records(count: int) -> List[UsageRecord]:
    return [
        UsageRecord(
            session_id=f"session-{i}",
            timestamp=f"2026-01-13T15:{i // 60 % 60:02d}:{i % 60:02d}.000Z",
            model="claude-sonnet-4",
            input_tokens=10,
            output_tokens=5,
        )
        for i in range(count)
    ]


class TestRunBackfill:
    """Test the end-to-end backfill sequence."""

    def setup_method(self):
        """Set up fakes and a captured console."""
        self.output = io.StringIO()
        self.console = Console(file=self.output, width=120, color_system=None)
        self.files = ["/home/user/.claude/projects/p/one.jsonl"]
        self.outcomes = {self.files[0]: [LineOutcome.of(r) for r in _records(3)]}
        self.send = Mock(return_value=BatchDeliveryResult(success=True, attempts=1))
        self.sleep = Mock()
        self.find = Mock(side_effect=lambda root: FileDiscoveryResult(files=list(self.files)))
        self.deps = BackfillDependencies(
            load_config=lambda: CONFIG,
            find_jsonl_files=self.find,
            stream_jsonl_records=self._stream,
            send_batch_with_retry=self.send,
            home_dir=lambda: Path("/home/user"),
            sleep=self.sleep,
        )

    def _stream(self, file_path, since):
        outcome = self.outcomes[file_path]
        if isinstance(outcome, Exception):
            raise outcome
        yield from outcome

    def _run(self, **options):
        return run_backfill(BackfillOptions(**options), self.deps, self.console)

    @property
    def text(self) -> str:
        return self.output.getvalue()

    def test_missing_config_aborts(self):
        self.deps.load_config = lambda: None

        with pytest.raises(BackfillAborted) as exc_info:
            self._run()

        assert exc_info.value.exit_code == 1
        assert "Configuration not found" in self.text
        self.find.assert_not_called()

    @pytest.mark.parametrize("since", ["last week", "99999999999d", "100000y"])
    def test_invalid_since_aborts_before_discovery(self, since):
        with pytest.raises(BackfillAborted):
            self._run(since=since)

        assert "Invalid --since value" in self.text
        self.find.assert_not_called()

    def test_discovery_uses_projects_dir(self):
        self._run()

        self.find.assert_called_once_with(Path("/home/user/.claude/projects"))

    def test_no_files_aborts(self):
        self.files = []

        with pytest.raises(BackfillAborted):
            self._run()

        assert "Searched in:" in self.text

    def test_no_records_is_not_an_error(self):
        self.outcomes[self.files[0]] = []

        report = self._run()

        assert report.records_found == 0
        assert "No usage records found" in self.text
        self.send.assert_not_called()

    def test_counts_bad_lines_and_failed_files(self):
        self.files = ["a.jsonl", "b.jsonl", "c.jsonl"]
        self.outcomes = {
            "a.jsonl": [LineOutcome.of(_records(1)[0]), PARSE_ERROR, MISSING_FIELDS, PARSE_ERROR],
            "b.jsonl": PermissionError(13, "Permission denied"),
            "c.jsonl": [LineOutcome.of(_records(2)[1])],
        }

        report = self._run(dry_run=True)

        assert report.files_found == 3
        assert report.files_failed == 1
        assert report.parse_errors == 2
        assert report.missing_fields == 1
        assert report.records_found == 2
        assert "2 malformed lines skipped" in self.text
        assert "1 file failed" in self.text

    def test_dry_run_sends_nothing(self):
        self.outcomes[self.files[0]] = [LineOutcome.of(r) for r in _records(150)]

        report = self._run(dry_run=True, batch_size=100)

        self.send.assert_not_called()
        self.sleep.assert_not_called()
        assert report.dry_run
        log_records = report.sample_payload["resourceLogs"][0]["scopeLogs"][0]["logRecords"]
        assert len(log_records) == 3
        session_ids = [
            next(a["value"]["stringValue"] for a in r["attributes"] if a["key"] == "session.id")
            for r in log_records
        ]
        assert session_ids == ["session-0", "session-1", "session-2"]
        assert "Dry run complete" in self.text

    def test_dry_run_sample_respects_small_batch_size(self):
        report = self._run(dry_run=True, batch_size=2)

        log_records = report.sample_payload["resourceLogs"][0]["scopeLogs"][0]["logRecords"]
        assert len(log_records) == 2

    def test_batches_are_sent_in_order_with_delay(self):
        self.outcomes[self.files[0]] = [LineOutcome.of(r) for r in _records(150)]

        report = self._run(batch_size=100, delay_ms=100)

        assert self.send.call_count == 2
        self.sleep.assert_called_once_with(0.1)
        first_payload = self.send.call_args_list[0].args[2]
        second_payload = self.send.call_args_list[1].args[2]
        assert len(first_payload["resourceLogs"][0]["scopeLogs"][0]["logRecords"]) == 100
        assert len(second_payload["resourceLogs"][0]["scopeLogs"][0]["logRecords"]) == 50
        assert report.batches_sent == 2
        assert report.records_sent == 150
        assert "Backfill complete!" in self.text

    def test_send_receives_credentials_and_retry_settings(self):
        self._run(verbose=True)

        args = self.send.call_args.args
        assert args[0] == "https://api.revenium.ai"
        assert args[1] == "hak_tenant_abcdef123456"
        assert args[3] == 3
        assert args[4] is True

    def test_zero_delay_never_sleeps(self):
        self.outcomes[self.files[0]] = [LineOutcome.of(r) for r in _records(5)]

        self._run(batch_size=1, delay_ms=0)

        assert self.send.call_count == 5
        self.sleep.assert_not_called()

    def test_failed_batch_does_not_stop_the_run(self):
        self.outcomes[self.files[0]] = [LineOutcome.of(r) for r in _records(3)]
        self.send.side_effect = [
            BatchDeliveryResult(success=True, attempts=2),
            BatchDeliveryResult(success=False, attempts=1, error="OTLP request failed: 401 Unauthorized - no"),
            BatchDeliveryResult(success=True, attempts=1),
        ]

        report = self._run(batch_size=1)

        assert self.send.call_count == 3
        assert report.batches_sent == 2
        assert report.batches_failed == 1
        assert report.records_sent == 2
        assert report.retry_attempts == 1
        assert report.failed_batches[0].batch_number == 2
        assert "Permanently Failed Batches" in self.text
        assert "Re-run the backfill" in self.text

    def test_unexpected_file_error_counts_file_as_failed(self):
        self.files = ["a.jsonl", "b.jsonl"]
        self.outcomes = {
            "a.jsonl": RecursionError("maximum recursion depth exceeded"),
            "b.jsonl": [LineOutcome.of(_records(1)[0])],
        }

        report = self._run(dry_run=True)

        assert report.files_failed == 1
        assert report.records_found == 1

    def test_records_sent_counts_delivered_log_records(self):
        valid = _records(2)
        undatable = UsageRecord(session_id="x", timestamp="not-a-time", model="m", input_tokens=1)
        self.outcomes[self.files[0]] = [LineOutcome.of(r) for r in [valid[0], undatable, valid[1]]]

        report = self._run()

        assert report.records_found == 3
        assert report.records_sent == 2

    def test_cost_multiplier_from_tier(self):
        self._run()

        payload = self.send.call_args.args[2]
        attrs = {a["key"]: a["value"] for a in payload["resourceLogs"][0]["resource"]["attributes"]}
        assert attrs["cost_multiplier"] == {"doubleValue": 0.08}


class TestBackfillEndToEnd:
    """Run the orchestrator over real files with a fake sender."""

    def test_three_line_file(self, tmp_path):
        projects = tmp_path / ".claude" / "projects" / "demo"
        projects.mkdir(parents=True)
        lines = [
            json.dumps({
                "type": "assistant",
                "sessionId": "session-1",
                "timestamp": "2026-01-13T15:15:09.790Z",
                "message": {"model": "claude-sonnet-4", "usage": {"input_tokens": 10, "output_tokens": 5}},
            }),
            "{this is not json",
            json.dumps({
                "type": "assistant",
                "timestamp": "2026-01-13T15:16:00.000Z",
                "message": {"model": "claude-sonnet-4", "usage": {"input_tokens": 10}},
            }),
        ]
        (projects / "session.jsonl").write_text("\n".join(lines) + "\n", encoding="utf-8")
        send = Mock(return_value=BatchDeliveryResult(success=True, attempts=1))
        deps = BackfillDependencies(
            load_config=lambda: CONFIG,
            stream_jsonl_records=stream_jsonl_records,
            send_batch_with_retry=send,
            home_dir=lambda: tmp_path,
            sleep=Mock(),
        )

        report = run_backfill(BackfillOptions(), deps, Console(file=io.StringIO()))

        assert report.records_found == 1
        assert report.parse_errors == 1
        assert report.missing_fields == 1
        assert report.records_sent == 1
        send.assert_called_once()

    def test_deeply_nested_line_does_not_abort_the_run(self, tmp_path):
        projects = tmp_path / ".claude" / "projects"
        projects.mkdir(parents=True)
        (projects / "bad.jsonl").write_text("[" * 100000 + "\n", encoding="utf-8")
        (projects / "good.jsonl").write_text(json.dumps({
            "type": "assistant",
            "sessionId": "session-2",
            "timestamp": "2026-01-14T10:00:00.000Z",
            "message": {"model": "claude-sonnet-4", "usage": {"output_tokens": 3}},
        }) + "\n", encoding="utf-8")
        deps = BackfillDependencies(load_config=lambda: CONFIG, home_dir=lambda: tmp_path, sleep=Mock())

        report = run_backfill(BackfillOptions(dry_run=True), deps, Console(file=io.StringIO()))

        assert report.files_failed == 0
        assert report.parse_errors == 1
        assert report.records_found == 1
