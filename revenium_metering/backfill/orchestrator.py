"""
Backfill orchestration.

Ties discovery, streaming, statistics, payload building and delivery
together into one sequential run:

1. load the configuration
2. parse the optional --since filter
3. resolve the cost multiplier
4. discover session logs
5. stream every file, counting bad lines and failed files
6. stop early when no usage was found
7. show statistics
8. stop after a sample payload in dry-run mode
9. send batches in order with an inter-batch delay
10. report what was sent and what failed

Collaborators are passed in through BackfillDependencies so tests can drive
a run with fakes.
"""

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.progress import BarColumn, Progress, TextColumn
from rich.table import Table

from ..config import loader
from ..config.loader import MeteringConfig
from ..core.tiers import resolve_cost_multiplier
from . import delivery, discovery, stream
from .models import (
    BatchDeliveryResult,
    FailedBatch,
    FileDiscoveryResult,
    LineOutcome,
    OutcomeKind,
    UsageRecord,
)
from .parser import parse_since_date
from .payload import PayloadOptions, create_otlp_payload
from .statistics import calculate_statistics

logger = logging.getLogger(__name__)

default_console = Console()

EXIT_CODE_FAIL = 1

DEFAULT_BATCH_SIZE = 100
DEFAULT_DELAY_MS = 100
DEFAULT_MAX_RETRIES = 3
SAMPLE_RECORD_LIMIT = 3
MAX_LISTED_FILES = 10
MAX_LISTED_ERRORS = 5


@dataclass(frozen=True)
class BackfillOptions:
    """Options of one backfill run. Bounds are validated by the CLI."""
    since: Optional[str] = None
    dry_run: bool = False
    batch_size: int = DEFAULT_BATCH_SIZE
    delay_ms: int = DEFAULT_DELAY_MS
    verbose: bool = False
    max_retries: int = DEFAULT_MAX_RETRIES


@dataclass
class BackfillDependencies:
    """Collaborators of a backfill run."""
    load_config: Callable[[], Optional[MeteringConfig]] = loader.load_config
    find_jsonl_files: Callable[[Path], FileDiscoveryResult] = discovery.find_jsonl_files
    stream_jsonl_records: Callable[[str, Optional[datetime]], Iterable[LineOutcome]] = (
        stream.stream_jsonl_records
    )
    send_batch_with_retry: Callable[..., BatchDeliveryResult] = delivery.send_batch_with_retry
    home_dir: Callable[[], Path] = Path.home
    sleep: Callable[[float], None] = time.sleep


class BackfillAborted(Exception):
    """Raised when a precondition of the run is not met."""

    def __init__(self, message: str, exit_code: int = EXIT_CODE_FAIL):
        super().__init__(message)
        self.exit_code = exit_code


@dataclass
class BackfillReport:
    """Counters and failures collected during a run."""
    files_found: int = 0
    files_failed: int = 0
    parse_errors: int = 0
    missing_fields: int = 0
    records_found: int = 0
    batches_sent: int = 0
    batches_failed: int = 0
    records_sent: int = 0
    retry_attempts: int = 0
    failed_batches: List[FailedBatch] = field(default_factory=list)
    dry_run: bool = False
    sample_payload: Optional[Dict[str, Any]] = None


def _plural(count: int, word: str, plural: Optional[str] = None) -> str:
    return f"{count} {word if count == 1 else plural or word + 's'}"


def _log_record_count(payload: Dict[str, Any]) -> int:
    return sum(
        len(scope_logs.get("logRecords", []))
        for resource_logs in payload.get("resourceLogs", [])
        for scope_logs in resource_logs.get("scopeLogs", [])
    )


def _print_errors(out: Console, errors: List[str]) -> None:
    out.print("\n[yellow]Directory access errors:[/]")
    for error in errors[:MAX_LISTED_ERRORS]:
        out.print(f"[yellow]  {escape(error)}[/]")
    if len(errors) > MAX_LISTED_ERRORS:
        out.print(f"[yellow]  ... and {len(errors) - MAX_LISTED_ERRORS} more[/]")


def _collect_records(
    files: List[str],
    since: Optional[datetime],
    deps: BackfillDependencies,
    report: BackfillReport,
    out: Console,
    verbose: bool
) -> List[UsageRecord]:
    records: List[UsageRecord] = []

    for file_path in files:
        try:
            for outcome in deps.stream_jsonl_records(file_path, since):
                if outcome.kind is OutcomeKind.RECORD and outcome.record is not None:
                    records.append(outcome.record)
                elif outcome.kind is OutcomeKind.PARSE_ERROR:
                    report.parse_errors += 1
                elif outcome.kind is OutcomeKind.MISSING_FIELDS:
                    report.missing_fields += 1
        except Exception as e:
            report.files_failed += 1
            logger.debug("Failed to process %s", file_path, exc_info=True)
            if verbose:
                out.print(f"\n[yellow]Warning: Could not process {escape(file_path)}: {escape(str(e))}[/]")

    return records


def _print_processing_summary(out: Console, report: BackfillReport, record_count: int) -> None:
    message = f"Found {record_count:,} usage record(s)"
    if report.parse_errors:
        message += f" [yellow]({_plural(report.parse_errors, 'malformed line')} skipped)[/]"
    if report.missing_fields:
        message += f" [yellow]({_plural(report.missing_fields, 'incomplete record')} skipped)[/]"
    if report.files_failed:
        message += f" [yellow]({_plural(report.files_failed, 'file')} failed)[/]"
    out.print(message)


def _print_statistics(out: Console, records: List[UsageRecord], cost_multiplier: float) -> None:
    stats = calculate_statistics(records)

    table = Table(title="Summary", show_header=False, title_justify="left")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_row("Records", f"{stats.total_records:,}")
    table.add_row(
        "Date range",
        f"{stats.oldest_timestamp.split('T')[0]} to {stats.newest_timestamp.split('T')[0]}",
    )
    table.add_row("Input tokens", f"{stats.total_input_tokens:,}")
    table.add_row("Output tokens", f"{stats.total_output_tokens:,}")
    table.add_row("Cache read tokens", f"{stats.total_cache_read_tokens:,}")
    table.add_row("Cache creation", f"{stats.total_cache_creation_tokens:,}")
    table.add_row("Cost multiplier", str(cost_multiplier))
    out.print()
    out.print(table)


def _send_batches(
    records: List[UsageRecord],
    config: MeteringConfig,
    payload_options: PayloadOptions,
    options: BackfillOptions,
    deps: BackfillDependencies,
    report: BackfillReport,
    out: Console
) -> None:
    batches = [
        records[i:i + options.batch_size]
        for i in range(0, len(records), options.batch_size)
    ]

    progress = Progress(
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TextColumn("{task.completed}/{task.total} batches"),
        console=out,
        transient=True,
    )
    with progress:
        task = progress.add_task("Sending", total=len(batches))

        for index, batch in enumerate(batches):
            batch_number = index + 1
            payload = create_otlp_payload(batch, payload_options)
            result = deps.send_batch_with_retry(
                config.endpoint,
                config.api_key,
                payload,
                options.max_retries,
                options.verbose,
            )

            report.retry_attempts += max(result.attempts - 1, 0)
            if result.success:
                report.batches_sent += 1
                report.records_sent += _log_record_count(payload)
            else:
                error = result.error or "Unknown error"
                report.batches_failed += 1
                report.failed_batches.append(FailedBatch(batch_number=batch_number, error=error))
                logger.debug("Batch %d failed after %d attempt(s)", batch_number, result.attempts)
                if options.verbose:
                    progress.console.print(f"[yellow]Batch {batch_number} failed: {escape(error)}[/]")

            progress.advance(task)

            if batch_number < len(batches) and options.delay_ms > 0:
                deps.sleep(options.delay_ms / 1000)


def _print_final_report(out: Console, report: BackfillReport) -> None:
    out.print()
    out.print(f"Sent {report.records_sent:,} record(s) in {_plural(report.batches_sent, 'batch', 'batches')}")
    if report.retry_attempts:
        out.print(f"[dim]Retries: {report.retry_attempts}[/]")

    if report.failed_batches:
        out.print(f"\n[red]Permanently Failed Batches ({report.batches_failed}):[/]")
        for failed in report.failed_batches:
            out.print(f"[red]  Batch {failed.batch_number}: {escape(failed.error)}[/]")
        out.print("\n[yellow]Some batches could not be sent. Re-run the backfill to retry them; "
                  "records are identified by transaction id so resending is safe.[/]")
        return

    out.print("\n[bold green]Backfill complete![/]")
    out.print("[dim]Check your Revenium dashboard to see the imported data.[/]")


def run_backfill(
    options: BackfillOptions,
    deps: Optional[BackfillDependencies] = None,
    console: Optional[Console] = None
) -> BackfillReport:
    """Run a backfill of historical Claude Code usage.

    Args:
        options: Run options
        deps: Collaborators (defaults to the real implementations)
        console: Console to print progress to

    Returns:
        BackfillReport with counters for the run. Empty results and failed
        batches are reported, not raised.

    Raises:
        BackfillAborted: If the configuration is missing, --since is invalid,
            or no session log files exist
    """
    deps = deps or BackfillDependencies()
    out = console or default_console
    report = BackfillReport(dry_run=options.dry_run)

    out.print("\n[bold]Revenium Claude Code Backfill[/]\n")
    if options.dry_run:
        out.print("[yellow]Running in dry-run mode - no data will be sent[/]\n")

    config = deps.load_config()
    if config is None:
        out.print("[red]Configuration not found[/]")
        out.print("\n[yellow]Run `revenium-metering setup` to configure Claude Code metering.[/]")
        raise BackfillAborted("Configuration not found")

    since_date: Optional[datetime] = None
    if options.since:
        since_date = parse_since_date(options.since)
        if since_date is None:
            out.print(f"[red]Invalid --since value: {escape(options.since)}[/]")
            out.print("[dim]Use ISO format (2024-01-15) or relative format (7d, 1m, 1y)[/]")
            raise BackfillAborted(f"Invalid --since value: {options.since}")
        out.print(f"[dim]Filtering records since: {since_date.isoformat()}[/]\n")

    cost_multiplier = resolve_cost_multiplier(
        config.cost_multiplier_override, config.subscription_tier
    )

    projects_dir = discovery.get_projects_dir(deps.home_dir())
    found = deps.find_jsonl_files(projects_dir)
    if not found.files:
        out.print("[yellow]No session log files found.[/]")
        out.print(f"[dim]Searched in: {escape(str(projects_dir))}[/]")
        if found.errors:
            _print_errors(out, found.errors)
        raise BackfillAborted("No session log files found")

    report.files_found = len(found.files)
    out.print(f"Found {_plural(len(found.files), 'session log file')}")
    if found.errors:
        _print_errors(out, found.errors)
    if options.verbose:
        out.print("\n[dim]Files:[/]")
        for file_path in found.files[:MAX_LISTED_FILES]:
            out.print(f"[dim]  {escape(file_path)}[/]")
        if len(found.files) > MAX_LISTED_FILES:
            out.print(f"[dim]  ... and {len(found.files) - MAX_LISTED_FILES} more[/]")
        out.print()

    records = _collect_records(found.files, since_date, deps, report, out, options.verbose)
    report.records_found = len(records)
    _print_processing_summary(out, report, len(records))

    if not records:
        out.print("\n[yellow]No usage records found to backfill.[/]")
        if since_date is not None:
            out.print("[dim]Try a broader date range or remove the --since filter.[/]")
        return report

    _print_statistics(out, records, cost_multiplier)

    payload_options = PayloadOptions(
        cost_multiplier=cost_multiplier,
        email=config.email,
        organization_name=config.organization_name,
        product_name=config.product_name,
    )

    if options.dry_run:
        sample = records[:min(options.batch_size, SAMPLE_RECORD_LIMIT)]
        report.sample_payload = create_otlp_payload(sample, payload_options)
        out.print("\n[yellow]Dry run complete. Use without --dry-run to send data.[/]")
        if options.verbose:
            out.print("\n[dim]Sample OTLP payload (first batch):[/]")
            out.print_json(data=report.sample_payload)
        return report

    out.print()
    _send_batches(records, config, payload_options, options, deps, report, out)
    _print_final_report(out, report)
    return report
