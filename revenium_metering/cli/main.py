"""
CLI interface for Revenium Claude Code metering.

Provides setup, status, connectivity test and historical backfill commands.
"""

import json
import logging
import sys
import time
from typing import Callable, Optional

import httpx
import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from revenium_metering import __version__
from revenium_metering.api.client import (
    OTLPRequestError,
    check_endpoint_health,
    create_test_payload,
    generate_test_session_id,
    send_otlp_logs,
)
from revenium_metering.backfill.orchestrator import (
    BackfillAborted,
    BackfillOptions,
    run_backfill,
)
from revenium_metering.config.constants import DEFAULT_REVENIUM_URL
from revenium_metering.config.loader import (
    MeteringConfig,
    config_exists,
    get_config_path,
    is_env_loaded,
    load_config,
    normalize_endpoint,
)
from revenium_metering.config.validator import (
    ValidationResult,
    validate_api_key,
    validate_config,
    validate_email,
    validate_endpoint,
    validate_subscription_tier,
)
from revenium_metering.config.writer import write_config
from revenium_metering.core.tiers import SUBSCRIPTION_TIERS, TIER_TABLE, resolve_cost_multiplier
from revenium_metering.shell import (
    ConfigPathError,
    detect_shell,
    get_manual_instructions,
    update_shell_profile,
)
from revenium_metering.shell.detector import get_profile_path
from revenium_metering.utils.masking import mask_api_key, mask_email

app = typer.Typer(help="Configure Claude Code telemetry export to Revenium")
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _configure_logging(verbose: bool) -> None:
    """Route library logging through rich; DEBUG when verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


def _prompt_until_valid(
    text: str,
    validator: Callable[[str], ValidationResult],
    default: Optional[str] = None,
    hide_input: bool = False
) -> str:
    while True:
        value = typer.prompt(
            text,
            default=default,
            hide_input=hide_input,
            show_default=bool(default),
        )
        result = validator(value)
        if result.valid:
            return value
        console.print(f"[red]{escape(', '.join(result.errors))}[/]")


def _print_config(config: MeteringConfig, tier_label: Optional[str] = None) -> None:
    console.print("\n[bold]Configuration:[/]")
    console.print(f"  API Key:      {mask_api_key(config.api_key)}")
    console.print(f"  Endpoint:     {escape(config.endpoint)}")
    if config.email:
        console.print(f"  Email:        {mask_email(config.email)}")
    if config.subscription_tier:
        console.print(f"  Tier:         {escape(tier_label or config.subscription_tier)}")
    if config.cost_multiplier_override is not None:
        console.print(f"  Multiplier:   {config.cost_multiplier_override}")
    if config.organization_name:
        console.print(f"  Organization: {escape(config.organization_name)}")
    if config.product_name:
        console.print(f"  Product:      {escape(config.product_name)}")


def _version_callback(value: bool):
    if value:
        console.print(f"revenium-metering {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show the version and exit"
    )
):
    """Revenium Claude Code metering CLI."""


@app.command()
def setup(
    api_key: Optional[str] = typer.Option(
        None,
        "--api-key",
        "-k",
        help="Revenium API key (hak_...)"
    ),
    email: Optional[str] = typer.Option(
        None,
        "--email",
        "-e",
        help="Email for usage attribution"
    ),
    tier: Optional[str] = typer.Option(
        None,
        "--tier",
        "-t",
        help=f"Subscription tier ({', '.join(SUBSCRIPTION_TIERS)})"
    ),
    endpoint: Optional[str] = typer.Option(
        None,
        "--endpoint",
        help="Revenium API endpoint URL"
    ),
    organization: Optional[str] = typer.Option(
        None,
        "--organization",
        help="Organization name for cost attribution"
    ),
    product: Optional[str] = typer.Option(
        None,
        "--product",
        help="Product name for cost attribution"
    ),
    skip_validation: bool = typer.Option(
        False,
        "--skip-validation",
        help="Do not test the API key against the endpoint"
    ),
    skip_shell_update: bool = typer.Option(
        False,
        "--skip-shell-update",
        help="Skip automatic shell profile update"
    )
):
    """
    Configure Claude Code to export telemetry to Revenium.

    Missing values are prompted for. The configuration is written to
    ~/.claude/revenium.env and sourced from the shell profile.
    """
    console.print("\n[bold]Revenium Claude Code Metering Setup[/]\n")

    if api_key is None:
        api_key = _prompt_until_valid("Revenium API key", validate_api_key, hide_input=True)
    if email is None:
        email = _prompt_until_valid("Email (for usage attribution, optional)", validate_email, default="")
    if tier is None:
        console.print("Subscription tiers:")
        for identifier in SUBSCRIPTION_TIERS:
            console.print(f"  [cyan]{identifier}[/]  {escape(TIER_TABLE.get_tier(identifier).name)}")
        tier = _prompt_until_valid("Subscription tier", validate_subscription_tier, default="max_20x")
    if endpoint is None:
        endpoint = _prompt_until_valid("Revenium API endpoint", validate_endpoint, default=DEFAULT_REVENIUM_URL)

    config = MeteringConfig(
        api_key=api_key.strip(),
        endpoint=normalize_endpoint(endpoint),
        email=email or None,
        subscription_tier=tier.lower() if tier else None,
        organization_name=organization or None,
        product_name=product or None,
    )

    validation = validate_config(config)
    if not validation.valid:
        console.print("[red]Error:[/] Invalid configuration")
        for error in validation.errors:
            console.print(f"  [red]•[/] {escape(error)}")
        sys.exit(EXIT_CODE_FAIL)

    if not skip_validation:
        with console.status("Testing API key..."):
            health = check_endpoint_health(
                config.endpoint,
                config.api_key,
                organization_name=config.organization_name,
                product_name=config.product_name,
            )
        if not health.healthy:
            console.print(f"[red]✗[/] API key validation failed: {escape(health.message)}")
            console.print("\n[yellow]Please check your API key and try again. "
                          "If the problem persists, contact support.[/]")
            sys.exit(EXIT_CODE_FAIL)
        console.print(f"[green]✓[/] API key validated ({health.latency_ms}ms latency)")

    try:
        config_path = write_config(config)
    except OSError as e:
        console.print(f"[red]Error writing configuration:[/] {escape(str(e))}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Configuration written to [cyan]{escape(str(config_path))}[/]")

    if not skip_shell_update:
        shell = detect_shell()
        try:
            shell_result = update_shell_profile(config_path, shell=shell)
        except (ConfigPathError, OSError) as e:
            console.print(f"[yellow]![/] Could not update shell profile automatically: {escape(str(e))}")
            console.print(f"[dim]\nManual setup:\n{escape(get_manual_instructions(shell, config_path))}[/]")
        else:
            if shell_result.success:
                console.print(f"[green]✓[/] {escape(shell_result.message)}")
            else:
                console.print(f"[yellow]![/] {escape(shell_result.message)}")
                console.print(f"[dim]\nManual setup:\n{escape(get_manual_instructions(shell, config_path))}[/]")

    console.print("\n[bold green]Setup complete![/]")
    tier_label = TIER_TABLE.get_tier(config.subscription_tier).name if config.subscription_tier else None
    _print_config(config, tier_label)

    console.print("\n[bold yellow]Next steps:[/]")
    console.print("  1. Restart your terminal or run:")
    console.print(f"[cyan]     source {escape(str(config_path))}[/]")
    console.print("  2. Start using Claude Code - telemetry will be sent automatically")
    console.print("  3. Import past usage by running: [cyan]revenium-metering backfill[/]")
    console.print("  4. Check your usage at https://app.revenium.ai")
    console.print("\n[dim]Run `revenium-metering status` to verify the configuration at any time.[/]")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def status():
    """Check the current configuration and endpoint connectivity."""
    console.print("\n[bold]Revenium Claude Code Metering Status[/]\n")

    config_path = get_config_path()
    if not config_exists(config_path):
        console.print("[red]Configuration not found[/]")
        console.print(f"[dim]Expected at: {escape(str(config_path))}[/]")
        console.print("\n[yellow]Run `revenium-metering setup` to configure Claude Code metering.[/]")
        sys.exit(EXIT_CODE_FAIL)

    console.print("[green]✓[/] Configuration file found")
    console.print(f"[dim]  {escape(str(config_path))}[/]")

    config = load_config(config_path)
    if config is None:
        console.print("\n[red]Could not parse configuration file[/]")
        console.print("[yellow]Run `revenium-metering setup` to reconfigure.[/]")
        sys.exit(EXIT_CODE_FAIL)

    _print_config(config)
    multiplier = resolve_cost_multiplier(config.cost_multiplier_override, config.subscription_tier)
    console.print(f"  Cost multiplier: {multiplier}")

    console.print("\n[bold]Environment:[/]")
    if is_env_loaded():
        console.print("[green]  Environment variables are loaded in current shell[/]")
    else:
        console.print("[yellow]  Environment variables not loaded in current shell[/]")
        console.print(f"[dim]  Run: source {escape(str(config_path))}[/]")

    shell = detect_shell()
    profile_path = get_profile_path(shell)
    console.print(f"  Shell:      {shell.value}")
    if profile_path is not None:
        console.print(f"  Profile:    {escape(str(profile_path))}")

    console.print("\n[bold]Endpoint Health:[/]")
    with console.status("Testing connectivity..."):
        health = check_endpoint_health(
            config.endpoint,
            config.api_key,
            email=config.email,
            organization_name=config.organization_name,
            product_name=config.product_name,
        )
    if health.healthy:
        console.print(f"[green]  ✓ Endpoint healthy ({health.latency_ms}ms)[/]")
    else:
        console.print(f"[red]  ✗ Endpoint unhealthy:[/] {escape(health.message)}")
    console.print()
    sys.exit(EXIT_CODE_PASS)


@app.command()
def test(
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show detailed payload information"
    )
):
    """Send a test event to verify the integration."""
    _configure_logging(verbose)
    console.print("\n[bold]Revenium Claude Code Metering Test[/]\n")

    config = load_config()
    if config is None:
        if config_exists():
            console.print("[red]Could not load configuration[/]")
        else:
            console.print("[red]Configuration not found[/]")
            console.print("[yellow]Run `revenium-metering setup` first to configure the integration.[/]")
        sys.exit(EXIT_CODE_FAIL)

    session_id = generate_test_session_id()
    payload = create_test_payload(
        session_id,
        email=config.email,
        organization_name=config.organization_name,
        product_name=config.product_name,
        cost_multiplier=resolve_cost_multiplier(
            config.cost_multiplier_override, config.subscription_tier
        ),
    )

    if verbose:
        console.print("[dim]Test payload:[/]")
        console.print_json(json.dumps(payload))
        console.print()

    start = time.monotonic()
    try:
        with console.status("Sending test event..."):
            response = send_otlp_logs(config.endpoint, config.api_key, payload)
    except (OTLPRequestError, httpx.HTTPError) as e:
        console.print("[red]✗[/] Failed to send test event")
        console.print(f"\n[red]Error:[/] {escape(str(e) or e.__class__.__name__)}")
        console.print("\n[yellow]Troubleshooting:[/]")
        console.print("  1. Verify your API key is correct")
        console.print("  2. Check the endpoint URL")
        console.print("  3. Ensure you have network connectivity")
        console.print("  4. Run `revenium-metering status` for more details")
        sys.exit(EXIT_CODE_FAIL)
    latency_ms = int((time.monotonic() - start) * 1000)

    console.print(f"[green]✓[/] Test event sent successfully ({latency_ms}ms)")
    console.print("\n[bold]Response:[/]")
    console.print(f"  ID:              {escape(str(response.get('id', '-')))}")
    console.print(f"  Resource Type:   {escape(str(response.get('resourceType', '-')))}")
    console.print(f"  Processed:       {response.get('processedEvents', 0)} event(s)")
    console.print(f"  Created:         {escape(str(response.get('created', '-')))}")
    console.print("\n[bold green]Integration is working correctly![/]")
    console.print(f"[dim]\nNote: This test event uses session ID: {session_id}[/]")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def backfill(
    since: Optional[str] = typer.Option(
        None,
        "--since",
        help='Only backfill after this date (ISO format or relative like "7d", "1m")'
    ),
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="Show what would be sent without sending"
    ),
    batch_size: int = typer.Option(
        100,
        "--batch-size",
        min=1,
        max=10000,
        help="Records per API batch"
    ),
    delay: int = typer.Option(
        100,
        "--delay",
        min=0,
        max=60000,
        help="Delay between batches in milliseconds"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Show detailed progress"
    )
):
    """
    Import historical Claude Code usage from local session logs.

    Safe to re-run: every record carries a deterministic transaction id.
    """
    _configure_logging(verbose)
    options = BackfillOptions(
        since=since,
        dry_run=dry_run,
        batch_size=batch_size,
        delay_ms=delay,
        verbose=verbose,
    )

    try:
        run_backfill(options, console=console)
    except BackfillAborted as e:
        sys.exit(e.exit_code)
    sys.exit(EXIT_CODE_PASS)


if __name__ == "__main__":
    app()
