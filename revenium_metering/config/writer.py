"""
Persistence of the metering configuration.

Writes revenium.env as a sourceable shell file holding the variables Claude
Code needs to export telemetry to Revenium.
"""

import os
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote

from ..core.tiers import resolve_cost_multiplier
from .constants import CONFIG_FILE_MODE, EnvVars
from .loader import MeteringConfig, get_config_path, get_full_otlp_endpoint


def escape_shell_value(value: str) -> str:
    """Escape a value for use inside double quotes in a POSIX shell."""
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("$", "\\$")
        .replace("`", "\\`")
    )


def _export(key: str, value: str) -> str:
    return f'export {key}="{escape_shell_value(value)}"'


def _resource_attributes(config: MeteringConfig) -> str:
    multiplier = resolve_cost_multiplier(
        config.cost_multiplier_override, config.subscription_tier
    )
    pairs = [f"cost_multiplier={multiplier}"]
    if config.organization_name:
        pairs.append(f"organization.name={quote(config.organization_name, safe='')}")
    if config.product_name:
        pairs.append(f"product.name={quote(config.product_name, safe='')}")
    return ",".join(pairs)


def generate_env_content(config: MeteringConfig) -> str:
    """Render the revenium.env file content for a configuration.

    Args:
        config: Validated configuration

    Returns:
        File content made of comment and `export` lines
    """
    lines: List[str] = [
        "# Revenium Claude Code metering configuration",
        "# Generated by revenium-metering setup; re-run setup to change it.",
        "",
        f"export {EnvVars.TELEMETRY_ENABLED}=1",
        _export(EnvVars.LOGS_EXPORTER, "otlp"),
        _export(EnvVars.OTLP_PROTOCOL, "http/json"),
        _export(EnvVars.OTLP_ENDPOINT, get_full_otlp_endpoint(config.endpoint)),
        _export(EnvVars.OTLP_HEADERS, f"x-api-key={config.api_key}"),
    ]

    if config.email:
        lines.append(_export(EnvVars.SUBSCRIBER_EMAIL, config.email))
    if config.subscription_tier:
        lines.append(_export(EnvVars.SUBSCRIPTION, config.subscription_tier))
    if config.cost_multiplier_override is not None:
        lines.append(_export(EnvVars.COST_MULTIPLIER, str(config.cost_multiplier_override)))

    lines.append(_export(EnvVars.RESOURCE_ATTRIBUTES, _resource_attributes(config)))
    return "\n".join(lines) + "\n"


def write_config(config: MeteringConfig, path: Optional[Path] = None) -> Path:
    """Write the configuration file with owner-only permissions.

    Args:
        config: Configuration to persist
        path: Target path (defaults to ~/.claude/revenium.env)

    Returns:
        The path written
    """
    config_path = Path(path) if path is not None else get_config_path()
    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w", encoding="utf-8") as f:
        f.write(generate_env_content(config))
    if os.name != "nt":
        os.chmod(config_path, CONFIG_FILE_MODE)

    return config_path
