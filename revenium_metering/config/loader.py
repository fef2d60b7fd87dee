"""
Configuration management and loading.

Reads the revenium.env file written by the setup command. The file holds
shell `export` lines so the same file can be sourced by the user's shell
and parsed here.
"""

import math
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional
from urllib.parse import unquote, urlparse

from .constants import (
    CLAUDE_CONFIG_DIR,
    OTLP_PATH,
    REVENIUM_ENV_FILE,
    EnvVars,
)

_API_KEY_HEADER = re.compile(r"x-api-key=\s*(hak_[^\s\"]+)")


@dataclass(frozen=True)
class MeteringConfig:
    """Persisted Revenium metering configuration."""
    api_key: str
    endpoint: str
    email: Optional[str] = None
    subscription_tier: Optional[str] = None
    cost_multiplier_override: Optional[float] = None
    organization_name: Optional[str] = None
    product_name: Optional[str] = None

    @property
    def organization_id(self) -> Optional[str]:
        """Legacy alias for organization_name."""
        return self.organization_name

    @property
    def product_id(self) -> Optional[str]:
        """Legacy alias for product_name."""
        return self.product_name


def get_config_path(home: Optional[Path] = None) -> Path:
    """Return the path of the revenium.env file under the given home directory."""
    base = Path(home) if home is not None else Path.home()
    return base / CLAUDE_CONFIG_DIR / REVENIUM_ENV_FILE


def config_exists(path: Optional[Path] = None) -> bool:
    return (Path(path) if path is not None else get_config_path()).exists()


def _unescape(value: str) -> str:
    return (
        value.replace('\\"', '"')
        .replace("\\'", "'")
        .replace("\\$", "$")
        .replace("\\`", "`")
        .replace("\\\\", "\\")
    )


def parse_env_content(content: str) -> Dict[str, str]:
    """Parse .env style content into key/value pairs.

    Blank lines and comments are skipped, an `export ` prefix is optional,
    and surrounding single or double quotes are removed and unescaped.

    Args:
        content: Raw file content

    Returns:
        Mapping of variable names to values
    """
    result: Dict[str, str] = {}

    for line in content.splitlines():
        trimmed = line.strip()
        if not trimmed or trimmed.startswith("#"):
            continue

        if trimmed.startswith("export "):
            trimmed = trimmed[len("export "):].strip()

        key, sep, value = trimmed.partition("=")
        if not sep:
            continue

        key = key.strip()
        value = value.strip()
        if len(value) >= 2 and value[0] == value[-1] and value[0] in ("'", '"'):
            value = _unescape(value[1:-1])

        result[key] = value

    return result


def parse_resource_attributes(value: str) -> Dict[str, str]:
    """Parse an OTEL_RESOURCE_ATTRIBUTES value ("k1=v1,k2=v2").

    Values are percent-decoded; pairs without a key or '=' are ignored.
    """
    result: Dict[str, str] = {}
    if not value:
        return result

    for pair in value.split(","):
        pair = pair.strip()
        if not pair:
            continue
        key, sep, attr_value = pair.partition("=")
        if not sep:
            continue
        key = key.strip()
        if key:
            result[key] = unquote(attr_value.strip())
    return result


def extract_api_key(headers: str) -> Optional[str]:
    """Extract the API key from an OTEL_EXPORTER_OTLP_HEADERS value."""
    match = _API_KEY_HEADER.search(headers)
    return match.group(1) if match else None


def extract_base_endpoint(full_endpoint: str) -> str:
    """Strip the OTLP path from a full endpoint URL.

    "https://api.revenium.ai/meter/v2/otlp" -> "https://api.revenium.ai"
    Values that are not absolute URLs are returned unchanged.
    """
    parsed = urlparse(full_endpoint)
    if not parsed.scheme or not parsed.netloc:
        return full_endpoint
    return f"{parsed.scheme}://{parsed.netloc}"


def normalize_endpoint(endpoint: str) -> str:
    """Normalize a user-supplied endpoint to a base URL.

    Trailing slashes and anything from a "/meter" path segment on are
    removed, so "https://api.revenium.ai/meter/v2/otlp/" becomes
    "https://api.revenium.ai".
    """
    cleaned = endpoint.strip().rstrip("/")
    parsed = urlparse(cleaned)
    if parsed.scheme and parsed.netloc and "/meter" in parsed.path:
        path = parsed.path.split("/meter")[0]
        cleaned = f"{parsed.scheme}://{parsed.netloc}{path}"
    return cleaned.rstrip("/")


def get_full_otlp_endpoint(base_url: str) -> str:
    """Append the OTLP path to a base URL, ignoring one trailing slash."""
    clean = base_url[:-1] if base_url.endswith("/") else base_url
    return f"{clean}{OTLP_PATH}"


def _parse_multiplier(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        multiplier = float(value)
    except ValueError:
        return None
    return None if math.isnan(multiplier) else multiplier


def load_config(path: Optional[Path] = None) -> Optional[MeteringConfig]:
    """Load the metering configuration from revenium.env.

    Args:
        path: Config file path (defaults to ~/.claude/revenium.env)

    Returns:
        MeteringConfig, or None if the file is missing, unreadable, or has
        no API key in its OTLP headers
    """
    config_path = Path(path) if path is not None else get_config_path()
    if not config_path.exists():
        return None

    try:
        content = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return None

    env = parse_env_content(content)

    api_key = extract_api_key(env.get(EnvVars.OTLP_HEADERS, ""))
    if not api_key:
        return None

    attrs = parse_resource_attributes(env.get(EnvVars.RESOURCE_ATTRIBUTES, ""))

    organization = (
        attrs.get("organization.name")
        or attrs.get("organization.id")
        or env.get(EnvVars.ORGANIZATION_ID)
        or None
    )
    product = (
        attrs.get("product.name")
        or attrs.get("product.id")
        or env.get(EnvVars.PRODUCT_ID)
        or None
    )

    return MeteringConfig(
        api_key=api_key,
        endpoint=extract_base_endpoint(env.get(EnvVars.OTLP_ENDPOINT, "")),
        email=env.get(EnvVars.SUBSCRIBER_EMAIL) or None,
        subscription_tier=env.get(EnvVars.SUBSCRIPTION) or None,
        cost_multiplier_override=_parse_multiplier(env.get(EnvVars.COST_MULTIPLIER)),
        organization_name=organization,
        product_name=product,
    )


def is_env_loaded(environ: Optional[Mapping[str, str]] = None) -> bool:
    """Check whether the metering variables are exported in the current shell."""
    env = os.environ if environ is None else environ
    return env.get(EnvVars.TELEMETRY_ENABLED) == "1" and bool(env.get(EnvVars.OTLP_ENDPOINT))
