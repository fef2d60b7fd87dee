"""
Validation of user-supplied configuration values.

Every check collects all problems instead of stopping at the first one so
the setup command can show the user everything that needs fixing.
"""

import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlparse

from ..core.tiers import SUBSCRIPTION_TIERS
from .constants import API_KEY_PREFIX
from .loader import MeteringConfig

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a validation check."""
    valid: bool
    errors: List[str] = field(default_factory=list)


def _result(errors: List[str]) -> ValidationResult:
    return ValidationResult(valid=not errors, errors=errors)


def validate_api_key(api_key: Optional[str]) -> ValidationResult:
    """Validate an API key of the form hak_{tenant}_{key}."""
    if not api_key or not api_key.strip():
        return _result(["API key is required"])

    errors = []
    if not api_key.startswith(API_KEY_PREFIX):
        errors.append(f'API key must start with "{API_KEY_PREFIX}"')
    if len(api_key.split("_")) < 3:
        errors.append("API key format should be: hak_{tenant}_{key}")
    if len(api_key) < 12:
        errors.append("API key appears too short")
    return _result(errors)


def validate_email(email: Optional[str]) -> ValidationResult:
    """Validate an email address. Email is optional."""
    if not email or not email.strip():
        return _result([])
    if not _EMAIL_PATTERN.match(email):
        return _result(["Invalid email format"])
    return _result([])


def validate_subscription_tier(tier: Optional[str]) -> ValidationResult:
    """Validate a subscription tier identifier. Tier is optional."""
    if not tier or not tier.strip():
        return _result([])
    if tier.lower() not in SUBSCRIPTION_TIERS:
        return _result([
            f"Invalid subscription tier. Valid options: {', '.join(SUBSCRIPTION_TIERS)}"
        ])
    return _result([])


def validate_endpoint(endpoint: Optional[str]) -> ValidationResult:
    """Validate the endpoint URL. Only HTTPS endpoints are accepted."""
    if not endpoint or not endpoint.strip():
        return _result(["Endpoint URL is required"])

    parsed = urlparse(endpoint)
    if not parsed.scheme or not parsed.netloc:
        return _result(["Invalid endpoint URL format"])
    if parsed.scheme != "https":
        return _result(["Endpoint URL must use HTTPS"])
    return _result([])


def validate_config(config: MeteringConfig) -> ValidationResult:
    """Validate a complete configuration, collecting all errors."""
    errors: List[str] = []
    errors.extend(validate_api_key(config.api_key).errors)
    errors.extend(validate_email(config.email).errors)
    errors.extend(validate_subscription_tier(config.subscription_tier).errors)
    errors.extend(validate_endpoint(config.endpoint).errors)
    if config.cost_multiplier_override is not None and config.cost_multiplier_override < 0:
        errors.append("Cost multiplier must be >= 0")
    return _result(errors)
