"""
Revenium OTLP client.

Posts OTLP logs payloads to the Revenium ingestion endpoint and performs the
connectivity check used by the status and test commands.
"""

import logging
import re
import secrets
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..config.constants import API_REQUEST_EVENT, OTLP_LOGS_PATH
from ..config.loader import get_full_otlp_endpoint
from ..core.tiers import DEFAULT_COST_MULTIPLIER
from .otlp import build_resource_logs, double_attribute, int_attribute, string_attribute

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0

_STATUS_CODE = re.compile(r"\b(\d{3})\b")


class OTLPRequestError(Exception):
    """Raised when the endpoint answers with a non-success status.

    The status code is embedded in the message as
    "OTLP request failed: <status> <reason> - <body>"; retry classification
    relies on that format.
    """

    def __init__(self, status_code: int, reason: str, body: str):
        super().__init__(f"OTLP request failed: {status_code} {reason} - {body}")
        self.status_code = status_code


@dataclass(frozen=True)
class HealthCheckResult:
    """Result of an endpoint connectivity check."""
    healthy: bool
    message: str
    status_code: Optional[int] = None
    latency_ms: Optional[int] = None


def get_logs_url(base_endpoint: str) -> str:
    return f"{get_full_otlp_endpoint(base_endpoint)}{OTLP_LOGS_PATH}"


def send_otlp_logs(
    base_endpoint: str,
    api_key: str,
    payload: Dict[str, Any],
    client: Optional[httpx.Client] = None,
    timeout: float = DEFAULT_TIMEOUT
) -> Dict[str, Any]:
    """Send an OTLP logs payload.

    Args:
        base_endpoint: Revenium base URL (e.g. https://api.revenium.ai)
        api_key: Revenium API key
        payload: OTLP logs payload
        client: Optional HTTP client to reuse
        timeout: Request timeout in seconds when no client is given

    Returns:
        Parsed JSON response body (empty if the body is not JSON)

    Raises:
        OTLPRequestError: If the endpoint returns a non-success status
        httpx.HTTPError: On network level failures
    """
    url = get_logs_url(base_endpoint)
    headers = {"Content-Type": "application/json", "x-api-key": api_key}

    if client is None:
        with httpx.Client(timeout=timeout) as own_client:
            response = own_client.post(url, json=payload, headers=headers)
    else:
        response = client.post(url, json=payload, headers=headers)

    if not response.is_success:
        raise OTLPRequestError(response.status_code, response.reason_phrase, response.text)

    try:
        return response.json()
    except ValueError:
        logger.debug("Non-JSON success response from %s", url)
        return {}


def generate_test_session_id() -> str:
    """Generate a unique session id for connectivity test payloads."""
    return f"test-{int(time.time() * 1000):x}-{secrets.token_hex(3)}"


def create_test_payload(
    session_id: str,
    email: Optional[str] = None,
    organization_name: Optional[str] = None,
    product_name: Optional[str] = None,
    cost_multiplier: float = DEFAULT_COST_MULTIPLIER
) -> Dict[str, Any]:
    """Create a minimal payload with one zero-usage api_request event."""
    attributes = [
        string_attribute("session.id", session_id),
        string_attribute("model", "cli-connectivity-test"),
        int_attribute("input_tokens", 0),
        int_attribute("output_tokens", 0),
        int_attribute("cache_read_tokens", 0),
        int_attribute("cache_creation_tokens", 0),
        double_attribute("cost_usd", 0.0),
        int_attribute("duration_ms", 0),
    ]
    if email:
        attributes.append(string_attribute("user.email", email))
    if organization_name:
        attributes.append(string_attribute("organization.name", organization_name))
    if product_name:
        attributes.append(string_attribute("product.name", product_name))

    log_record = {
        "timeUnixNano": str(time.time_ns()),
        "body": {"stringValue": API_REQUEST_EVENT},
        "attributes": attributes,
    }
    return build_resource_logs([log_record], cost_multiplier)


def extract_status_code(message: str) -> Optional[int]:
    """Return the first three digit number in an error message, if any."""
    match = _STATUS_CODE.search(message)
    return int(match.group(1)) if match else None


def check_endpoint_health(
    base_endpoint: str,
    api_key: str,
    email: Optional[str] = None,
    organization_name: Optional[str] = None,
    product_name: Optional[str] = None,
    client: Optional[httpx.Client] = None
) -> HealthCheckResult:
    """Send a test payload and report whether the endpoint accepted it."""
    start = time.monotonic()
    payload = create_test_payload(
        generate_test_session_id(),
        email=email,
        organization_name=organization_name,
        product_name=product_name,
    )

    try:
        response = send_otlp_logs(base_endpoint, api_key, payload, client=client)
    except OTLPRequestError as e:
        return HealthCheckResult(
            healthy=False,
            message=str(e),
            status_code=e.status_code,
            latency_ms=int((time.monotonic() - start) * 1000),
        )
    except httpx.HTTPError as e:
        message = str(e) or e.__class__.__name__
        return HealthCheckResult(
            healthy=False,
            message=message,
            status_code=extract_status_code(message),
            latency_ms=int((time.monotonic() - start) * 1000),
        )

    processed = response.get("processedEvents", 0)
    return HealthCheckResult(
        healthy=True,
        message=f"Endpoint healthy. Processed {processed} event(s).",
        status_code=200,
        latency_ms=int((time.monotonic() - start) * 1000),
    )
