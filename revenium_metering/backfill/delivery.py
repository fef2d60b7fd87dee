"""
Delivery of one OTLP payload with retries.

A batch moves from attempt to attempt until it succeeds, fails with a client
error, or runs out of attempts. Retry classification reads the HTTP status
code embedded in the error message.
"""

import logging
import time
from typing import Any, Callable, Dict, Optional

from ..api.client import extract_status_code, send_otlp_logs
from .models import BatchDeliveryResult

logger = logging.getLogger(__name__)

MAX_ERROR_MESSAGE_LENGTH = 500
BASE_BACKOFF_SECONDS = 1.0

SendFunction = Callable[[str, str, Dict[str, Any]], Any]


def sanitize_error_message(message: str, max_length: int = MAX_ERROR_MESSAGE_LENGTH) -> str:
    """Truncate an error message so large response bodies are not echoed."""
    if len(message) <= max_length:
        return message
    return message[:max_length] + "..."


def is_retryable_error(message: str) -> bool:
    """Decide whether a failed request is worth retrying.

    429 is retried, any other 4xx is permanent. Server errors and messages
    without a status code (network failures) are retried.
    """
    status = extract_status_code(message)
    if status is None:
        return True
    if status == 429:
        return True
    return not 400 <= status < 500


def _error_text(error: Exception) -> str:
    return str(error) or error.__class__.__name__


def send_batch_with_retry(
    endpoint: str,
    api_key: str,
    payload: Dict[str, Any],
    max_retries: int = 3,
    verbose: bool = False,
    send: SendFunction = send_otlp_logs,
    sleep: Callable[[float], None] = time.sleep
) -> BatchDeliveryResult:
    """Send a payload, retrying transient failures with exponential backoff.

    Args:
        endpoint: Revenium base URL
        api_key: Revenium API key
        payload: OTLP logs payload for one batch
        max_retries: Maximum number of attempts
        verbose: Log each failed attempt at INFO instead of DEBUG
        send: Delivery function, called as send(endpoint, api_key, payload)
        sleep: Sleep function taking seconds

    Returns:
        BatchDeliveryResult with the number of attempts made and, on
        failure, the truncated last error message
    """
    level = logging.INFO if verbose else logging.DEBUG
    last_error: Optional[str] = None

    for attempt_index in range(max_retries):
        attempt = attempt_index + 1
        try:
            send(endpoint, api_key, payload)
            return BatchDeliveryResult(success=True, attempts=attempt)
        except Exception as e:
            last_error = sanitize_error_message(_error_text(e))

        if not is_retryable_error(last_error):
            logger.log(level, "Attempt %d failed with a permanent error: %s", attempt, last_error)
            return BatchDeliveryResult(success=False, attempts=attempt, error=last_error)

        if attempt < max_retries:
            delay = BASE_BACKOFF_SECONDS * 2 ** attempt_index
            logger.log(level, "Attempt %d failed, retrying in %.0fs: %s", attempt, delay, last_error)
            sleep(delay)

    logger.log(level, "Giving up after %d attempts: %s", max_retries, last_error)
    return BatchDeliveryResult(success=False, attempts=max_retries, error=last_error)
