"""
Deterministic transaction identifiers for usage records.

The backend computes the same identifier independently to deduplicate
re-sent records, so the formula must not change:

    sha256("sessionId|timestamp|model|input|output|cacheRead|cacheCreation")

hex-encoded, lowercase, truncated to the first 32 characters.
"""

import hashlib

TRANSACTION_ID_LENGTH = 32


def generate_transaction_id(
    session_id: str,
    timestamp: str,
    model: str,
    input_tokens: int,
    output_tokens: int,
    cache_read_tokens: int,
    cache_creation_tokens: int
) -> str:
    """Generate the transaction id for one usage event.

    Args:
        session_id: Claude Code session id
        timestamp: Timestamp exactly as it appears in the session log
        model: Model identifier
        input_tokens: Input token count
        output_tokens: Output token count
        cache_read_tokens: Cache read token count
        cache_creation_tokens: Cache creation token count

    Returns:
        32 character lowercase hex string
    """
    joined = "|".join([
        session_id,
        timestamp,
        model,
        str(input_tokens),
        str(output_tokens),
        str(cache_read_tokens),
        str(cache_creation_tokens),
    ])
    digest = hashlib.sha256(joined.encode("utf-8")).hexdigest()
    return digest[:TRANSACTION_ID_LENGTH]
