"""
Unit tests for transaction id generation.
"""

import re

import pytest

from revenium_metering.utils.hashing import generate_transaction_id

KNOWN_FIELDS = (
    "5345477c-26de-46ed-8eb1-d1deea0ee61f",
    "2026-01-13T15:15:09.790Z",
    "claude-opus-4-5-20251101",
    100,
    50,
    1000,
    500,
)


class TestGenerateTransactionId:
    """Test the backend-compatible transaction id."""

    def test_known_vector(self):
        assert generate_transaction_id(*KNOWN_FIELDS) == "a4ae0241320cd35508c022af01424382"

    def test_format(self):
        transaction_id = generate_transaction_id(*KNOWN_FIELDS)
        assert re.fullmatch(r"[0-9a-f]{32}", transaction_id)

    def test_deterministic(self):
        assert generate_transaction_id(*KNOWN_FIELDS) == generate_transaction_id(*KNOWN_FIELDS)

    @pytest.mark.parametrize("index, replacement", [
        (0, "another-session"),
        (1, "2026-01-13T15:15:09.791Z"),
        (2, "claude-sonnet-4"),
        (3, 101),
        (4, 51),
        (5, 1001),
        (6, 501),
    ])
    def test_every_field_changes_the_id(self, index, replacement):
        fields = list(KNOWN_FIELDS)
        fields[index] = replacement

        assert generate_transaction_id(*fields) != generate_transaction_id(*KNOWN_FIELDS)
