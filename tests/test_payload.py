"""
Unit tests for OTLP logs payload construction.
"""

from revenium_metering import __version__
from revenium_metering.backfill.models import UsageRecord
from revenium_metering.backfill.payload import PayloadOptions, create_otlp_payload, to_unix_nano


def _record(session_id: str = "5345477c-26de-46ed-8eb1-d1deea0ee61f",
            timestamp: str = "2026-01-13T15:15:09.790Z") -> UsageRecord:
    return UsageRecord(
        session_id=session_id,
        timestamp=timestamp,
        model="claude-opus-4-5-20251101",
        input_tokens=100,
        output_tokens=50,
        cache_read_tokens=1000,
        cache_creation_tokens=500,
    )


def _attributes(log_record: dict) -> dict:
    return {attr["key"]: attr["value"] for attr in log_record["attributes"]}


class TestToUnixNano:
    """Test timestamp conversion."""

    def test_millisecond_precision(self):
        assert to_unix_nano("2026-01-13T15:15:09.790Z") == "1768317309790000000"

    def test_epoch(self):
        assert to_unix_nano("1970-01-01T00:00:00Z") == "0"

    def test_invalid(self):
        assert to_unix_nano("garbage") is None


class TestCreateOtlpPayload:
    """Test the payload shape accepted by the ingestion endpoint."""

    def test_envelope(self):
        payload = create_otlp_payload([_record()], PayloadOptions(cost_multiplier=0.08))

        resource_logs = payload["resourceLogs"]
        assert len(resource_logs) == 1
        resource_attrs = {a["key"]: a["value"] for a in resource_logs[0]["resource"]["attributes"]}
        assert resource_attrs["service.name"] == {"stringValue": "claude-code"}
        assert resource_attrs["cost_multiplier"] == {"doubleValue": 0.08}

        scope_logs = resource_logs[0]["scopeLogs"]
        assert scope_logs[0]["scope"] == {"name": "claude-code", "version": __version__}

    def test_log_record_fields(self):
        payload = create_otlp_payload([_record()], PayloadOptions(cost_multiplier=1.0))

        log_record = payload["resourceLogs"][0]["scopeLogs"][0]["logRecords"][0]
        assert log_record["timeUnixNano"] == "1768317309790000000"
        assert log_record["body"] == {"stringValue": "claude_code.api_request"}

        attrs = _attributes(log_record)
        assert attrs["session.id"] == {"stringValue": "5345477c-26de-46ed-8eb1-d1deea0ee61f"}
        assert attrs["transaction_id"] == {"stringValue": "a4ae0241320cd35508c022af01424382"}
        assert attrs["model"] == {"stringValue": "claude-opus-4-5-20251101"}
        assert attrs["input_tokens"] == {"intValue": 100}
        assert attrs["output_tokens"] == {"intValue": 50}
        assert attrs["cache_read_tokens"] == {"intValue": 1000}
        assert attrs["cache_creation_tokens"] == {"intValue": 500}
        assert "user.email" not in attrs
        assert "organization.name" not in attrs
        assert "product.name" not in attrs

    def test_attribution(self):
        options = PayloadOptions(
            cost_multiplier=0.16,
            email="dev@company.com",
            organization_name="Acme",
            product_name="Assistant",
        )

        log_record = create_otlp_payload([_record()], options)["resourceLogs"][0]["scopeLogs"][0]["logRecords"][0]
        attrs = _attributes(log_record)

        assert attrs["user.email"] == {"stringValue": "dev@company.com"}
        assert attrs["organization.name"] == {"stringValue": "Acme"}
        assert attrs["product.name"] == {"stringValue": "Assistant"}

    def test_legacy_ids_are_fallbacks(self):
        options = PayloadOptions(cost_multiplier=0.16, organization_id="org-1", product_id="prod-1")

        log_record = create_otlp_payload([_record()], options)["resourceLogs"][0]["scopeLogs"][0]["logRecords"][0]
        attrs = _attributes(log_record)

        assert attrs["organization.name"] == {"stringValue": "org-1"}
        assert attrs["product.name"] == {"stringValue": "prod-1"}

    def test_records_keep_input_order(self):
        records = [
            _record("late", "2026-02-01T00:00:00Z"),
            _record("early", "2025-01-01T00:00:00Z"),
        ]

        log_records = create_otlp_payload(records, PayloadOptions(cost_multiplier=1.0))[
            "resourceLogs"][0]["scopeLogs"][0]["logRecords"]

        assert [_attributes(r)["session.id"]["stringValue"] for r in log_records] == ["late", "early"]

    def test_unconvertible_timestamp_is_dropped(self):
        records = [_record(timestamp="bad"), _record()]

        log_records = create_otlp_payload(records, PayloadOptions(cost_multiplier=1.0))[
            "resourceLogs"][0]["scopeLogs"][0]["logRecords"]

        assert len(log_records) == 1

    def test_transaction_ids_are_stable(self):
        options = PayloadOptions(cost_multiplier=1.0)
        first = create_otlp_payload([_record()], options)
        second = create_otlp_payload([_record()], options)

        assert first == second
