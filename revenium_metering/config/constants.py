"""
Constants shared by the configuration, API and backfill layers.
"""

DEFAULT_REVENIUM_URL = "https://api.revenium.ai"

# Appended to the base URL; the logs exporter posts to <base><OTLP_PATH>/v1/logs
OTLP_PATH = "/meter/v2/otlp"
OTLP_LOGS_PATH = "/v1/logs"

API_KEY_PREFIX = "hak_"

CLAUDE_CONFIG_DIR = ".claude"
REVENIUM_ENV_FILE = "revenium.env"
PROJECTS_DIR = "projects"

CONFIG_FILE_MODE = 0o600

SERVICE_NAME = "claude-code"
API_REQUEST_EVENT = "claude_code.api_request"


class EnvVars:
    """Environment variable names written to and read from revenium.env."""
    TELEMETRY_ENABLED = "CLAUDE_CODE_ENABLE_TELEMETRY"
    LOGS_EXPORTER = "OTEL_LOGS_EXPORTER"
    OTLP_ENDPOINT = "OTEL_EXPORTER_OTLP_ENDPOINT"
    OTLP_HEADERS = "OTEL_EXPORTER_OTLP_HEADERS"
    OTLP_PROTOCOL = "OTEL_EXPORTER_OTLP_PROTOCOL"
    RESOURCE_ATTRIBUTES = "OTEL_RESOURCE_ATTRIBUTES"
    SUBSCRIBER_EMAIL = "REVENIUM_SUBSCRIBER_EMAIL"
    SUBSCRIPTION = "CLAUDE_CODE_SUBSCRIPTION"
    COST_MULTIPLIER = "CLAUDE_CODE_COST_MULTIPLIER"
    ORGANIZATION_ID = "REVENIUM_ORGANIZATION_ID"
    PRODUCT_ID = "REVENIUM_PRODUCT_ID"
