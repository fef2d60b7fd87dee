"""
HTTP client for the Revenium OTLP ingestion endpoint.
"""

from .client import OTLPRequestError, check_endpoint_health, send_otlp_logs

__all__ = ["OTLPRequestError", "check_endpoint_health", "send_otlp_logs"]
