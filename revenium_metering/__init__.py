"""
Revenium metering for Claude Code.

Configures Claude Code telemetry export and backfills historical usage
from local session logs.
"""

__version__ = "0.2.0"
