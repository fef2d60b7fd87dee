"""
Command-line interface for Revenium metering.
"""
