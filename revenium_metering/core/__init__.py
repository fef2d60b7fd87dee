"""
Core modules for Revenium metering.

This package contains subscription tier pricing used to resolve the
cost multiplier applied by the backend.
"""
