"""
Configuration loading, validation and persistence.
"""
