"""
Small helpers shared across commands.
"""
