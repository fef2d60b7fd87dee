"""
Shell integration: makes new terminals source the metering configuration.
"""

from .detector import ConfigPathError, ShellType, detect_shell
from .profile_updater import ShellUpdateResult, get_manual_instructions, update_shell_profile

__all__ = [
    "ConfigPathError",
    "ShellType",
    "ShellUpdateResult",
    "detect_shell",
    "get_manual_instructions",
    "update_shell_profile",
]
