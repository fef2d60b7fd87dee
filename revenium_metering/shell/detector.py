"""
Shell detection and source command generation.
"""

import os
import re
from enum import Enum
from pathlib import Path
from typing import Mapping, Optional, Union


class ShellType(Enum):
    ZSH = "zsh"
    BASH = "bash"
    FISH = "fish"
    UNKNOWN = "unknown"


class ConfigPathError(ValueError):
    """Raised when a path is unsafe to embed in a shell command."""


# Spaces are allowed; paths are double-quoted in the generated commands
_UNSAFE_PATH_CHARS = re.compile(r"[;|&$`\"'\\<>(){}\[\]!*?#\n\r\t]")


def _home(home: Optional[Union[str, Path]]) -> Path:
    return Path(home) if home is not None else Path.home()


def detect_shell(
    environ: Optional[Mapping[str, str]] = None,
    home: Optional[Union[str, Path]] = None
) -> ShellType:
    """Detect the user's shell from $SHELL, falling back to existing rc files."""
    env = os.environ if environ is None else environ
    shell = env.get("SHELL", "")

    for shell_type in (ShellType.ZSH, ShellType.FISH, ShellType.BASH):
        if shell_type.value in shell:
            return shell_type

    base = _home(home)
    if (base / ".zshrc").exists():
        return ShellType.ZSH
    if (base / ".config" / "fish" / "config.fish").exists():
        return ShellType.FISH
    if (base / ".bashrc").exists():
        return ShellType.BASH

    return ShellType.UNKNOWN


def get_profile_path(shell: ShellType, home: Optional[Union[str, Path]] = None) -> Optional[Path]:
    """Return the profile file for a shell, or None for an unknown shell.

    Bash prefers ~/.bashrc and falls back to ~/.bash_profile.
    """
    base = _home(home)

    if shell is ShellType.ZSH:
        return base / ".zshrc"
    if shell is ShellType.BASH:
        bashrc = base / ".bashrc"
        return bashrc if bashrc.exists() else base / ".bash_profile"
    if shell is ShellType.FISH:
        return base / ".config" / "fish" / "config.fish"
    return None


def validate_config_path(path: Union[str, Path]) -> None:
    """Reject paths containing shell metacharacters.

    Raises:
        ConfigPathError: If the path contains unsafe characters
    """
    if _UNSAFE_PATH_CHARS.search(str(path)):
        raise ConfigPathError(
            "Invalid config path: contains unsafe characters. Path must not contain "
            "shell metacharacters like semicolons, pipes, backticks, or quotes."
        )


def get_source_command(shell: ShellType, config_path: Union[str, Path]) -> str:
    """Generate the snippet that sources the config file in the given shell.

    Raises:
        ConfigPathError: If the path contains unsafe characters
    """
    validate_config_path(config_path)

    if shell is ShellType.FISH:
        return (
            "# Source Revenium Claude Code metering config\n"
            f'if test -f "{config_path}"\n'
            f'    source "{config_path}"\n'
            "end"
        )
    return (
        "# Source Revenium Claude Code metering config\n"
        f'if [ -f "{config_path}" ]; then\n'
        f'    source "{config_path}"\n'
        "fi"
    )
