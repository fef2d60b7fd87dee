"""
Idempotent updates of the user's shell profile.

The source command lives between two marker comments; running setup again
replaces the block instead of appending a second one.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from ..config.loader import get_config_path
from .detector import ShellType, detect_shell, get_profile_path, get_source_command

logger = logging.getLogger(__name__)

CONFIG_MARKER_START = "# >>> revenium-claude-code-metering >>>"
CONFIG_MARKER_END = "# <<< revenium-claude-code-metering <<<"


@dataclass(frozen=True)
class ShellUpdateResult:
    """Outcome of a shell profile update."""
    success: bool
    shell: ShellType
    message: str
    profile_path: Optional[Path] = None


def generate_config_block(shell: ShellType, config_path: Union[str, Path]) -> str:
    return f"\n{CONFIG_MARKER_START}\n{get_source_command(shell, config_path)}\n{CONFIG_MARKER_END}\n"


def remove_existing_config(content: str) -> str:
    """Remove the marker-delimited block, keeping everything around it."""
    start = content.find(CONFIG_MARKER_START)
    end = content.find(CONFIG_MARKER_END)
    if start == -1 or end == -1 or end < start:
        return content

    before = content[:start].rstrip()
    after = content[end + len(CONFIG_MARKER_END):].lstrip()
    return before + ("\n" + after if after else "")


def update_shell_profile(
    config_path: Optional[Union[str, Path]] = None,
    shell: Optional[ShellType] = None,
    home: Optional[Union[str, Path]] = None
) -> ShellUpdateResult:
    """Add or refresh the block that sources the config in the shell profile.

    Args:
        config_path: Config file to source (defaults to ~/.claude/revenium.env)
        shell: Shell to configure (detected when omitted)
        home: Home directory (defaults to the current user's)

    Returns:
        ShellUpdateResult describing what was done

    Raises:
        ConfigPathError: If the config path contains unsafe characters
        OSError: If the profile cannot be read or written
    """
    shell_type = shell if shell is not None else detect_shell(home=home)
    if shell_type is ShellType.UNKNOWN:
        return ShellUpdateResult(
            success=False,
            shell=shell_type,
            message="Could not detect shell type. Please manually add the source "
                    "command to your shell profile.",
        )

    profile_path = get_profile_path(shell_type, home)
    if profile_path is None:
        return ShellUpdateResult(
            success=False,
            shell=shell_type,
            message=f"Could not determine profile path for {shell_type.value}.",
        )

    source_path = config_path if config_path is not None else get_config_path(home)
    block = generate_config_block(shell_type, source_path)

    content = profile_path.read_text(encoding="utf-8") if profile_path.exists() else ""
    already_configured = CONFIG_MARKER_START in content
    if already_configured:
        content = remove_existing_config(content)

    profile_path.parent.mkdir(parents=True, exist_ok=True)
    profile_path.write_text(content + block, encoding="utf-8")
    logger.debug("Wrote metering block to %s", profile_path)

    verb = "Updated existing configuration in" if already_configured else "Added configuration to"
    return ShellUpdateResult(
        success=True,
        shell=shell_type,
        message=f"{verb} {profile_path}",
        profile_path=profile_path,
    )


def get_manual_instructions(
    shell: ShellType,
    config_path: Optional[Union[str, Path]] = None,
    home: Optional[Union[str, Path]] = None
) -> str:
    source_path = config_path if config_path is not None else get_config_path(home)
    profile_path = get_profile_path(shell, home)
    target = str(profile_path) if profile_path is not None else "your shell profile"
    return f"Add the following to {target}:\n\n{get_source_command(shell, source_path)}"
