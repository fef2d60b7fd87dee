"""
Discovery of Claude Code session log files.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional, Union

from ..config.constants import CLAUDE_CONFIG_DIR, PROJECTS_DIR
from .models import FileDiscoveryResult

logger = logging.getLogger(__name__)

JSONL_EXTENSION = ".jsonl"


def get_projects_dir(home: Union[str, Path]) -> Path:
    """Return the directory Claude Code stores per-project session logs in."""
    return Path(home) / CLAUDE_CONFIG_DIR / PROJECTS_DIR


def _walk(directory: str, files: List[str], errors: List[str]) -> None:
    try:
        with os.scandir(directory) as entries:
            for entry in entries:
                if entry.is_dir(follow_symlinks=False):
                    _walk(entry.path, files, errors)
                elif entry.is_file(follow_symlinks=False) and entry.name.endswith(JSONL_EXTENSION):
                    files.append(entry.path)
    except OSError as e:
        logger.debug("Cannot read directory %s: %s", directory, e)
        errors.append(f"{directory}: {e.strerror or e}")


def find_jsonl_files(
    root: Union[str, Path],
    errors: Optional[List[str]] = None
) -> FileDiscoveryResult:
    """Recursively find session log files under a directory.

    An unreadable directory is recorded as "<dir>: <message>" and the walk
    continues with its siblings. Files are returned in traversal order.

    Args:
        root: Directory to search
        errors: Optional list to append directory errors to

    Returns:
        FileDiscoveryResult with the files found and the errors collected
    """
    files: List[str] = []
    collected = errors if errors is not None else []
    _walk(os.fspath(root), files, collected)
    logger.debug("Found %d session log file(s) under %s", len(files), root)
    return FileDiscoveryResult(files=files, errors=collected)
