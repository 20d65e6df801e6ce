from __future__ import annotations

import logging
import platform

from ..errors import CommandError
from .command import run_cmd

logger = logging.getLogger(__name__)


def file_browser_argv(path: str) -> list[str]:
    if platform.system() == "Darwin":
        return ["open", path]
    return ["xdg-open", path]


def open_in_file_browser(path: str, *, dry_run: bool = False) -> bool:
    """Best-effort: show ``path`` in the desktop file browser."""

    try:
        run_cmd(file_browser_argv(path), dry_run=dry_run)
        return True
    except CommandError as e:
        logger.warning("Could not open %s in file browser: %s", path, e)
        return False
