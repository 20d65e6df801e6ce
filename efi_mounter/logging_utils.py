from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional

from .settings import DEFAULT_LOG_PATH


def configure_logging(
    log_path: str = DEFAULT_LOG_PATH,
    level: int = logging.INFO,
    also_console: bool = True,
) -> str:
    """Send efi-mounter's records to a log file and, for problems, the console.

    The file gets INFO and up: every diskutil/nvram query, each elevation
    request with its backend, scan results and verification outcomes. The
    console only shows WARNING and up (failed partitions, non-convergence),
    unless ``level`` is DEBUG, because stdout belongs to the CLI's table and
    JSON/YAML output. An unwritable ``log_path`` falls back to
    ``./efi-mounter.log``. Calling this again keeps the first setup.

    Returns the path of the file actually written.
    """

    logger = logging.getLogger()
    logger.setLevel(level)

    # Avoid duplicate handlers if configure_logging() is called multiple times.
    if getattr(logger, "_efi_mounter_configured", False):
        return getattr(logger, "_efi_mounter_log_path", log_path)

    requested = os.path.expanduser(log_path)
    chosen_path = requested
    handlers: list[logging.Handler] = []

    fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S%z",
    )

    file_handler: Optional[logging.Handler] = None
    try:
        Path(os.path.dirname(requested) or ".").mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(requested)
    except OSError:
        # Fall back to a writable location.
        chosen_path = str(Path.cwd() / "efi-mounter.log")
        file_handler = logging.FileHandler(chosen_path)
    file_handler.setFormatter(fmt)
    handlers.append(file_handler)

    if also_console:
        console = logging.StreamHandler()
        console.setFormatter(fmt)
        console.setLevel(level if level <= logging.DEBUG else logging.WARNING)
        handlers.append(console)

    for h in handlers:
        logger.addHandler(h)

    setattr(logger, "_efi_mounter_configured", True)
    setattr(logger, "_efi_mounter_log_path", chosen_path)

    logging.getLogger(__name__).info(
        "Logging initialized (requested=%s, actual=%s)", requested, chosen_path
    )
    return chosen_path
