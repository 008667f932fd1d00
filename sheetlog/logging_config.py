"""Application-wide logging configuration utilities."""
from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_CONFIGURED = False


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_path: Optional[Union[str, Path]] = None,
) -> Optional[Path]:
    """Configure the root logger for sheetlog.

    Parameters
    ----------
    level:
        The minimum logging level for the root logger, as a number or a level
        name such as ``"DEBUG"``.
    log_path:
        Optional file receiving a copy of every record.  Its parent directory
        is created when missing.

    Returns
    -------
    pathlib.Path or None
        The resolved log file path when file logging is enabled.
    """

    global _CONFIGURED

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    if not root_logger.handlers:
        root_logger.setLevel(level)
    else:
        root_logger.setLevel(min(root_logger.level, level))

    formatter = logging.Formatter(LOG_FORMAT)
    if not _CONFIGURED:
        stream_handler = logging.StreamHandler(sys.stderr)
        stream_handler.setFormatter(formatter)
        root_logger.addHandler(stream_handler)
        _CONFIGURED = True

    if log_path is None:
        return None

    path = Path(log_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    already_configured = any(
        isinstance(handler, logging.FileHandler)
        and getattr(handler, "baseFilename", None) == str(path.resolve())
        for handler in root_logger.handlers
    )
    if not already_configured:
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    root_logger.debug("Logging configured. Writing to %s", path)
    return path
