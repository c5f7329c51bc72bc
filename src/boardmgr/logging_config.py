"""Logging setup for processes embedding boardmgr."""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_installed_files = set()


def parse_level(level: Union[str, int]) -> int:
    if isinstance(level, int):
        return level
    value = logging.getLevelName(str(level).upper())
    return value if isinstance(value, int) else logging.INFO


def setup_logging(log_file: Optional[Path] = None, level: Union[str, int] = "info", foreground: bool = False) -> None:
    """Configure the root logger.

    Args:
        log_file: Rotating log file (10MB, 3 backups); None for no file
        level: Log level name or number
        foreground: Also log to stdout
    """
    logger = logging.getLogger()
    numeric_level = parse_level(level)
    logger.setLevel(numeric_level)
    formatter = logging.Formatter(LOG_FORMAT)

    if foreground:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(numeric_level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    if log_file is not None:
        log_file = Path(log_file).expanduser().resolve()
        # Several instances may share one log file
        if str(log_file) in _installed_files:
            return
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            str(log_file),
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=3,
        )
        file_handler.setLevel(numeric_level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        _installed_files.add(str(log_file))
