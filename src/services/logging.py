"""Logging setup for the ledger server.

Every record goes to stdout and to the ledger log file with the same format,
so a rollover or payment line can be matched to its audit row by timestamp.
The level comes from the LOG_LEVEL setting unless the caller passes one.
"""

import logging
import sys
from pathlib import Path

from src.services.config import get_settings

LEDGER_LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
LEDGER_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_log_level(name: str | None = None) -> int:
    """Resolve a level name, falling back to the LOG_LEVEL setting.

    Unknown names resolve to INFO.
    """
    level_name = (name or get_settings().log_level or "INFO").upper()
    return LOG_LEVEL_MAP.get(level_name, logging.INFO)


def setup_server_logging(log_file: str = "logs/ledger.log", level: str | None = None) -> int:
    """Send ledger logs to stdout and log_file.

    Args:
        log_file: Ledger log file; parent directories are created
        level: Level name overriding the LOG_LEVEL setting

    Returns:
        The numeric level applied to the root logger
    """
    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LEDGER_LOG_FORMAT, datefmt=LEDGER_DATE_FORMAT)
    log_level = get_log_level(level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    # Re-running setup (reloads, tests) must not duplicate output
    root_logger.handlers.clear()

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    return log_level


__all__ = ["get_log_level", "setup_server_logging"]
