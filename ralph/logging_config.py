"""
Logging configuration for ralph.

Diagnostic logging goes to a rotating ``ralph.log`` inside the plan
directory; only warnings reach the terminal unless debug mode is on.
User-facing progress output is rendered separately by ralph.display.
"""

import logging
import logging.handlers
import sys
from pathlib import Path

# Detailed format for the log file
_FILE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"

# Simplified format for the console
_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

_LOG_COLORS = {
    "DEBUG": "\033[94m",  # Blue
    "INFO": "\033[92m",  # Green
    "WARNING": "\033[93m",  # Yellow
    "ERROR": "\033[91m",  # Red
    "CRITICAL": "\033[91m\033[1m",  # Bold Red
    "RESET": "\033[0m",
}


class ColorFormatter(logging.Formatter):
    """Formatter that adds colors to log levels for console output."""

    def format(self, record: logging.LogRecord) -> str:
        levelname = record.levelname
        if levelname in _LOG_COLORS:
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = (
                f"{_LOG_COLORS[levelname]}{levelname}{_LOG_COLORS['RESET']}"
            )
        return super().format(record)


def configure_logging(
    log_file: Path | None = None,
    debug: bool = False,
    max_file_size_mb: int = 1,
    backup_count: int = 3,
) -> None:
    """
    Configure the ralph logger with console and (optional) file output.

    Args:
        log_file: Path of the rotating log file, None for console only
        debug: Show DEBUG messages on the console instead of WARNING and up
        max_file_size_mb: Maximum size of the log file before rotation
        backup_count: Number of rotated files to keep
    """
    ralph_logger = logging.getLogger("ralph")
    ralph_logger.setLevel(logging.DEBUG)
    ralph_logger.propagate = False

    # Clear any existing handlers to avoid duplicates if reconfigured
    for handler in ralph_logger.handlers[:]:
        ralph_logger.removeHandler(handler)
        handler.close()

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if debug else logging.WARNING)
    console_handler.setFormatter(ColorFormatter(_CONSOLE_FORMAT))
    ralph_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            filename=log_file,
            maxBytes=max_file_size_mb * 1024 * 1024,
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(_FILE_FORMAT))
        ralph_logger.addHandler(file_handler)

    ralph_logger.debug(
        f"Logging initialized (console: {'DEBUG' if debug else 'WARNING'}, "
        f"file: {log_file or 'disabled'})"
    )
