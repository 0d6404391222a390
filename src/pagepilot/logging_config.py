"""
Structured Logging for PagePilot

JSON logging to file with rotation. Nothing is ever written to stdout:
with the stdio transport, stdout carries the protocol.
"""

import json
import logging
import logging.handlers
import sys

from pagepilot.config import LOG_DIR


class JSONFormatter(logging.Formatter):
    """Format logs as JSON for machine parsing."""

    EXTRAS = ("tool_name", "tab_index", "error_kind")

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for name in self.EXTRAS:
            if hasattr(record, name):
                log_data[name] = getattr(record, name)

        return json.dumps(log_data, default=str)


def setup_logging(verbose: bool = False, log_dir=None) -> logging.Logger:
    """
    Setup structured logging for PagePilot.

    Args:
        verbose: If True, also log to stderr (for --verbose flag)
        log_dir: Directory for pagepilot.log (default ~/.pagepilot/logs)

    Returns:
        Logger instance
    """
    log_dir = log_dir or LOG_DIR

    root_logger = logging.getLogger("pagepilot")
    root_logger.handlers.clear()
    root_logger.propagate = False

    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except (OSError, PermissionError) as e:
        # If we can't create logs dir, log to stderr only
        root_logger.setLevel(logging.INFO if verbose else logging.WARNING)
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setFormatter(logging.Formatter("[%(levelname)s] %(message)s"))
        root_logger.addHandler(console_handler)
        root_logger.warning(f"Could not create log directory: {e}")
        return root_logger

    root_logger.setLevel(logging.DEBUG)

    # File handler with rotation (10MB max, keep last 5 files)
    try:
        file_handler = logging.handlers.RotatingFileHandler(
            log_dir / "pagepilot.log",
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(JSONFormatter())
        root_logger.addHandler(file_handler)
    except (OSError, PermissionError) as e:
        print(f"Warning: Could not create log file: {e}", file=sys.stderr)

    if verbose:
        console_handler = logging.StreamHandler(sys.stderr)
        console_handler.setLevel(logging.DEBUG)
        console_handler.setFormatter(logging.Formatter("[%(levelname)s] %(name)s: %(message)s"))
        root_logger.addHandler(console_handler)

    root_logger.info("PagePilot logging initialized")
    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a specific module."""
    return logging.getLogger(f"pagepilot.{name}")
