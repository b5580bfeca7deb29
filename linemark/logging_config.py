"""
Logging configuration for linemark.

Quiet by default: only warnings reach stderr unless LINEMARK_VERBOSE is set
or the CLI runs with --verbose.
"""

import logging
import os
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

OPS_LOG_NAME = "linemark-ops.log"


def verbose_requested() -> bool:
    return os.environ.get("LINEMARK_VERBOSE", "").lower() in ("1", "true", "yes")


def configure_quiet_mode(quiet: bool = True):
    """
    Keep the console free of debug chatter.

    Args:
        quiet: If True, linemark loggers only emit warnings and Python
            warnings are silenced. If False, leave everything as is.
    """
    if not quiet:
        return
    warnings.filterwarnings("ignore")
    logging.getLogger("linemark").setLevel(logging.WARNING)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    logging.getLogger("linemark").setLevel(logging.DEBUG)


def configure_ops_log(log_dir):
    """Configure a persistent operations log next to the bookmark file.

    Writes to {log_dir}/linemark-ops.log using a rotating file handler
    (1MB max, 3 backups). Returns the handler so the caller can remove it.
    """
    log_dir = Path(log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(log_dir / OPS_LOG_NAME),
        maxBytes=1_000_000,
        backupCount=3,
        encoding="utf-8",
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    linemark_logger = logging.getLogger("linemark")
    linemark_logger.addHandler(handler)
    # INFO must pass even in quiet mode
    if linemark_logger.level == logging.NOTSET or linemark_logger.level > logging.INFO:
        linemark_logger.setLevel(logging.INFO)

    return handler


def remove_ops_log(handler) -> None:
    logging.getLogger("linemark").removeHandler(handler)
    handler.close()
