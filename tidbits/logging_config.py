"""
Logging configuration for tidbits.

Library output (HTTP clients) is kept quiet by default; TIDBITS_VERBOSE
or ``--verbose`` switches everything to debug on stderr.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

# HTTP libraries that log every request at INFO/DEBUG
_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3")

OPS_LOG_FILENAME = "tidbits-ops.log"


def configure_quiet_mode(quiet: bool = True):
    """
    Configure logging to suppress verbose library output.

    Args:
        quiet: If True, suppress library warnings and request logging.
            If False, leave everything as is.
    """
    if not quiet:
        return

    warnings.filterwarnings("ignore")

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def enable_debug_mode():
    """Enable debug-level logging to stderr."""
    warnings.filterwarnings("default")

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    # Add stderr handler if not already present
    if not any(isinstance(h, logging.StreamHandler) and getattr(h, "stream", None) is sys.stderr
               for h in root_logger.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S"
        ))
        root_logger.addHandler(handler)

    for name in ("tidbits",) + _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(home) -> RotatingFileHandler:
    """Configure a persistent operations log in the tidbits home.

    Writes to {home}/tidbits-ops.log using a rotating file handler
    (1MB max, 3 backups). Always active regardless of --verbose.
    Returns the handler so the caller can remove it again.
    """
    home = Path(home)
    home.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        str(home / OPS_LOG_FILENAME),
        maxBytes=1_000_000,
        backupCount=3,
    )
    handler.setLevel(logging.INFO)
    handler.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    tidbits_logger = logging.getLogger("tidbits")
    tidbits_logger.addHandler(handler)
    # Let INFO through even in quiet mode
    if tidbits_logger.level == logging.NOTSET or tidbits_logger.level > logging.INFO:
        tidbits_logger.setLevel(logging.INFO)

    return handler
