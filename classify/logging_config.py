"""
Logging setup for classify.

HTTP and SDK libraries are kept quiet unless --verbose is given. Every
store also gets an operations log recording what was classified and
deleted.
"""

import logging
import sys
import warnings
from logging.handlers import RotatingFileHandler
from pathlib import Path

# Libraries that log every request at INFO/DEBUG
_NOISY_LOGGERS = ("urllib3", "botocore", "boto3", "anthropic", "openai", "httpx")

OPS_LOG_FILENAME = "classify-ops.log"
OPS_LOG_MAX_BYTES = 1_000_000
OPS_LOG_BACKUPS = 3


def configure_quiet_mode(quiet: bool = True):
    """Raise the noisy third-party loggers to WARNING and hide warnings."""
    if not quiet:
        return
    warnings.filterwarnings("ignore")
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _has_stderr_handler(logger: logging.Logger) -> bool:
    return any(
        isinstance(h, logging.StreamHandler) and h.stream is sys.stderr
        for h in logger.handlers
    )


def enable_debug_mode():
    """Send DEBUG output from classify and its libraries to stderr."""
    warnings.filterwarnings("default")

    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    if not _has_stderr_handler(root):
        stderr = logging.StreamHandler(sys.stderr)
        stderr.setLevel(logging.DEBUG)
        stderr.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        ))
        root.addHandler(stderr)

    for name in ("classify",) + _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG)


def configure_ops_log(store_path) -> RotatingFileHandler:
    """
    Attach the operations log for a store.

    INFO and above from the ``classify`` logger go to
    ``<store_path>/classify-ops.log``, rotated at 1 MB with 3 backups,
    whether or not --verbose is set. The caller removes the returned
    handler when the store is closed.
    """
    ops = RotatingFileHandler(
        str(Path(store_path) / OPS_LOG_FILENAME),
        maxBytes=OPS_LOG_MAX_BYTES,
        backupCount=OPS_LOG_BACKUPS,
    )
    ops.setLevel(logging.INFO)
    ops.setFormatter(logging.Formatter(
        "%(asctime)s %(levelname)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    ))

    logger = logging.getLogger("classify")
    logger.addHandler(ops)
    if logger.level == logging.NOTSET or logger.level > logging.INFO:
        logger.setLevel(logging.INFO)
    return ops
