from __future__ import annotations

import logging
import sys
from typing import IO, Optional

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_handler: Optional[logging.Handler] = None


def configure_logging(level: str = "INFO", stream: Optional[IO[str]] = None) -> logging.Handler:
    """Route all loggers to a single timestamped stream handler."""
    global _handler

    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    root = logging.getLogger()
    if _handler is not None:
        root.removeHandler(_handler)

    _handler = logging.StreamHandler(stream or sys.stderr)
    _handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
    root.addHandler(_handler)
    root.setLevel(numeric_level)

    # boto and paramiko are chatty at INFO
    for noisy in ("botocore", "boto3", "s3transfer", "paramiko"):
        logging.getLogger(noisy).setLevel(max(numeric_level, logging.WARNING))

    return _handler
