from __future__ import annotations

import io
import logging
from collections.abc import Iterator
from contextlib import contextmanager

from cattle_weight.logging import _JsonFormatter, get_logger


@contextmanager
def captured_logs() -> Iterator[io.StringIO]:
    """Collect project log records as JSON lines at INFO level."""
    buf = io.StringIO()
    h = logging.StreamHandler(buf)
    h.setFormatter(_JsonFormatter())
    logger = get_logger()
    old_level = logger.level
    logger.addHandler(h)
    logger.setLevel(logging.INFO)
    try:
        yield buf
    finally:
        logger.removeHandler(h)
        logger.setLevel(old_level)
