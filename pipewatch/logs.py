"""Logging setup.

The terminal belongs to the dashboard, so records go to a log file. The most
recent ones are also kept in memory for the in-app log panel.
"""

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
MAX_RECORDS = 200
TRIM_TO = 150


class RingBufferHandler(logging.Handler):
    """Keeps the latest formatted records; drops the oldest in bulk when full."""

    def __init__(self, capacity: int = MAX_RECORDS, trim_to: int = TRIM_TO) -> None:
        super().__init__()
        self.capacity = capacity
        self.trim_to = trim_to
        self.records: deque[str] = deque()

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.records.append(self.format(record))
        except Exception:
            self.handleError(record)
            return
        if len(self.records) > self.capacity:
            for _ in range(len(self.records) - self.trim_to):
                self.records.popleft()

    def lines(self) -> list[str]:
        return list(self.records)


_ring: Optional[RingBufferHandler] = None


def get_ring_handler() -> RingBufferHandler:
    """The shared in-memory handler, created on first use."""
    global _ring
    if _ring is None:
        _ring = RingBufferHandler()
        _ring.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s", "%H:%M:%S"))
    return _ring


def configure_logging(log_path: Path, level: str = "WARNING") -> None:
    """Send pipewatch logs to `log_path` and the in-memory ring.

    Raises:
        OSError: If the log directory cannot be created
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)
    file_level = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(
        filename=str(log_path),
        level=file_level,
        format=LOG_FORMAT,
    )
    for handler in logging.getLogger().handlers:
        handler.setLevel(file_level)
    ring = get_ring_handler()
    ring.setLevel(logging.INFO)
    logger = logging.getLogger("pipewatch")
    if ring not in logger.handlers:
        logger.addHandler(ring)
    # The ring shows INFO even when the file is quieter
    if logger.getEffectiveLevel() > logging.INFO:
        logger.setLevel(logging.INFO)
