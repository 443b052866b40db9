"""Creation-ordered identifiers."""

import itertools
import threading
from datetime import datetime


class IdGenerator:
    """
    Produces ids that sort in creation order.

    Format: ``<prefix><epoch millis, 13 digits>-<sequence, 6 digits>``. The
    sequence makes ids created within the same millisecond unique.
    """

    def __init__(self, prefix: str = ""):
        self._prefix = prefix
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def next_id(self, timestamp: datetime) -> str:
        millis = int(timestamp.timestamp() * 1000)
        with self._lock:
            seq = next(self._counter) % 1_000_000
        return f"{self._prefix}{millis:013d}-{seq:06d}"
