"""
Bounded History Store
======================

Capped, oldest-first evicting collections of ingested errors, kept both as
one global recent list and one list per error type.
"""

from collections import deque
from datetime import datetime
from typing import Deque, Dict, Iterable, List, Optional

from errorwatch.tracking.domain.entities import ErrorIncident


class BoundedHistoryStore:
    """
    In-memory error history.

    ``append`` is O(1): both collections are ``deque(maxlen=...)`` so the
    oldest record falls off silently when capacity is exceeded.
    """

    def __init__(self, max_error_history: int = 1000, max_recent_errors: int = 50):
        if max_error_history <= 0 or max_recent_errors <= 0:
            raise ValueError("history capacities must be positive")
        self.max_error_history = max_error_history
        self.max_recent_errors = max_recent_errors
        self._history: Dict[str, Deque[ErrorIncident]] = {}
        self._recent: Deque[ErrorIncident] = deque(maxlen=max_recent_errors)

    def append(self, error: ErrorIncident) -> None:
        bucket = self._history.get(error.error_type)
        if bucket is None:
            bucket = deque(maxlen=self.max_error_history)
            self._history[error.error_type] = bucket
        bucket.append(error)
        self._recent.append(error)

    def recent(self, limit: int = 20, min_severity: Optional[str] = None) -> List[ErrorIncident]:
        """
        Most recent errors first.

        Args:
            limit: Maximum number of records returned
            min_severity: Only return errors at least this severe
        """
        if limit <= 0:
            return []
        errors = sorted(self._recent, key=lambda e: (e.timestamp, e.id), reverse=True)
        if min_severity is not None:
            errors = [e for e in errors if e.is_at_least(min_severity)]
        return errors[:limit]

    def by_type(self, error_type: str) -> List[ErrorIncident]:
        """Insertion-ordered copy of the history for one type."""
        return list(self._history.get(error_type, ()))

    def count_since(self, error_type: str, window_start: datetime) -> int:
        """Number of ``error_type`` records with ``timestamp >= window_start``."""
        return sum(1 for e in self._history.get(error_type, ()) if e.timestamp >= window_start)

    def retention_sweep(self, cutoff: datetime) -> int:
        """
        Remove records older than ``cutoff`` from every list.

        Type buckets left empty are dropped.

        Returns:
            Number of per-type records removed
        """
        removed = 0
        for error_type in list(self._history):
            bucket = self._history[error_type]
            kept = [e for e in bucket if e.timestamp >= cutoff]
            removed += len(bucket) - len(kept)
            if kept:
                self._history[error_type] = deque(kept, maxlen=self.max_error_history)
            else:
                del self._history[error_type]

        self._recent = deque(
            (e for e in self._recent if e.timestamp >= cutoff),
            maxlen=self.max_recent_errors
        )
        return removed

    def error_types(self) -> List[str]:
        return list(self._history)

    def type_counts(self) -> Dict[str, int]:
        return {error_type: len(bucket) for error_type, bucket in self._history.items()}

    def snapshot(self) -> List[ErrorIncident]:
        """Independent copy of every per-type record, for read-side computations."""
        records: List[ErrorIncident] = []
        for bucket in self._history.values():
            records.extend(bucket)
        return records

    def recent_snapshot(self) -> List[ErrorIncident]:
        """Insertion-ordered copy of the global recent list."""
        return list(self._recent)

    def history_snapshot(self) -> Dict[str, List[ErrorIncident]]:
        return {error_type: list(bucket) for error_type, bucket in self._history.items()}

    def restore(
        self,
        recent: Iterable[ErrorIncident],
        history: Dict[str, Iterable[ErrorIncident]]
    ) -> None:
        """Replace contents with loaded records, re-applying the capacity caps."""
        self._history = {}
        for error_type, records in history.items():
            bucket = deque(records, maxlen=self.max_error_history)
            if bucket:
                self._history[error_type] = bucket
        self._recent = deque(recent, maxlen=self.max_recent_errors)

    def clear(self) -> None:
        self._history.clear()
        self._recent.clear()

    def __len__(self) -> int:
        return sum(len(bucket) for bucket in self._history.values())
