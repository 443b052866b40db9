"""
Error Tracking DTOs
====================

Pydantic models for the persisted history snapshot.

The envelope is validated as a whole; individual entries stay loose
(``Any``) so one malformed record does not discard the rest.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from errorwatch.tracking.domain.entities import ErrorIncident


class ErrorSnapshotDTO(BaseModel):
    """Serialized engine state stored under the persistence key."""
    recent_errors: List[Any] = Field(default_factory=list, description="Global recent list, oldest first")
    error_history: Dict[str, List[Any]] = Field(default_factory=dict, description="Per-type history, oldest first")
    last_alert_times: Dict[str, Any] = Field(default_factory=dict, description="Last alert time per error type")
    saved_at: Optional[datetime] = Field(None, description="When the snapshot was written")

    @classmethod
    def from_state(
        cls,
        recent: List[ErrorIncident],
        history: Dict[str, List[ErrorIncident]],
        alert_times: Dict[str, datetime],
        saved_at: datetime
    ) -> "ErrorSnapshotDTO":
        return cls(
            recent_errors=[e.to_dict() for e in recent],
            error_history={t: [e.to_dict() for e in records] for t, records in history.items()},
            last_alert_times={t: ts.isoformat() for t, ts in alert_times.items()},
            saved_at=saved_at,
        )


@dataclass
class RestoredState:
    """Result of decoding a snapshot, with the count of skipped entries."""
    recent: List[ErrorIncident] = field(default_factory=list)
    history: Dict[str, List[ErrorIncident]] = field(default_factory=dict)
    alert_times: Dict[str, datetime] = field(default_factory=dict)
    skipped_entries: int = 0


def _decode_errors(entries: List[Any]) -> Tuple[List[ErrorIncident], int]:
    decoded: List[ErrorIncident] = []
    skipped = 0
    for entry in entries:
        try:
            decoded.append(ErrorIncident.from_dict(entry))
        except (KeyError, TypeError, ValueError, AttributeError):
            skipped += 1
    return decoded, skipped


def decode_snapshot(snapshot: ErrorSnapshotDTO) -> RestoredState:
    """
    Decode every entry independently, skipping malformed ones and history
    entries filed under a type other than their own.

    Snapshots without ``error_history`` rebuild it from the recent list.
    """
    recent, skipped = _decode_errors(snapshot.recent_errors)

    history: Dict[str, List[ErrorIncident]] = {}
    if snapshot.error_history:
        for error_type, entries in snapshot.error_history.items():
            records, bad = _decode_errors(entries)
            matching = [r for r in records if r.error_type == error_type]
            skipped += bad + len(records) - len(matching)
            records = matching
            if records:
                history[error_type] = records
    else:
        for error in recent:
            history.setdefault(error.error_type, []).append(error)

    alert_times: Dict[str, datetime] = {}
    for error_type, value in snapshot.last_alert_times.items():
        try:
            parsed = datetime.fromisoformat(value)
        except (TypeError, ValueError):
            skipped += 1
            continue
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        alert_times[error_type] = parsed

    return RestoredState(
        recent=recent,
        history=history,
        alert_times=alert_times,
        skipped_entries=skipped,
    )
