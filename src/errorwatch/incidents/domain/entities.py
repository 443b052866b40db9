"""
Incident Domain Entities
=========================

A tracked incident promoted from an error, with its status lifecycle:

    open -> in_progress | escalated | resolved | closed
    in_progress / escalated -> any non-initial status
    resolved, closed: terminal
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from errorwatch.config import (
    IncidentPriority, IncidentStatus,
    VALID_PRIORITIES, VALID_INCIDENT_STATUSES,
    ACTIVE_INCIDENT_STATUSES, TERMINAL_INCIDENT_STATUSES
)
from errorwatch.core import InvalidStatusTransition
from errorwatch.tracking.domain import ErrorIncident


@dataclass
class Incident:
    """
    Incident entity derived from a triggering ErrorIncident.

    Lives in the active set while open / in_progress / escalated and in the
    archive once resolved or closed.
    """

    id: str
    title: str
    description: str
    priority: str
    status: str
    error_incident: ErrorIncident
    created_at: datetime
    updated_at: datetime
    resolved_at: Optional[datetime] = None

    def __post_init__(self):
        """Validate incident on initialization."""
        if self.priority not in VALID_PRIORITIES:
            raise ValueError(f"priority must be one of {VALID_PRIORITIES}")
        if self.status not in VALID_INCIDENT_STATUSES:
            raise ValueError(f"status must be one of {VALID_INCIDENT_STATUSES}")
        if self.updated_at < self.created_at:
            raise ValueError("updated_at cannot be before created_at")

    @classmethod
    def open_from(
        cls,
        incident_id: str,
        error_incident: ErrorIncident,
        created_at: datetime,
        description: Optional[str] = None,
        priority: str = IncidentPriority.MEDIUM
    ) -> "Incident":
        return cls(
            id=incident_id,
            title=f"Error: {error_incident.error_type}",
            description=description or error_incident.error_message,
            priority=priority,
            status=IncidentStatus.OPEN,
            error_incident=error_incident,
            created_at=created_at,
            updated_at=created_at,
        )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_INCIDENT_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_INCIDENT_STATUSES

    @property
    def is_urgent(self) -> bool:
        """High and critical incidents notify admins when opened."""
        return self.priority in (IncidentPriority.HIGH, IncidentPriority.CRITICAL)

    def is_timed_out(self, now: datetime, timeout: timedelta) -> bool:
        """Open for at least ``timeout`` without being picked up."""
        return self.status == IncidentStatus.OPEN and self.created_at <= now - timeout

    def transition_to(self, status: str, timestamp: datetime) -> None:
        """
        Move to ``status``.

        Raises:
            ValueError: for an unknown status
            InvalidStatusTransition: when the incident is already terminal
                or the target is ``open``
        """
        if status not in VALID_INCIDENT_STATUSES:
            raise ValueError(f"status must be one of {VALID_INCIDENT_STATUSES}")
        if self.is_terminal or (status == IncidentStatus.OPEN and self.status != IncidentStatus.OPEN):
            raise InvalidStatusTransition(self.id, self.status, status)

        self.status = status
        self.updated_at = timestamp
        if status in TERMINAL_INCIDENT_STATUSES:
            self.resolved_at = timestamp

    @property
    def resolution_minutes(self) -> Optional[float]:
        if self.resolved_at is None:
            return None
        return (self.resolved_at - self.created_at).total_seconds() / 60

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for dashboards."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "priority": self.priority,
            "status": self.status,
            "error_incident_id": self.error_incident.id,
            "error_type": self.error_incident.error_type,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }
