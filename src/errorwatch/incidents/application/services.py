"""
Incident Application Services
==============================

Coordinates the incident state machine with admin notifications.
"""

from collections import deque
from datetime import timedelta
from typing import Any, Deque, Dict, List, Optional

from errorwatch.config import (
    IncidentPriority, IncidentStatus, NotificationType, Settings,
    VALID_INCIDENT_STATUSES, VALID_PRIORITIES, get_settings
)
from errorwatch.core import InvalidStatusTransition, ValidationException
from errorwatch.incidents.domain import Incident
from errorwatch.shared.infrastructure.ids import IdGenerator
from errorwatch.shared.infrastructure.logging import get_logger
from errorwatch.tracking.application import INotificationSink, utc_now
from errorwatch.tracking.domain import ErrorAlert, ErrorIncident

logger = get_logger(__name__)


class IncidentManagementService:
    """
    Service for incident lifecycle tracking and timeout escalation.

    An incident is held in exactly one place: the active map while open,
    in progress or escalated, the capped archive once resolved or closed.
    """

    def __init__(
        self,
        notification_sink: Optional[INotificationSink] = None,
        settings: Optional[Settings] = None,
        clock=None
    ):
        self._settings = settings or get_settings()
        self._notification_sink = notification_sink
        self._clock = clock or utc_now
        self._ids = IdGenerator(prefix="INC-")

        self._active: Dict[str, Incident] = {}
        self._history: Deque[Incident] = deque(maxlen=self._settings.max_incident_history)
        self.incident_timeout = timedelta(minutes=self._settings.incident_timeout_minutes)

    async def create_incident(
        self,
        error_incident: ErrorIncident,
        description: Optional[str] = None,
        priority: str = IncidentPriority.MEDIUM
    ) -> Incident:
        """
        Open an incident for ``error_incident``.

        High and critical incidents notify admins immediately.

        Raises:
            ValidationException: for an unknown priority
        """
        if priority not in VALID_PRIORITIES:
            raise ValidationException(
                f"Unknown incident priority '{priority}'",
                {"allowed": VALID_PRIORITIES}
            )

        now = self._clock()
        incident = Incident.open_from(
            incident_id=self._ids.next_id(now),
            error_incident=error_incident,
            created_at=now,
            description=description,
            priority=priority,
        )
        self._active[incident.id] = incident

        if incident.is_urgent:
            await self._notify(
                title=f"New {incident.priority.upper()} Incident",
                body=f"{incident.title}: {incident.description}",
                data={
                    "type": NotificationType.INCIDENT_CREATED,
                    "incident_id": incident.id,
                    "priority": incident.priority,
                    "error_type": error_incident.error_type,
                },
            )

        logger.info(
            f"Incident created: {incident.id}",
            extra={"incident_id": incident.id, "priority": priority, "error_type": error_incident.error_type}
        )
        return incident

    async def create_from_alert(self, alert: ErrorAlert, error_incident: ErrorIncident) -> Incident:
        """
        Alert handler: open an incident for the triggering error.

        While an incident for the same error type is still active, that
        incident is returned instead of opening a duplicate.
        """
        for incident in self._active.values():
            if incident.error_incident.error_type == alert.error_type:
                logger.info(
                    "Active incident already covers alert",
                    extra={"incident_id": incident.id, "error_type": alert.error_type}
                )
                return incident

        return await self.create_incident(
            error_incident,
            description=alert.message,
            priority=alert.severity,
        )

    async def update_incident_status(self, incident_id: str, status: str) -> Optional[Incident]:
        """
        Move an active incident to ``status``.

        Unknown (or already archived) ids are a logged no-op, so resolving
        twice leaves the same end state as resolving once.

        Returns:
            The updated incident, or None when nothing changed

        Raises:
            ValidationException: for an unknown status value
        """
        if status not in VALID_INCIDENT_STATUSES:
            raise ValidationException(
                f"Unknown incident status '{status}'",
                {"allowed": VALID_INCIDENT_STATUSES}
            )

        incident = self._active.get(incident_id)
        if incident is None:
            logger.warning(
                "Status update for unknown or archived incident ignored",
                extra={"incident_id": incident_id, "status": status}
            )
            return None

        try:
            incident.transition_to(status, self._clock())
        except InvalidStatusTransition as e:
            logger.warning(e.message, extra=e.details)
            return None

        if incident.is_terminal:
            del self._active[incident_id]
            self._history.append(incident)

        logger.info(
            f"Incident {incident_id} status updated to {status}",
            extra={"incident_id": incident_id, "status": status}
        )
        return incident

    async def check_incident_timeouts(self) -> List[Incident]:
        """
        Escalate every open incident older than the timeout.

        Returns:
            Incidents escalated by this sweep
        """
        now = self._clock()
        timed_out = [
            incident for incident in self._active.values()
            if incident.is_timed_out(now, self.incident_timeout)
        ]

        escalated: List[Incident] = []
        for incident in timed_out:
            updated = await self.update_incident_status(incident.id, IncidentStatus.ESCALATED)
            if updated is None:
                continue
            escalated.append(updated)

            await self._notify(
                title="Incident Escalated",
                body=f"Incident {incident.id} has been escalated due to timeout",
                data={
                    "type": NotificationType.INCIDENT_ESCALATED,
                    "incident_id": incident.id,
                    "timeout_hours": str(int(self.incident_timeout.total_seconds() // 3600)),
                },
            )

        if escalated:
            logger.warning(
                "Incidents escalated after timeout",
                extra={"incident_ids": [i.id for i in escalated]}
            )
        return escalated

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        """Look up an incident in the active set, then in the archive."""
        incident = self._active.get(incident_id)
        if incident is not None:
            return incident
        for archived in self._history:
            if archived.id == incident_id:
                return archived
        return None

    def get_active_incidents(self) -> List[Incident]:
        """Active incidents, newest first."""
        return sorted(self._active.values(), key=lambda i: (i.created_at, i.id), reverse=True)

    def get_incident_history(self, limit: int = 50) -> List[Incident]:
        """Archived incidents, newest first."""
        ordered = sorted(self._history, key=lambda i: (i.created_at, i.id), reverse=True)
        return ordered[:max(limit, 0)]

    def get_incident_statistics(self) -> Dict[str, Any]:
        now = self._clock()
        last_24h = now - timedelta(hours=24)
        last_week = now - timedelta(days=7)

        all_incidents = [*self._active.values(), *self._history]
        recent_24h = [i for i in all_incidents if i.created_at >= last_24h]
        recent_week = [i for i in all_incidents if i.created_at >= last_week]

        return {
            "active_incidents": len(self._active),
            "total_incidents": len(all_incidents),
            "incidents_24h": len(recent_24h),
            "incidents_week": len(recent_week),
            "priority_breakdown": _breakdown(i.priority for i in recent_24h),
            "status_breakdown": _breakdown(i.status for i in all_incidents),
            "avg_resolution_time": self._average_resolution_minutes(),
            "critical_incidents_24h": sum(
                1 for i in recent_24h if i.priority == IncidentPriority.CRITICAL
            ),
        }

    def _average_resolution_minutes(self) -> float:
        durations = [i.resolution_minutes for i in self._history if i.resolution_minutes is not None]
        if not durations:
            return 0.0
        return sum(durations) / len(durations)

    async def _notify(self, title: str, body: str, data: Dict[str, str]) -> None:
        if self._notification_sink is None:
            return
        try:
            await self._notification_sink.notify_admins(title, body, data)
        except Exception:
            logger.exception(
                "Failed to send incident notification",
                extra={"incident_id": data.get("incident_id")}
            )


def _breakdown(values) -> Dict[str, int]:
    counts: Dict[str, int] = {}
    for value in values:
        counts[value] = counts.get(value, 0) + 1
    return counts
