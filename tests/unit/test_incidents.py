"""
Unit tests for the incident state machine and IncidentManagementService.
"""

from datetime import timedelta

import pytest

from errorwatch.config import (
    ErrorSeverity, IncidentPriority, IncidentStatus, NotificationType
)
from errorwatch.core import ValidationException
from errorwatch.incidents.application import IncidentManagementService
from errorwatch.tracking.domain import ErrorAlert


@pytest.fixture
def incidents(notifications, settings, clock) -> IncidentManagementService:
    return IncidentManagementService(notifications, settings=settings, clock=clock)


class TestCreation:

    @pytest.mark.asyncio
    async def test_create_opens_incident(self, incidents, error_factory, notifications):
        error = error_factory(error_type="auth_error")

        incident = await incidents.create_incident(error)

        assert incident.status == IncidentStatus.OPEN
        assert incident.title == "Error: auth_error"
        assert incident.description == error.error_message
        assert incidents.get_active_incidents() == [incident]
        assert notifications.sent == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("priority", [IncidentPriority.HIGH, IncidentPriority.CRITICAL])
    async def test_urgent_priority_notifies(self, incidents, error_factory, notifications, priority):
        incident = await incidents.create_incident(error_factory(), priority=priority)

        created = notifications.of_type(NotificationType.INCIDENT_CREATED)
        assert len(created) == 1
        assert created[0][0] == f"New {priority.upper()} Incident"
        assert created[0][2]["incident_id"] == incident.id

    @pytest.mark.asyncio
    async def test_unknown_priority_is_rejected(self, incidents, error_factory):
        with pytest.raises(ValidationException):
            await incidents.create_incident(error_factory(), priority="p0")

    @pytest.mark.asyncio
    async def test_create_from_alert_reuses_active_incident(self, incidents, error_factory, clock):
        error = error_factory()
        alert = ErrorAlert(
            error_type="network_error",
            occurrence_count=3,
            threshold=3,
            time_window=timedelta(minutes=5),
            severity=ErrorSeverity.HIGH,
            triggering_error_id=error.id,
            triggered_at=clock(),
        )

        first = await incidents.create_from_alert(alert, error)
        second = await incidents.create_from_alert(alert, error_factory())

        assert first is second
        assert first.priority == IncidentPriority.HIGH
        assert len(incidents.get_active_incidents()) == 1


class TestStatusUpdates:

    @pytest.mark.asyncio
    async def test_resolve_is_idempotent(self, incidents, error_factory, clock):
        incident = await incidents.create_incident(error_factory())
        clock.advance(minutes=30)

        resolved = await incidents.update_incident_status(incident.id, IncidentStatus.RESOLVED)
        again = await incidents.update_incident_status(incident.id, IncidentStatus.RESOLVED)

        assert resolved.resolved_at == clock()
        assert again is None
        assert incidents.get_active_incidents() == []
        assert [i.id for i in incidents.get_incident_history()] == [incident.id]
        assert incidents.get_incident(incident.id).status == IncidentStatus.RESOLVED

    @pytest.mark.asyncio
    async def test_in_progress_stays_active(self, incidents, error_factory):
        incident = await incidents.create_incident(error_factory())

        updated = await incidents.update_incident_status(incident.id, IncidentStatus.IN_PROGRESS)

        assert updated.status == IncidentStatus.IN_PROGRESS
        assert updated.is_active
        assert incidents.get_active_incidents() == [incident]
        assert incidents.get_incident_history() == []

    @pytest.mark.asyncio
    async def test_unknown_id_is_noop(self, incidents):
        assert await incidents.update_incident_status("INC-missing", IncidentStatus.CLOSED) is None

    @pytest.mark.asyncio
    async def test_unknown_status_is_rejected(self, incidents, error_factory):
        incident = await incidents.create_incident(error_factory())

        with pytest.raises(ValidationException):
            await incidents.update_incident_status(incident.id, "archived")

    @pytest.mark.asyncio
    async def test_cannot_reopen(self, incidents, error_factory):
        incident = await incidents.create_incident(error_factory())
        await incidents.update_incident_status(incident.id, IncidentStatus.IN_PROGRESS)

        assert await incidents.update_incident_status(incident.id, IncidentStatus.OPEN) is None
        assert incident.status == IncidentStatus.IN_PROGRESS


class TestTimeoutEscalation:

    @pytest.mark.asyncio
    async def test_escalates_only_after_timeout(self, incidents, error_factory, clock, notifications):
        incident = await incidents.create_incident(error_factory())

        clock.advance(minutes=119, seconds=59)
        assert await incidents.check_incident_timeouts() == []
        assert incident.status == IncidentStatus.OPEN

        clock.advance(seconds=1)
        escalated = await incidents.check_incident_timeouts()

        assert escalated == [incident]
        assert incident.status == IncidentStatus.ESCALATED
        escalations = notifications.of_type(NotificationType.INCIDENT_ESCALATED)
        assert len(escalations) == 1
        assert escalations[0][2]["timeout_hours"] == "2"

    @pytest.mark.asyncio
    async def test_sweep_is_idempotent(self, incidents, error_factory, clock):
        await incidents.create_incident(error_factory())
        clock.advance(hours=3)

        assert len(await incidents.check_incident_timeouts()) == 1
        assert await incidents.check_incident_timeouts() == []

    @pytest.mark.asyncio
    async def test_in_progress_is_never_escalated(self, incidents, error_factory, clock):
        incident = await incidents.create_incident(error_factory())
        await incidents.update_incident_status(incident.id, IncidentStatus.IN_PROGRESS)
        clock.advance(hours=5)

        assert await incidents.check_incident_timeouts() == []

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_stop_sweep(
        self, failing_notifications, settings, clock, error_factory
    ):
        incidents = IncidentManagementService(failing_notifications, settings=settings, clock=clock)
        incident = await incidents.create_incident(error_factory())
        clock.advance(hours=3)

        assert await incidents.check_incident_timeouts() == [incident]


class TestStatistics:

    @pytest.mark.asyncio
    async def test_incident_statistics(self, incidents, error_factory, clock):
        resolved = await incidents.create_incident(error_factory(), priority=IncidentPriority.CRITICAL)
        await incidents.create_incident(error_factory(error_type="auth_error"))
        clock.advance(minutes=45)
        await incidents.update_incident_status(resolved.id, IncidentStatus.RESOLVED)

        stats = incidents.get_incident_statistics()

        assert stats["active_incidents"] == 1
        assert stats["total_incidents"] == 2
        assert stats["incidents_24h"] == 2
        assert stats["priority_breakdown"] == {"critical": 1, "medium": 1}
        assert stats["status_breakdown"] == {"open": 1, "resolved": 1}
        assert stats["avg_resolution_time"] == pytest.approx(45.0)
        assert stats["critical_incidents_24h"] == 1
