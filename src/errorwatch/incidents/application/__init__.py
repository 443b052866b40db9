"""
Incident Application Layer
==========================

Contains IncidentManagementService, which drives the incident state machine
and sends creation / escalation notifications.
"""

from errorwatch.incidents.application.services import IncidentManagementService

__all__ = ["IncidentManagementService"]
