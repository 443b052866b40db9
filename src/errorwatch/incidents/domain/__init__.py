"""
Incident Domain Layer
=====================

Contains the Incident entity and its status state machine.
"""

from errorwatch.incidents.domain.entities import Incident

__all__ = ["Incident"]
