"""
Core Exceptions
================

Custom exceptions for the error tracking engine.

Steady-state operations catch and log failures internally; these exceptions
surface only where a caller must react (bad configuration, failed startup).
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all engine errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""


class PersistenceException(ApplicationException):
    """Raised by persistence adapters when the backing store is unusable."""


class InitializationException(ApplicationException):
    """Raised when the engine cannot start (e.g. snapshot store unavailable)."""


class InvalidStatusTransition(DomainException):
    """Exception when an incident is moved out of a terminal status."""

    def __init__(self, incident_id: str, current: str, requested: str):
        self.incident_id = incident_id
        self.current = current
        self.requested = requested
        super().__init__(
            f"Incident {incident_id} cannot move from {current} to {requested}",
            {"incident_id": incident_id, "current": current, "requested": requested}
        )

