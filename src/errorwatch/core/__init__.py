"""
Core Module
============

Framework-agnostic building blocks shared by every bounded context.
"""

from errorwatch.core.exceptions import (
    ApplicationException,
    DomainException,
    ValidationException,
    ConfigurationException,
    PersistenceException,
    InitializationException,
    InvalidStatusTransition,
)

__all__ = [
    "ApplicationException",
    "DomainException",
    "ValidationException",
    "ConfigurationException",
    "PersistenceException",
    "InitializationException",
    "InvalidStatusTransition",
]
