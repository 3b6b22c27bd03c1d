"""
Core Module Package.

This package contains the core infrastructure components
that all other modules depend on.

Components:
- clock: Unified time abstraction (cached, process-wide)
- exceptions: Custom exception hierarchy
"""

from .clock import ClockProtocol, SystemClock, CachedClock, MockClock
from .exceptions import (
    Severity,
    RefreshError,
    ConfigurationError,
    SchedulerRegistrationError,
    UpstreamError,
    TransportError,
    UpstreamStatusError,
    NormalizationError,
    DecodeError,
    FieldParseError,
    PersistenceError,
)


__all__ = [
    "ClockProtocol",
    "SystemClock",
    "CachedClock",
    "MockClock",
    "Severity",
    "RefreshError",
    "ConfigurationError",
    "SchedulerRegistrationError",
    "UpstreamError",
    "TransportError",
    "UpstreamStatusError",
    "NormalizationError",
    "DecodeError",
    "FieldParseError",
    "PersistenceError",
]
