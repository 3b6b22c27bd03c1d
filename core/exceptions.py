"""
Core Module - Exceptions.

============================================================
RESPONSIBILITY
============================================================
Defines all custom exceptions for the refresh pipeline.

- Provides clear exception hierarchy
- Separates upstream, normalization and persistence failures
- Carries structured context for the exception sink
- Marks the single process-fatal failure (scheduler registration)

============================================================
EXCEPTION HIERARCHY
============================================================
RefreshError (base)
├── ConfigurationError
├── SchedulerRegistrationError
├── UpstreamError
│   ├── TransportError
│   └── UpstreamStatusError
├── NormalizationError
│   ├── DecodeError
│   └── FieldParseError
└── PersistenceError

============================================================
"""

from enum import Enum
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# ============================================================
# SEVERITY LEVELS
# ============================================================

class Severity(Enum):
    """Exception severity levels for reporting."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


# ============================================================
# BASE EXCEPTION
# ============================================================

class RefreshError(Exception):
    """
    Base exception for all refresh pipeline errors.

    All exceptions carry:
    - severity: for reporting
    - context: for debugging
    - timestamp: when the error occurred
    """

    default_severity: Severity = Severity.MEDIUM

    def __init__(
        self,
        message: str,
        severity: Optional[Severity] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        super().__init__(message)

        self.message = message
        self.severity = severity or self.default_severity
        self.context = context or {}
        self.cause = cause
        self.timestamp = datetime.now(timezone.utc)

        if cause:
            self.context["cause_type"] = type(cause).__name__
            self.context["cause_message"] = str(cause)

    @property
    def is_fatal(self) -> bool:
        """Check if error should terminate the process."""
        return self.severity == Severity.CRITICAL

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "severity": self.severity.value,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
        }

    def __str__(self) -> str:
        return self.message


# ============================================================
# CONFIGURATION / LIFECYCLE
# ============================================================

class ConfigurationError(RefreshError):
    """Invalid or missing configuration."""

    default_severity = Severity.HIGH


class SchedulerRegistrationError(RefreshError):
    """
    The recurring refresh schedule could not be registered.

    This is the only pipeline failure that terminates the process.
    """

    default_severity = Severity.CRITICAL

    def __init__(
        self,
        message: str,
        schedule: str,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            context={"schedule": schedule},
            cause=cause,
        )
        self.schedule = schedule


# ============================================================
# UPSTREAM ERRORS
# ============================================================

class UpstreamError(RefreshError):
    """Base for failures of a single outbound upstream call."""

    def __init__(
        self,
        message: str,
        source: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        context = dict(context or {})
        context["source"] = source
        super().__init__(message=message, context=context, cause=cause)
        self.source = source


class TransportError(UpstreamError):
    """Network failure or timeout on an outbound call."""


class UpstreamStatusError(UpstreamError):
    """Upstream answered with a non-2xx HTTP status."""

    def __init__(
        self,
        source: str,
        status_code: int,
        body: str,
        response: Optional[Any] = None,
    ):
        if body:
            message = f"external request failed with status {status_code}: {body}"
        else:
            message = f"external request failed with status {status_code}"
        super().__init__(
            message=message,
            source=source,
            context={"status_code": status_code},
        )
        self.status_code = status_code
        self.body = body
        self.response = response

    def is_server_error(self) -> bool:
        """Check if error is server-side."""
        return 500 <= self.status_code < 600


# ============================================================
# NORMALIZATION ERRORS
# ============================================================

class NormalizationError(RefreshError):
    """Base for upstream payloads that cannot be turned into records."""

    def __init__(
        self,
        message: str,
        source: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        context = dict(context or {})
        context["source"] = source
        super().__init__(message=message, context=context, cause=cause)
        self.source = source


class DecodeError(NormalizationError):
    """Payload does not match the expected shape."""


class FieldParseError(NormalizationError):
    """A declared date or number field is malformed."""

    def __init__(
        self,
        message: str,
        source: str,
        field_name: str,
        raw_value: Any,
        cause: Optional[Exception] = None,
    ):
        super().__init__(
            message=message,
            source=source,
            context={"field": field_name, "raw_value": str(raw_value)},
            cause=cause,
        )
        self.field_name = field_name
        self.raw_value = raw_value


# ============================================================
# PERSISTENCE ERRORS
# ============================================================

class PersistenceError(RefreshError):
    """Storage-layer failure (connection or constraint)."""

    default_severity = Severity.HIGH

    def __init__(
        self,
        message: str,
        operation: str,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
    ):
        context = dict(context or {})
        context["operation"] = operation
        super().__init__(message=message, context=context, cause=cause)
        self.operation = operation


# ============================================================
# EXPORTS
# ============================================================

__all__ = [
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
