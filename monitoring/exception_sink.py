"""
Monitoring - Exception Sink.

============================================================
RESPONSIBILITY
============================================================
Receives every handled pipeline failure.

- (error, tags, context) tuples from the refresh pipeline
- Logging-backed default sink (one line per failure)
- In-memory sink for tests and diagnostics

============================================================
DESIGN PRINCIPLES
============================================================
- Strictly observational: a sink never changes pipeline flow
- A sink never raises into the pipeline
- Tags are low-cardinality (module, job, action)
- Context carries the instrument and counts

============================================================
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional

from core.exceptions import RefreshError


@dataclass(frozen=True)
class CapturedException:
    """One captured failure."""
    error: BaseException
    tags: Dict[str, str]
    context: Dict[str, Any]
    level: int = logging.ERROR
    message: str = ""
    captured_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def action(self) -> str:
        return self.tags.get("action", "unknown")


class ExceptionSink(ABC):
    """
    Interface of the monitoring collaborator.

    The sink owns the log line of a handled failure; callers report
    through capture() instead of logging the failure themselves.
    """

    def capture(
        self,
        error: BaseException,
        tags: Optional[Mapping[str, str]] = None,
        context: Optional[Mapping[str, Any]] = None,
        level: int = logging.ERROR,
        message: str = "",
    ) -> None:
        """
        Report a handled failure. Never raises.

        Args:
            error: The failure
            tags: Low-cardinality labels (module, job, action)
            context: Free-form details (ticker, counts)
            level: Logging level of the failure
            message: Human readable summary
        """
        try:
            self._capture(CapturedException(
                error=error,
                tags=dict(tags or {}),
                context=dict(context or {}),
                level=level,
                message=message,
            ))
        except Exception:
            logging.getLogger("monitoring.exception_sink").exception(
                "Exception sink failed while capturing an error"
            )

    @abstractmethod
    def _capture(self, captured: CapturedException) -> None:
        pass


class LoggingExceptionSink(ExceptionSink):
    """Writes each captured failure as one structured log entry at its level."""

    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self._logger = logger or logging.getLogger("monitoring.exception_sink")

    def _capture(self, captured: CapturedException) -> None:
        error = captured.error
        details: Dict[str, Any] = {
            "error_type": type(error).__name__,
            "tags": captured.tags,
            "context": captured.context,
        }
        if isinstance(error, RefreshError):
            details["severity"] = error.severity.value
            details["error_context"] = error.context

        job = captured.tags.get("job", "-")
        ticker = captured.context.get("ticker", "-")
        self._logger.log(
            captured.level,
            f"{captured.message or 'Captured exception'} | job={job} | "
            f"action={captured.action} | ticker={ticker} | error={error}",
            extra={"context": details},
        )


class InMemoryExceptionSink(ExceptionSink):
    """Keeps captured failures in a list."""

    def __init__(self) -> None:
        self.captured: List[CapturedException] = []

    def _capture(self, captured: CapturedException) -> None:
        self.captured.append(captured)

    def actions(self) -> List[str]:
        """Captured actions in order."""
        return [item.tags.get("action", "") for item in self.captured]

    def clear(self) -> None:
        self.captured.clear()


__all__ = [
    "CapturedException",
    "ExceptionSink",
    "LoggingExceptionSink",
    "InMemoryExceptionSink",
]
