"""
Monitoring Package.

============================================================
PURPOSE
============================================================
Strictly observational error reporting for the refresh service.

PRINCIPLES:
1. READ-ONLY - Never changes pipeline flow
2. RESILIENT - A failing sink never breaks a run

============================================================
"""

from .exception_sink import (
    CapturedException,
    ExceptionSink,
    LoggingExceptionSink,
    InMemoryExceptionSink,
)


__all__ = [
    "CapturedException",
    "ExceptionSink",
    "LoggingExceptionSink",
    "InMemoryExceptionSink",
]
