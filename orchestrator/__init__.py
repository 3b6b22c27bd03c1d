"""
Orchestrator Package - System Coordination Layer.

============================================================
PACKAGE OVERVIEW
============================================================
The SINGLE ENTRYPOINT that controls startup, shutdown and
execution flow of the refresh service.

============================================================
CORE PRINCIPLES
============================================================
1. The orchestrator has NO business logic
2. It ONLY coordinates execution
3. A failed cron registration is fatal

============================================================
ARCHITECTURE
============================================================

    +-----------------------------------------------------+
    |                 RefreshApplication                  |
    |-----------------------------------------------------|
    |  CachedClock       |  process-wide time source     |
    |  UpstreamClient    |  pooled HTTP sessions         |
    |  RefreshScheduler  |  cron trigger, drain on stop  |
    |  CLI               |  command-line interface       |
    +-----------------------------------------------------+
                              |
                              v
                    StockRefreshService.run()

============================================================
"""

from .core import JsonFormatter, setup_logging, RefreshApplication
from .scheduler import JOB_ID, RefreshScheduler


__all__ = [
    "JsonFormatter",
    "setup_logging",
    "RefreshApplication",
    "JOB_ID",
    "RefreshScheduler",
]
