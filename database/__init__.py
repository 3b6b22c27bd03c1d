"""
Database Package Initialization.

============================================================
STOCK FUNDAMENTALS PERSISTENCE LAYER
============================================================

Real database persistence for the refresh service. All writes
go to actual tables with explicit transaction management.

REQUIRED:
- Every write is an idempotent upsert on its natural key
- Every write is logged with structured format
- Every failure raises PersistenceError
- All transactions are explicit with commit/rollback

============================================================
"""

# Core engine and session management
from .engine import (
    # Declarative base
    Base,

    # Engine creation
    DEFAULT_DATABASE_URL,
    get_database_url,
    create_database_engine,
    get_engine,
    dispose_engine,

    # Session management
    create_session_factory,
    get_session_factory,
    transaction_scope,

    # Database initialization
    verify_database_connection,
    create_all_tables,
    initialize_database,
)

# ORM Models
from .models import (
    StockInformation,
    StockEarningQuarterlyHistory,
    StockOverviewMetrics,
)

# Repository
from .repository import StockRepository


# =============================================================
# ALL EXPORTS
# =============================================================

__all__ = [
    # Engine
    "Base",
    "DEFAULT_DATABASE_URL",
    "get_database_url",
    "create_database_engine",
    "get_engine",
    "dispose_engine",
    "create_session_factory",
    "get_session_factory",
    "transaction_scope",
    "verify_database_connection",
    "create_all_tables",
    "initialize_database",

    # Models
    "StockInformation",
    "StockEarningQuarterlyHistory",
    "StockOverviewMetrics",

    # Repository
    "StockRepository",
]
