"""
Database - Stock Repository.

============================================================
PURPOSE
============================================================
Persistence gateway for the refresh pipeline.

- Selects instruments due for refresh (staleness predicate)
- Upserts quarterly history rows by (symbol, period_code)
- Upserts the overview row by symbol
- Refreshes the freshness marker in the same transaction

============================================================
CONSISTENCY
============================================================
Each write call owns one transaction. Any row failure rolls
back the whole call and raises PersistenceError. No
transaction spans more than one instrument.

============================================================
"""

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, List, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.clock import ClockProtocol, SystemClock
from core.exceptions import PersistenceError
from data_ingestion.types import (
    OverviewMetricsRecord,
    QuarterlyHistoryRecord,
    TrackedInstrument,
)
from database.engine import get_session_factory, transaction_scope
from database.models import (
    StockEarningQuarterlyHistory,
    StockInformation,
    StockOverviewMetrics,
)


QUARTERLY_KEY = ("symbol", "period_code")
OVERVIEW_KEY = ("symbol",)


def _insert_for(session: Session, model):
    """Dialect-specific INSERT supporting ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert(model)
    if dialect == "sqlite":
        return sqlite_insert(model)
    raise PersistenceError(
        message=f"Upsert is not supported on dialect {dialect!r}",
        operation="upsert",
    )


def _upsert_statement(session: Session, model, rows: List[Dict[str, Any]], key: Sequence[str], now):
    stmt = _insert_for(session, model).values(rows)
    update_columns = {
        name: getattr(stmt.excluded, name)
        for name in rows[0].keys()
        if name not in key
    }
    update_columns["updated_at"] = now
    return stmt.on_conflict_do_update(index_elements=list(key), set_=update_columns)


class StockRepository:
    """
    Repository for tracked instruments and their refreshed metrics.

    Synchronous; the refresh service calls it through asyncio.to_thread.
    """

    def __init__(
        self,
        session_factory: Optional[Callable[[], Session]] = None,
        clock: Optional[ClockProtocol] = None,
    ) -> None:
        """
        Initialize the repository.

        Args:
            session_factory: Session factory (defaults to the process factory)
            clock: Clock used for freshness markers
        """
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._logger = logging.getLogger("repository.stock")

    def _factory(self) -> Callable[[], Session]:
        if self._session_factory is None:
            self._session_factory = get_session_factory()
        return self._session_factory

    # =========================================================
    # READ
    # =========================================================

    def select_stale_instruments(self, staleness: timedelta) -> List[TrackedInstrument]:
        """
        Instruments with a credential that were not refreshed recently.

        Args:
            staleness: Instruments refreshed within this window are skipped

        Returns:
            Instruments ordered by ticker
        """
        cutoff = self._clock.now() - staleness
        query = (
            select(StockInformation.ticker, StockInformation.api_key)
            .where(StockInformation.api_key.is_not(None))
            .where(StockInformation.api_key != "")
            .where(or_(
                StockInformation.last_refreshed_at.is_(None),
                StockInformation.last_refreshed_at < cutoff,
            ))
            .order_by(StockInformation.ticker)
        )

        session = self._factory()()
        try:
            rows = session.execute(query).all()
        except SQLAlchemyError as e:
            self._logger.error(f"Database error in select_stale_instruments: {e}")
            raise PersistenceError(
                message=f"Failed to select stale instruments: {e}",
                operation="select_stale_instruments",
                cause=e,
            ) from e
        finally:
            session.close()

        instruments = [TrackedInstrument(ticker=row.ticker, api_key=row.api_key) for row in rows]
        self._logger.debug(f"Selected {len(instruments)} stale instrument(s) | cutoff={cutoff.isoformat()}")
        return instruments

    # =========================================================
    # WRITE
    # =========================================================

    def _touch_freshness(self, session: Session, ticker: str, now, operation: str) -> None:
        """Refresh the freshness marker of one tracked instrument. Zero rows matched is a failure."""
        result = session.execute(
            update(StockInformation)
            .where(StockInformation.ticker == ticker)
            .values(last_refreshed_at=now, updated_at=now)
        )
        if result.rowcount == 0:
            raise PersistenceError(
                message=f"No tracked instrument {ticker!r} to mark as refreshed",
                operation=operation,
            )

    def upsert_quarterly_history(
        self,
        records: Sequence[QuarterlyHistoryRecord],
        ticker: Optional[str] = None,
    ) -> int:
        """
        Upsert quarterly history rows and refresh the freshness marker.

        All-or-nothing: any failure rolls back every row of the call.

        Args:
            records: Records to upsert (empty is a no-op)
            ticker: Tracked ticker whose freshness marker is refreshed
                (defaults to the symbol of the first record)

        Returns:
            Number of rows written

        Raises:
            PersistenceError: If the transaction fails or the ticker is not tracked
        """
        if not records:
            return 0

        now = self._clock.now()
        rows = [record.to_row() for record in records]
        operation = "upsert_quarterly_history"

        with transaction_scope(self._factory(), operation) as session:
            self._touch_freshness(session, ticker or records[0].symbol, now, operation)
            session.execute(
                _upsert_statement(session, StockEarningQuarterlyHistory, rows, QUARTERLY_KEY, now)
            )

        self._logger.info(
            f"Persisted {len(rows)} quarterly history row(s) | symbol={records[0].symbol}"
        )
        return len(rows)

    def upsert_overview_metrics(
        self,
        record: Optional[OverviewMetricsRecord],
        ticker: Optional[str] = None,
    ) -> bool:
        """
        Upsert the overview row and refresh the freshness marker.

        Args:
            record: Record to upsert (None is a no-op)
            ticker: Tracked ticker whose freshness marker is refreshed
                (defaults to the record symbol)

        Returns:
            True if a row was written

        Raises:
            PersistenceError: If the transaction fails, symbol is empty
                or the ticker is not tracked
        """
        if record is None:
            return False

        if not record.symbol:
            raise PersistenceError(
                message="Overview metrics record has no symbol",
                operation="upsert_overview_metrics",
            )

        now = self._clock.now()
        operation = "upsert_overview_metrics"

        with transaction_scope(self._factory(), operation) as session:
            session.execute(
                _upsert_statement(session, StockOverviewMetrics, [record.to_row()], OVERVIEW_KEY, now)
            )
            self._touch_freshness(session, ticker or record.symbol, now, operation)

        self._logger.info(f"Persisted overview metrics | symbol={record.symbol}")
        return True


__all__ = [
    "StockRepository",
]
