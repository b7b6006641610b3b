# stock_opname/services/stock_service.py
"""
Row store for stock counts.

All writes are keyed upserts (INSERT ... ON CONFLICT (name) DO UPDATE), so a
single row write is one atomic statement and concurrent writes to the same
name serialize inside the database. Last write wins; there is no version
check.

Storage problems are raised as SQLAlchemyError for the caller to map to a
5xx. Nothing here knows about HTTP.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable, Iterable

from sqlalchemy import select, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_opname.models.stock import UPSERT_COLUMNS, Stock
from stock_opname.schemas.stock import StockRowIn
from stock_opname.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)

_INSERT_BY_DIALECT: dict[str, Callable[..., Any]] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _insert_for(db: Session) -> Callable[..., Any]:
    # build_engine only accepts dialects listed here
    return _INSERT_BY_DIALECT[db.get_bind().dialect.name]


def _row_values(row: StockRowIn, updated_at: datetime) -> dict[str, Any]:
    return {
        "name": row.name,
        "provider": row.provider,
        "validity": row.validity,
        "quota": row.quota,
        "atas": row.atas,
        "bawah": row.bawah,
        "belakang": row.belakang,
        "komputer": row.komputer,
        "total_fisik": row.total_fisik,
        "updated_at": updated_at,
    }


def _write_row(db: Session, values: dict[str, Any]) -> None:
    """Execute one upsert inside the session's current transaction."""
    insert = _insert_for(db)
    stmt = insert(Stock.__table__).values(**values)
    stmt = stmt.on_conflict_do_update(
        index_elements=["name"],
        set_={column: stmt.excluded[column] for column in UPSERT_COLUMNS},
    )
    db.execute(stmt)


def _reload_stock(db: Session, name: str) -> Stock:
    """
    Re-query after commit so callers get the row exactly as stored,
    not whatever an earlier load left in the identity map.
    """
    stmt = (
        select(Stock)
        .where(Stock.name == name)
        .execution_options(populate_existing=True)
    )
    return db.execute(stmt).scalar_one()


def list_stocks(db: Session) -> list[Stock]:
    return list(db.execute(select(Stock).order_by(Stock.name.asc())).scalars())


def get_stock(db: Session, name: str) -> Stock | None:
    return db.get(Stock, name)


def upsert_stock(db: Session, row: StockRowIn) -> Stock:
    """
    Insert the row if its name is new, else overwrite every non-key field.
    total_fisik is recomputed and updated_at stamped here.
    """
    try:
        _write_row(db, _row_values(row, utc_now()))
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Stock upsert failed name=%s", row.name)
        raise

    return _reload_stock(db, row.name)


def upsert_stocks(db: Session, rows: Iterable[StockRowIn]) -> int:
    """
    Upsert a batch in one transaction. Rows without a usable name are
    skipped, and when a name repeats only its last row is written. On any
    write failure nothing from the batch is kept.

    Returns the number of distinct rows written.
    """
    latest: dict[str, StockRowIn] = {}
    for row in rows:
        if not row.name or not row.name.strip():
            continue
        latest[row.name] = row

    stamped_at = utc_now()
    count = 0
    try:
        for row in latest.values():
            _write_row(db, _row_values(row, stamped_at))
            count += 1
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Bulk stock upsert rolled back after %d row(s)", count)
        raise

    return count


def check_database(db: Session) -> bool:
    """Cheap connectivity probe for health checks."""
    try:
        db.execute(text("SELECT 1"))
        return True
    except SQLAlchemyError:
        logger.warning("Database health probe failed", exc_info=True)
        return False
