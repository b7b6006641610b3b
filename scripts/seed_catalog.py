#!/usr/bin/env python3
# scripts/seed_catalog.py
"""
Seed the stocks table from the reference catalog.

Creates a zeroed row for every catalog package the store does not know yet,
so List returns the full catalog from the first page load. Existing counts
are left alone unless --reset is given, which zeroes every catalog row
(start of a new stock-taking round).

Run:
  python -m scripts.seed_catalog data.xml
  python -m scripts.seed_catalog data.xml --reset
"""
from __future__ import annotations

import argparse
import logging
import sys

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_opname.client.catalog import CatalogEntry, CatalogError, load_catalog
from stock_opname.core.database import SessionLocal, engine
from stock_opname.models.base import Base
from stock_opname.schemas.stock import StockRowIn
from stock_opname.services.stock_service import get_stock, upsert_stocks

logger = logging.getLogger("seed_catalog")


def seed(db: Session, entries: list[CatalogEntry], *, reset: bool = False) -> int:
    rows = [
        StockRowIn(
            name=entry.name,
            provider=entry.provider,
            validity=entry.validity,
            quota=entry.quota,
        )
        for entry in entries
        if reset or get_stock(db, entry.name) is None
    ]
    return upsert_stocks(db, rows)


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Seed stock rows from a catalog XML")
    parser.add_argument("catalog", help="Path to the catalog XML (e.g. data.xml)")
    parser.add_argument("--reset", action="store_true", help="Zero every catalog row, not just new ones")
    args = parser.parse_args(argv)

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(message)s")

    try:
        entries = load_catalog(args.catalog)
    except (OSError, CatalogError) as e:
        logger.error("Cannot read catalog: %s", e)
        return 1

    try:
        Base.metadata.create_all(bind=engine)
        with SessionLocal() as db:
            count = seed(db, entries, reset=args.reset)
    except SQLAlchemyError:
        logger.exception("Seeding failed; nothing was written.")
        return 1

    logger.info("Seeded %d row(s) from %d catalog package(s).", count, len(entries))
    return 0


if __name__ == "__main__":
    sys.exit(main())
