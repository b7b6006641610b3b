# stock_opname/api/endpoints/stocks.py
from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, HTTPException, status
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_opname.background.tasks import enqueue_task
from stock_opname.core.config import get_settings
from stock_opname.core.database import get_db
from stock_opname.notifications.broadcast import publish_bulk_update, publish_stock_update
from stock_opname.schemas.stock import (
    StockBulkResponse,
    StockRowIn,
    StockRowResponse,
    StockUpsertResponse,
)
from stock_opname.services import stock_service

router = APIRouter()
logger = logging.getLogger(__name__)


def _has_name(item: dict[str, Any]) -> bool:
    name = item.get("name")
    return isinstance(name, str) and bool(name.strip())


def _validation_detail(exc: ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(part) for part in err['loc']) or 'body'}: {err['msg']}"
        for err in exc.errors()
    )


def _parse_row(payload: Any) -> StockRowIn:
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Request body must be a JSON object.",
        )
    if not _has_name(payload):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="name is required",
        )
    try:
        return StockRowIn.model_validate(payload)
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=_validation_detail(e),
        )


def _normalize_bulk_items(body: Any) -> list[Any]:
    """
    Accept either a list of rows or a name-keyed object
    ({"<name>": {...counters}}) and return the list form.
    A name inside the value wins over the key.
    """
    if isinstance(body, list):
        return body
    if isinstance(body, dict):
        return [
            {"name": key, **(value if isinstance(value, dict) else {})}
            for key, value in body.items()
        ]
    return []


@router.get("", response_model=list[StockRowResponse], tags=["stocks"])
def list_stocks(db: Session = Depends(get_db)) -> list[StockRowResponse]:
    """
    Full snapshot of every stored row, ordered by name.
    """
    try:
        rows = stock_service.list_stocks(db)
    except SQLAlchemyError:
        logger.exception("Error querying stocks")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load stocks.",
        )

    return [StockRowResponse.model_validate(row) for row in rows]


@router.post("", response_model=StockUpsertResponse, tags=["stocks"])
@router.post("/update", response_model=StockUpsertResponse, tags=["stocks"])
def upsert_stock(
    background_tasks: BackgroundTasks,
    payload: Any = Body(None),
    db: Session = Depends(get_db),
) -> StockUpsertResponse:
    """
    Insert or overwrite one row, then broadcast the stored row to every
    connected client. The broadcast carries the server's total_fisik and
    updated_at, not the submitted values.
    """
    row_in = _parse_row(payload)

    try:
        stock = stock_service.upsert_stock(db, row_in)
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save stock.",
        )

    row = StockRowResponse.model_validate(stock)
    enqueue_task(background_tasks, publish_stock_update, row)
    return StockUpsertResponse(data=row)


@router.post("/bulk", response_model=StockBulkResponse, tags=["stocks"])
def upsert_stocks(
    background_tasks: BackgroundTasks,
    payload: Any = Body(None),
    db: Session = Depends(get_db),
) -> StockBulkResponse:
    """
    Upsert a whole table snapshot in one transaction.

    Items that are not objects or have no name are dropped. Any other
    invalid item rejects the batch before anything is written.
    """
    items = _normalize_bulk_items(payload)
    if not items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Body must be a non-empty array or object.",
        )

    rows: list[StockRowIn] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict) or not _has_name(item):
            continue
        try:
            rows.append(StockRowIn.model_validate(item))
        except ValidationError as e:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Item {index}: {_validation_detail(e)}",
            )

    try:
        count = stock_service.upsert_stocks(db, rows)
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to save stocks.",
        )

    # One count-only notice at most; clients refetch on receipt.
    if count and get_settings().broadcast_bulk_updates:
        enqueue_task(background_tasks, publish_bulk_update, count)

    return StockBulkResponse(count=count)
