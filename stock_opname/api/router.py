# stock_opname/api/router.py
from fastapi import APIRouter

from stock_opname.api.endpoints import stocks

api_router = APIRouter()

api_router.include_router(stocks.router, prefix="/stocks", tags=["stocks"])
