import asyncio
import logging
from contextlib import asynccontextmanager, suppress

from fastapi import Depends, FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from stock_opname.api.endpoints import realtime
from stock_opname.api.router import api_router
from stock_opname.core.config import get_settings
from stock_opname.core.database import engine, get_db
from stock_opname.core.redis import connect_redis
from stock_opname.models import stock  # noqa: F401  (registers the table)
from stock_opname.models.base import Base
from stock_opname.notifications.broadcast import RedisRelay, manager, set_relay
from stock_opname.services import stock_service

settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


def init_database() -> bool:
    """
    Create the stocks table if missing. A storage outage at boot is logged
    and the process keeps running so /health stays reachable; stock
    endpoints answer 500 until the database comes back.
    """
    try:
        Base.metadata.create_all(bind=engine)
    except SQLAlchemyError:
        logger.exception("Database unavailable at startup. Serving in degraded mode.")
        return False
    return True


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_database()

    redis_client = await connect_redis()
    relay_task = None
    if redis_client is not None:
        relay = RedisRelay(redis_client, settings.redis_channel, manager)
        set_relay(relay)
        relay_task = asyncio.create_task(relay.run())

    try:
        yield
    finally:
        set_relay(None)
        if relay_task is not None:
            relay_task.cancel()
            with suppress(asyncio.CancelledError):
                await relay_task
        if redis_client is not None:
            await redis_client.aclose()


app = FastAPI(
    title="Stock Opname Realtime Backend",
    lifespan=lifespan,
)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed bodies are client errors; report them as 400 like every other one."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": jsonable_encoder(exc.errors())},
    )


@app.get("/health", tags=["health"])
def root_health(db: Session = Depends(get_db)) -> dict:
    """
    Global health check endpoint. Always 200; reports storage separately.
    """
    database = "ok" if stock_service.check_database(db) else "unavailable"
    return {"status": "ok", "database": database}


# Mount API router and the push channel
app.include_router(api_router, prefix=settings.api_prefix)
app.include_router(realtime.router)
