from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from stock_opname.core.config import get_settings

settings = get_settings()

# Backends with an INSERT ... ON CONFLICT upsert.
SUPPORTED_DIALECTS = ("postgresql", "sqlite")


def build_engine(database_url: str) -> Engine:
    """
    Create the SQLAlchemy engine for the configured URL.

    SQLite connections are shared across FastAPI's threadpool, and an
    in-memory database must stay on a single connection or every session
    would see an empty schema.
    """
    url = str(database_url)
    backend = make_url(url).get_backend_name()
    if backend not in SUPPORTED_DIALECTS:
        raise ValueError(
            f"Unsupported database backend {backend!r}; use one of {', '.join(SUPPORTED_DIALECTS)}"
        )

    if backend != "sqlite":
        return create_engine(url, future=True, pool_pre_ping=True)

    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        kwargs["poolclass"] = StaticPool
    return create_engine(url, future=True, **kwargs)


engine = build_engine(settings.database_url)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    future=True,
)


def get_db() -> Generator[Session, None, None]:
    """
    FastAPI dependency that yields a DB session.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
