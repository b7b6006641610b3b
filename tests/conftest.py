"""
Shared fixtures.

Tests run against a single in-memory SQLite database (StaticPool), so the
environment must be set before anything imports stock_opname settings.
"""

import os

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.pop("REDIS_URL", None)
os.environ["BROADCAST_BULK_UPDATES"] = "false"

import pytest
from fastapi.testclient import TestClient

from stock_opname.core.database import SessionLocal, engine
from stock_opname.main import app
from stock_opname.models.base import Base


@pytest.fixture(autouse=True)
def fresh_tables():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    app.dependency_overrides.clear()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def captured_events(monkeypatch):
    """Replace local fan-out with a recorder of decoded frames."""
    import json

    from stock_opname.notifications import broadcast

    frames: list[dict] = []

    async def record(message: str) -> int:
        frames.append(json.loads(message))
        return 1

    monkeypatch.setattr(broadcast.manager, "fan_out", record)
    return frames
