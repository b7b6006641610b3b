from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

from stock_opname.core.config import get_settings
from stock_opname.core.database import get_db
from stock_opname.main import app
from stock_opname.services import stock_service


def test_list_empty_store_returns_empty_array(client):
    resp = client.get("/api/stocks")
    assert resp.status_code == 200
    assert resp.json() == []


def test_upsert_returns_persisted_row_with_server_total(client):
    resp = client.post(
        "/api/stocks",
        json={"name": "T|1GB|30hr", "atas": 1, "bawah": 2, "belakang": 3, "komputer": 4, "total_fisik": 99},
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["data"]["total_fisik"] == 6
    assert body["data"]["komputer"] == 4
    assert body["data"]["updated_at"]

    listed = client.get("/api/stocks").json()
    assert len(listed) == 1
    assert listed[0]["total_fisik"] == 6


def test_update_alias_path(client):
    resp = client.post("/api/stocks/update", json={"name": "X", "atas": "3"})
    assert resp.status_code == 200
    assert resp.json()["data"]["atas"] == 3


def test_upsert_twice_is_last_write_wins(client):
    client.post("/api/stocks", json={"name": "A", "atas": 1})
    client.post("/api/stocks", json={"name": "A", "atas": 5, "belakang": 1})

    rows = client.get("/api/stocks").json()
    assert len(rows) == 1
    assert rows[0]["atas"] == 5
    assert rows[0]["total_fisik"] == 6


def test_upsert_without_name_is_rejected(client, captured_events):
    for body in ({"atas": 1}, {"name": ""}, {"name": "   "}, {"name": 12}):
        resp = client.post("/api/stocks", json=body)
        assert resp.status_code == 400
    assert client.get("/api/stocks").json() == []
    assert captured_events == []


def test_upsert_non_object_body_is_rejected(client):
    assert client.post("/api/stocks", json=[{"name": "A"}]).status_code == 400
    assert client.post("/api/stocks").status_code == 400


def test_upsert_negative_counter_is_rejected(client):
    resp = client.post("/api/stocks", json={"name": "A", "atas": -1})
    assert resp.status_code == 400
    assert "atas" in resp.json()["detail"]


def test_malformed_json_is_a_client_error(client):
    resp = client.post(
        "/api/stocks",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )
    assert resp.status_code == 400


def test_single_upsert_broadcasts_exactly_once_with_stored_values(client, captured_events):
    client.post("/api/stocks", json={"name": "A", "atas": 2, "bawah": 2, "total_fisik": 0})

    assert len(captured_events) == 1
    event = captured_events[0]
    assert event["event"] == "stock_update"
    assert event["data"]["name"] == "A"
    assert event["data"]["total_fisik"] == 4
    assert event["data"]["updated_at"]


def test_bulk_drops_items_without_name(client):
    resp = client.post("/api/stocks/bulk", json=[{"name": "A", "atas": 1}, {"atas": 5}])
    assert resp.status_code == 200
    assert resp.json() == {"ok": True, "count": 1}

    rows = client.get("/api/stocks").json()
    assert [row["name"] for row in rows] == ["A"]


def test_bulk_counts_repeated_name_once_and_keeps_last(client):
    resp = client.post("/api/stocks/bulk", json=[{"name": "A", "atas": 1}, {"name": "A", "atas": 2}])
    assert resp.json() == {"ok": True, "count": 1}

    rows = client.get("/api/stocks").json()
    assert [(row["name"], row["atas"]) for row in rows] == [("A", 2)]


def test_bulk_accepts_name_keyed_object(client):
    resp = client.post(
        "/api/stocks/bulk",
        json={"A": {"atas": "1", "bawah": "2"}, "B": {"komputer": 3}},
    )
    assert resp.json() == {"ok": True, "count": 2}

    rows = {row["name"]: row for row in client.get("/api/stocks").json()}
    assert rows["A"]["total_fisik"] == 3
    assert rows["B"]["komputer"] == 3


def test_bulk_rejects_empty_or_scalar_body(client):
    assert client.post("/api/stocks/bulk", json=[]).status_code == 400
    assert client.post("/api/stocks/bulk", json={}).status_code == 400
    assert client.post("/api/stocks/bulk", json="rows").status_code == 400


def test_bulk_with_invalid_counter_writes_nothing(client):
    resp = client.post("/api/stocks/bulk", json=[{"name": "A"}, {"name": "B", "atas": "lots"}])
    assert resp.status_code == 400
    assert client.get("/api/stocks").json() == []


def test_bulk_is_silent_by_default(client, captured_events):
    client.post("/api/stocks/bulk", json=[{"name": "A"}, {"name": "B"}])
    assert captured_events == []


def test_bulk_sends_count_notice_when_enabled(client, captured_events, monkeypatch):
    monkeypatch.setattr(get_settings(), "broadcast_bulk_updates", True)

    client.post("/api/stocks/bulk", json=[{"name": "A"}, {"name": "B"}, {"atas": 1}])

    assert captured_events == [{"event": "stocks_bulk_update", "data": {"count": 2}}]


def test_bulk_failure_rolls_back_and_does_not_broadcast(client, captured_events, monkeypatch):
    monkeypatch.setattr(get_settings(), "broadcast_bulk_updates", True)
    real_write = stock_service._write_row
    calls = {"n": 0}

    def failing_write(session, values):
        calls["n"] += 1
        if calls["n"] == 2:
            raise OperationalError("INSERT", {}, Exception("constraint failed"))
        real_write(session, values)

    monkeypatch.setattr(stock_service, "_write_row", failing_write)

    resp = client.post("/api/stocks/bulk", json=[{"name": "A"}, {"name": "B"}])
    assert resp.status_code == 500
    assert client.get("/api/stocks").json() == []
    assert captured_events == []


def _unreachable_db():
    broken = create_engine("sqlite:////nonexistent-dir/stocks.db")
    session = sessionmaker(bind=broken)()
    try:
        yield session
    finally:
        session.close()


def test_storage_outage_is_a_server_error(client, captured_events):
    app.dependency_overrides[get_db] = _unreachable_db

    assert client.get("/api/stocks").status_code == 500
    assert client.post("/api/stocks", json={"name": "A"}).status_code == 500
    assert client.post("/api/stocks/bulk", json=[{"name": "A"}]).status_code == 500
    assert captured_events == []


def test_health_reports_database_state(client):
    assert client.get("/health").json() == {"status": "ok", "database": "ok"}

    app.dependency_overrides[get_db] = _unreachable_db
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["database"] == "unavailable"
