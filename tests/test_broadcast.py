import asyncio
import json

from redis.exceptions import ConnectionError as RedisConnectionError

from stock_opname.notifications import broadcast
from stock_opname.notifications.broadcast import ConnectionManager, RedisRelay


class FakeSocket:
    def __init__(self):
        self.sent = []
        self.accepted = False

    async def accept(self):
        self.accepted = True

    async def send_text(self, message):
        self.sent.append(message)


class GoneSocket(FakeSocket):
    async def send_text(self, message):
        raise RuntimeError("Cannot call send once a close message has been sent.")


def test_fan_out_reaches_every_session_and_drops_dead_ones():
    mgr = ConnectionManager()
    alive, gone = FakeSocket(), GoneSocket()

    async def scenario():
        await mgr.connect(alive)
        await mgr.connect(gone)
        first = await mgr.fan_out("one")
        second = await mgr.fan_out("two")
        return first, second

    first, second = asyncio.run(scenario())

    assert alive.accepted
    assert alive.sent == ["one", "two"]
    assert (first, second) == (1, 1)
    assert mgr.active_count == 1


def test_connected_clients_receive_stock_update(client):
    with client.websocket_connect("/ws") as observer_b, client.websocket_connect("/ws") as writer_a:
        resp = client.post(
            "/api/stocks",
            json={"name": "T|1GB|30hr", "atas": 1, "bawah": 2, "belakang": 3, "komputer": 4},
        )
        assert resp.status_code == 200

        frame_b = observer_b.receive_json()
        frame_a = writer_a.receive_json()

    assert frame_b["event"] == "stock_update"
    assert frame_b["data"]["total_fisik"] == 6
    assert frame_b["data"]["komputer"] == 4
    # the writer's own session converges on the same stored row
    assert frame_a == frame_b


def test_disconnected_client_does_not_affect_writer(client):
    with client.websocket_connect("/ws"):
        pass

    resp = client.post("/api/stocks", json={"name": "A", "atas": 1})
    assert resp.status_code == 200
    assert broadcast.manager.active_count == 0


class FakeRedis:
    def __init__(self, fail=False):
        self.fail = fail
        self.published = []

    async def publish(self, channel, message):
        if self.fail:
            raise RedisConnectionError("Connection refused")
        self.published.append((channel, message))


def test_publish_goes_through_relay_when_installed(monkeypatch):
    redis_client = FakeRedis()
    local = []

    async def record(message):
        local.append(message)
        return 1

    monkeypatch.setattr(broadcast.manager, "fan_out", record)
    broadcast.set_relay(RedisRelay(redis_client, "events", broadcast.manager))
    try:
        asyncio.run(broadcast.publish_bulk_update(3))
    finally:
        broadcast.set_relay(None)

    assert local == []
    channel, message = redis_client.published[0]
    assert channel == "events"
    assert json.loads(message) == {"event": "stocks_bulk_update", "data": {"count": 3}}


def test_publish_falls_back_to_local_when_redis_fails(monkeypatch):
    local = []

    async def record(message):
        local.append(json.loads(message))
        return 1

    monkeypatch.setattr(broadcast.manager, "fan_out", record)
    broadcast.set_relay(RedisRelay(FakeRedis(fail=True), "events", broadcast.manager))
    try:
        asyncio.run(broadcast.publish("stock_update", {"name": "A"}))
    finally:
        broadcast.set_relay(None)

    assert local == [{"event": "stock_update", "data": {"name": "A"}}]


class FakePubSub:
    def __init__(self, items):
        self.items = items
        self.subscribed = []
        self.closed = False

    async def subscribe(self, channel):
        self.subscribed.append(channel)

    async def listen(self):
        for item in self.items:
            yield item

    async def aclose(self):
        self.closed = True


class FakeSubscriber:
    def __init__(self, items):
        self._pubsub = FakePubSub(items)

    def pubsub(self):
        return self._pubsub


def test_relay_forwards_channel_messages_to_local_sessions():
    mgr = ConnectionManager()
    socket = FakeSocket()
    subscriber = FakeSubscriber([
        {"type": "subscribe", "data": 1},
        {"type": "message", "data": '{"event": "stock_update", "data": {}}'},
    ])

    async def scenario():
        await mgr.connect(socket)
        await RedisRelay(subscriber, "events", mgr).run()

    asyncio.run(scenario())

    assert socket.sent == ['{"event": "stock_update", "data": {}}']
    assert subscriber._pubsub.subscribed == ["events"]
    assert subscriber._pubsub.closed
