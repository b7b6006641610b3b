# stock_opname/notifications/broadcast.py
"""
Push channel for stock changes.

Every connected WebSocket session receives every event as a JSON text frame:

    {"event": "stock_update", "data": {...StockRow...}}
    {"event": "stocks_bulk_update", "data": {"count": N}}

Delivery is best-effort and at-most-once. There is no replay: a session that
connects late must call GET /api/stocks to catch up. A failed send drops
that session and is never reported to the writer.

With a RedisRelay installed, publish() goes through Redis pub/sub and every
worker process fans the message out to its own sessions.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Optional

from fastapi import WebSocket
from redis.asyncio import Redis
from redis.exceptions import RedisError

from stock_opname.schemas.stock import StockBulkNotice, StockRowResponse

logger = logging.getLogger(__name__)

STOCK_UPDATE = "stock_update"
STOCKS_BULK_UPDATE = "stocks_bulk_update"


def encode_event(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": data})


class ConnectionManager:
    """Tracks the WebSocket sessions of this process."""

    def __init__(self) -> None:
        self._connections: set[WebSocket] = set()

    @property
    def active_count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._connections.add(websocket)
        logger.info("Client connected (%d active)", self.active_count)

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._connections:
            self._connections.discard(websocket)
            logger.info("Client disconnected (%d active)", self.active_count)

    async def fan_out(self, message: str) -> int:
        """Send to every session; returns how many sends succeeded."""
        delivered = 0
        for websocket in list(self._connections):
            try:
                await websocket.send_text(message)
                delivered += 1
            except Exception:
                # Gone or half-closed; drop it, never retry.
                logger.debug("Dropping unreachable client", exc_info=True)
                self.disconnect(websocket)
        return delivered


class RedisRelay:
    """Moves events between worker processes over one pub/sub channel."""

    def __init__(self, client: Redis, channel: str, manager: ConnectionManager) -> None:
        self.client = client
        self.channel = channel
        self.manager = manager

    async def publish(self, message: str) -> None:
        await self.client.publish(self.channel, message)

    async def run(self) -> None:
        """
        Forward every message on the channel to local sessions until
        cancelled. On a Redis failure the relay uninstalls itself so
        publish() falls back to local fan-out.
        """
        pubsub = self.client.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            async for item in pubsub.listen():
                if item.get("type") != "message":
                    continue
                await self.manager.fan_out(item["data"])
        except RedisError:
            logger.warning(
                "Redis relay lost its subscription. Falling back to local fan-out.",
                exc_info=True,
            )
            set_relay(None)
        finally:
            await pubsub.aclose()


manager = ConnectionManager()
_relay: Optional[RedisRelay] = None


def set_relay(relay: Optional[RedisRelay]) -> None:
    global _relay
    _relay = relay


def get_relay() -> Optional[RedisRelay]:
    return _relay


async def publish(event: str, data: Any) -> None:
    message = encode_event(event, data)

    relay = _relay
    if relay is not None:
        try:
            await relay.publish(message)
            return
        except RedisError:
            logger.warning(
                "Redis publish failed for event=%s; delivering locally.",
                event,
                exc_info=True,
            )

    await manager.fan_out(message)


async def publish_stock_update(row: StockRowResponse) -> None:
    await publish(STOCK_UPDATE, row.model_dump(mode="json"))


async def publish_bulk_update(count: int) -> None:
    await publish(STOCKS_BULK_UPDATE, StockBulkNotice(count=count).model_dump())
