# stock_opname/client/live.py
"""
Wiring for a running clerk session: push feed + reconciler.
"""

from __future__ import annotations

import json
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Callable, Optional

from websockets.exceptions import ConnectionClosed, WebSocketException
from websockets.sync.client import connect as ws_connect

from stock_opname.client.catalog import CatalogEntry
from stock_opname.client.gateway import GatewayClient
from stock_opname.client.offline_cache import OfflineCache
from stock_opname.client.reconciler import Reconciler
from stock_opname.client.view_state import ViewState

logger = logging.getLogger(__name__)

POLL_INTERVAL_SECONDS = 1.0


def websocket_url(base_url: str, path: str = "/ws") -> str:
    if base_url.startswith("https://"):
        base_url = "wss://" + base_url[len("https://"):]
    elif base_url.startswith("http://"):
        base_url = "ws://" + base_url[len("http://"):]
    return base_url.rstrip("/") + path


def decode_frame(raw: Any) -> Optional[tuple[str, Any]]:
    """Parse {"event": ..., "data": ...}; None for anything else."""
    try:
        frame = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Dropping non-JSON frame")
        return None
    if not isinstance(frame, dict) or not isinstance(frame.get("event"), str):
        logger.warning("Dropping frame without an event name")
        return None
    return frame["event"], frame.get("data")


def listen(
    url: str,
    reconciler: Reconciler,
    *,
    connect: Callable[..., Any] = ws_connect,
    stop: Optional[threading.Event] = None,
    poll_interval: float = POLL_INTERVAL_SECONDS,
) -> None:
    """
    Apply every push event to the reconciler until the server closes the
    connection or stop is set. stop is checked at least every
    poll_interval seconds even when the feed is idle. Missed events are
    not replayed; call reconciler.refresh() after reconnecting.
    """
    with connect(url) as websocket:
        while stop is None or not stop.is_set():
            try:
                raw = websocket.recv(timeout=poll_interval)
            except TimeoutError:
                continue
            except ConnectionClosed:
                break
            if stop is not None and stop.is_set():
                break
            frame = decode_frame(raw)
            if frame is not None:
                reconciler.apply_event(*frame)


class ClerkSession:
    """A running reconciler plus the thread feeding it push events."""

    def __init__(self, reconciler: Reconciler, listener: threading.Thread, stop: threading.Event) -> None:
        self.reconciler = reconciler
        self.listener = listener
        self.stop = stop

    def close(self, timeout: float = 5.0) -> None:
        self.stop.set()
        self.listener.join(timeout)
        self.reconciler.close()


def start_session(
    base_url: str,
    entries: list[CatalogEntry],
    cache_path: str | Path,
    *,
    connect: Callable[..., Any] = ws_connect,
) -> ClerkSession:
    """
    Build a reconciler for one clerk: subscribe to the push feed first so
    nothing is missed while the snapshot loads, then seed and render.
    """
    gateway = GatewayClient(base_url)
    reconciler = Reconciler(
        ViewState(),
        gateway,
        OfflineCache(cache_path),
        # One worker keeps a clerk's own writes in order.
        executor=ThreadPoolExecutor(max_workers=1),
    )
    stop = threading.Event()

    def _run() -> None:
        try:
            listen(websocket_url(base_url), reconciler, connect=connect, stop=stop)
        except (OSError, WebSocketException):
            logger.warning("Push feed unavailable; view will only change on refresh", exc_info=True)

    listener = threading.Thread(target=_run, name="stock-feed", daemon=True)
    listener.start()

    reconciler.load_server_rows()
    reconciler.render(entries)
    return ClerkSession(reconciler, listener, stop)
