# stock_opname/client/reconciler.py
"""
Client-side reconciliation of one clerk's view with the server.

Three inputs touch the view:

- the server snapshot (GET /api/stocks), used to seed and to refetch;
- local edits, which are applied immediately and then pushed out
  (one UpsertOne per edit plus a debounced UpsertMany of the whole table);
- push events from other sessions, which are applied without sending
  anything back.

Each row remembers the server updated_at it last saw. An inbound row that
is not newer than that is either stale or the echo of this client's own
write and is dropped, so a broadcast can never bounce back as a new write.
"""

from __future__ import annotations

import functools
import logging
import threading
from concurrent.futures import Executor
from datetime import datetime
from typing import Any, Callable, Iterable, Optional

import httpx

from stock_opname.client.catalog import CatalogEntry
from stock_opname.client.gateway import GatewayClient
from stock_opname.client.offline_cache import OfflineCache
from stock_opname.client.view_state import COUNTER_FIELDS, RowView, ViewState
from stock_opname.notifications.broadcast import STOCK_UPDATE, STOCKS_BULK_UPDATE
from stock_opname.utils.datetime_utils import parse_iso_string

logger = logging.getLogger(__name__)

BULK_DEBOUNCE_SECONDS = 0.25


def _to_count(value: Any) -> int:
    try:
        return max(0, int(value))
    except (TypeError, ValueError):
        return 0


def _parse_version(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return parse_iso_string(value)
        except ValueError:
            logger.warning("Ignoring unparseable updated_at %r", value)
    return None


class Debouncer:
    """
    Collapse a burst of trigger() calls into one call of func, delay
    seconds after the last trigger.

    threading.Timer.cancel() cannot stop a callback that has already
    started, so each timer carries the generation it was armed for and a
    superseded one does nothing when it fires.
    """

    def __init__(
        self,
        delay: float,
        func: Callable[[], Any],
        timer_factory: Callable[..., Any] = threading.Timer,
    ) -> None:
        self.delay = delay
        self.func = func
        self._timer_factory = timer_factory
        self._timer = None
        self._generation = 0
        self._lock = threading.Lock()

    @property
    def pending(self) -> bool:
        return self._timer is not None

    def trigger(self) -> None:
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._timer = self._timer_factory(
                self.delay, functools.partial(self._fire, self._generation)
            )
            self._timer.daemon = True
            self._timer.start()

    def cancel(self) -> None:
        with self._lock:
            self._disarm()

    def flush(self) -> None:
        """Run a pending call now instead of waiting."""
        with self._lock:
            if self._timer is None:
                return
            self._disarm()
        self.func()

    def _disarm(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation:
                return
            self._timer = None
            self._generation += 1
        self.func()


class Reconciler:
    def __init__(
        self,
        view: ViewState,
        gateway: GatewayClient,
        cache: Optional[OfflineCache] = None,
        *,
        bulk_delay: float = BULK_DEBOUNCE_SECONDS,
        timer_factory: Callable[..., Any] = threading.Timer,
        executor: Optional[Executor] = None,
    ) -> None:
        self.view = view
        self.gateway = gateway
        self.cache = cache
        # Outbound sends run inline unless an executor is given.
        self.executor = executor
        self.server_rows: dict[str, dict] = {}
        self._lock = threading.RLock()
        self._bulk = Debouncer(bulk_delay, self.send_bulk_snapshot, timer_factory)

    # -- snapshot ---------------------------------------------------------

    def load_server_rows(self) -> bool:
        """Seed the server map from List. On failure the map stays as it was."""
        try:
            rows = self.gateway.list_stocks()
        except httpx.HTTPError:
            logger.warning("Failed to load stocks from server", exc_info=True)
            return False

        with self._lock:
            self.server_rows = {row["name"]: row for row in rows if row.get("name")}
        return True

    def render(self, entries: Iterable[CatalogEntry]) -> None:
        """One row per catalog entry: server values, else offline cache, else zero."""
        cached = self.cache.load_all() if self.cache is not None else {}
        with self._lock:
            for entry in entries:
                row = RowView(
                    name=entry.name,
                    provider=entry.provider,
                    quota=entry.quota,
                    validity=entry.validity,
                )
                stored = self.server_rows.get(entry.name)
                if stored is not None:
                    source = stored
                    row.updated_at = _parse_version(stored.get("updated_at"))
                else:
                    backup = cached.get(entry.name)
                    source = backup if isinstance(backup, dict) else {}
                for field in COUNTER_FIELDS:
                    setattr(row, field, _to_count(source.get(field)))
                row.recompute()
                self.view.add(row)

    def refresh(self) -> None:
        """Refetch List and apply every row that is newer than what is shown."""
        if not self.load_server_rows():
            return
        for data in list(self.server_rows.values()):
            self.apply_remote_update(data)

    # -- local edits ------------------------------------------------------

    def set_count(self, name: str, field: str, value: Any) -> RowView:
        if field not in COUNTER_FIELDS:
            raise ValueError(f"Unknown counter {field!r}")
        with self._lock:
            row = self._require_row(name)
            setattr(row, field, _to_count(value))
            payload = self._commit_local(row)
        self._push(payload)
        return row

    def increment(self, name: str, field: str) -> RowView:
        return self.set_count(name, field, self._current(name, field) + 1)

    def decrement(self, name: str, field: str) -> RowView:
        # set_count clamps at zero
        return self.set_count(name, field, self._current(name, field) - 1)

    def _current(self, name: str, field: str) -> int:
        if field not in COUNTER_FIELDS:
            raise ValueError(f"Unknown counter {field!r}")
        with self._lock:
            return getattr(self._require_row(name), field)

    def reset(self, name: str) -> RowView:
        with self._lock:
            row = self._require_row(name)
            for field in COUNTER_FIELDS:
                setattr(row, field, 0)
            payload = self._commit_local(row)
        self._push(payload)
        return row

    def _require_row(self, name: str) -> RowView:
        row = self.view.get(name)
        if row is None:
            raise KeyError(name)
        return row

    def _commit_local(self, row: RowView) -> dict:
        row.recompute()
        if self.cache is not None:
            self.cache.save(self.view)
        return row.to_payload()

    def _push(self, payload: dict) -> None:
        self._submit(self.send_row_update, payload)
        self._bulk.trigger()

    def _submit(self, func: Callable[..., Any], *args: Any) -> None:
        if self.executor is None:
            func(*args)
        else:
            self.executor.submit(func, *args)

    # -- outbound ---------------------------------------------------------

    def send_row_update(self, payload: dict) -> None:
        try:
            stored = self.gateway.upsert_stock(payload)
        except httpx.HTTPError:
            logger.error("Failed to send row update name=%s", payload.get("name"), exc_info=True)
            return

        # The stored row is the truth for this version: show it, so a
        # broadcast that landed while the write was in flight cannot stick,
        # and the echo of this write is later dropped as not newer.
        self.apply_remote_update(stored)

    def send_bulk_snapshot(self) -> None:
        with self._lock:
            payloads = self.view.snapshot()
        if not payloads:
            return
        try:
            self.gateway.upsert_stocks(payloads)
        except httpx.HTTPError:
            logger.error("Failed to send bulk snapshot (%d rows)", len(payloads), exc_info=True)

    def flush(self) -> None:
        """Send a pending bulk snapshot immediately."""
        self._bulk.flush()

    def close(self) -> None:
        """
        Send any pending snapshot, then release the executor and the
        gateway this reconciler was given.
        """
        self._bulk.flush()
        if self.executor is not None:
            self.executor.shutdown(wait=True)
        self.gateway.close()

    # -- inbound ----------------------------------------------------------

    def apply_event(self, event: str, data: Any) -> bool:
        """Dispatch one push event. Returns True if the view changed or was refetched."""
        if event == STOCK_UPDATE and isinstance(data, dict):
            return self.apply_remote_update(data)
        if event == STOCKS_BULK_UPDATE:
            self.refresh()
            return True
        logger.debug("Ignoring event %r", event)
        return False

    def apply_remote_update(self, data: dict) -> bool:
        """
        Overwrite a displayed row with a server row. Never sends anything.
        Returns False when the row is unknown to this view or not newer.
        """
        name = data.get("name")
        if not name:
            return False
        incoming = _parse_version(data.get("updated_at"))

        with self._lock:
            row = self.view.get(name)
            if row is None:
                self.server_rows[name] = data
                return False
            if incoming is not None and row.updated_at is not None and incoming <= row.updated_at:
                return False

            for field in COUNTER_FIELDS:
                setattr(row, field, _to_count(data.get(field)))
            row.recompute()
            if incoming is not None:
                row.updated_at = incoming
            self.server_rows[name] = data
            if self.cache is not None:
                self.cache.save(self.view)
        return True
