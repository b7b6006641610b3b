# stock_opname/client/offline_cache.py
"""
Offline backup of the counters, keyed by row name.

Only consulted when the server has no row for a name (first paint before the
snapshot arrives, or the server is unreachable). Disk problems are logged
and otherwise ignored: the cache must never break editing.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Iterable, Optional

from stock_opname.client.view_state import RowView

logger = logging.getLogger(__name__)


class OfflineCache:
    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load_all(self) -> dict[str, dict]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.error("Failed to read offline cache %s", self.path, exc_info=True)
            return {}
        if not isinstance(data, dict):
            logger.error("Ignoring offline cache %s: not a JSON object", self.path)
            return {}
        return data

    def get(self, name: str) -> Optional[dict]:
        entry = self.load_all().get(name)
        return entry if isinstance(entry, dict) else None

    def save(self, rows: Iterable[RowView]) -> None:
        data = {row.name: row.counters() for row in rows}
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data), encoding="utf-8")
        except OSError:
            logger.error("Failed to write offline cache %s", self.path, exc_info=True)
