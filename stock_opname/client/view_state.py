# stock_opname/client/view_state.py
"""
In-memory view of the stock table shown to one clerk.

ViewState is a plain object handed to the Reconciler rather than module
globals, so several independent views can exist side by side (one per
clerk session, or one per test).
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterator, Optional

LOCATION_FIELDS = ("atas", "bawah", "belakang")
COUNTER_FIELDS = LOCATION_FIELDS + ("komputer",)


def format_signed(value: int) -> str:
    """+3 / -2 / 0, as shown in the discrepancy column."""
    return f"+{value}" if value > 0 else str(value)


@dataclass
class RowView:
    name: str
    provider: str = ""
    quota: str = ""
    validity: str = ""
    atas: int = 0
    bawah: int = 0
    belakang: int = 0
    komputer: int = 0
    total_fisik: int = 0
    # Last server version seen for this row; None until the server knows it.
    updated_at: Optional[datetime] = None

    def recompute(self) -> int:
        self.total_fisik = self.atas + self.bawah + self.belakang
        return self.total_fisik

    @property
    def selisih(self) -> int:
        """Physical count minus the computer's count."""
        return self.total_fisik - self.komputer

    @property
    def selisih_label(self) -> str:
        return format_signed(self.selisih)

    def counters(self) -> dict[str, int]:
        return {field: getattr(self, field) for field in COUNTER_FIELDS}

    def to_payload(self) -> dict:
        return {
            "name": self.name,
            "provider": self.provider,
            "quota": self.quota,
            "validity": self.validity,
            **self.counters(),
            "total_fisik": self.total_fisik,
        }


class ViewState:
    """Name-keyed rows in display (catalog) order."""

    def __init__(self) -> None:
        self._rows: dict[str, RowView] = {}

    def __contains__(self, name: object) -> bool:
        return name in self._rows

    def __iter__(self) -> Iterator[RowView]:
        return iter(self._rows.values())

    def __len__(self) -> int:
        return len(self._rows)

    def add(self, row: RowView) -> None:
        self._rows[row.name] = row

    def get(self, name: str) -> Optional[RowView]:
        return self._rows.get(name)

    def rows(self, provider: Optional[str] = None) -> list[RowView]:
        if provider is None:
            return list(self._rows.values())
        return [row for row in self._rows.values() if row.provider == provider]

    def discrepancies(self, provider: Optional[str] = None) -> list[RowView]:
        """Rows whose physical and computer counts disagree."""
        return [row for row in self.rows(provider) if row.selisih != 0]

    @property
    def grand_total_fisik(self) -> int:
        return sum(row.total_fisik for row in self._rows.values())

    @property
    def grand_total_selisih(self) -> int:
        return sum(row.selisih for row in self._rows.values())

    def snapshot(self) -> list[dict]:
        return [row.to_payload() for row in self._rows.values()]
