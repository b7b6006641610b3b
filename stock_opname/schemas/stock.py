# schemas/stock.py
from __future__ import annotations

from datetime import datetime
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)

from stock_opname.utils.datetime_utils import as_utc

# Row names are keys, so they are kept verbatim (no stripping).
NameStr = Annotated[
    str,
    StringConstraints(min_length=1, max_length=255),
]

DescStr = Annotated[
    str,
    StringConstraints(strip_whitespace=True, max_length=100),
]

COUNTER_FIELDS = ("atas", "bawah", "belakang", "komputer")


class StockRowBase(BaseModel):
    """
    Shared fields for upsert payloads and responses.
    """

    name: NameStr

    provider: DescStr = ""
    validity: DescStr = ""
    quota: DescStr = ""

    atas: int = Field(default=0, ge=0)
    bawah: int = Field(default=0, ge=0)
    belakang: int = Field(default=0, ge=0)
    komputer: int = Field(default=0, ge=0)


class StockRowIn(StockRowBase):
    """
    One row as submitted by a client.

    - Missing or null descriptive fields become "".
    - Missing, null or blank counters become 0; numeric strings are accepted.
    - total_fisik and updated_at are ignored if present: the server owns both.
    """

    model_config = ConfigDict(extra="ignore")

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("name is required")
        return v

    @field_validator("provider", "validity", "quota", mode="before")
    @classmethod
    def none_to_empty(cls, v: Any) -> Any:
        if v is None:
            return ""
        return v

    @field_validator(*COUNTER_FIELDS, mode="before")
    @classmethod
    def blank_to_zero(cls, v: Any) -> Any:
        if v is None:
            return 0
        if isinstance(v, str) and not v.strip():
            return 0
        return v

    @property
    def total_fisik(self) -> int:
        return self.atas + self.bawah + self.belakang


class StockRowResponse(StockRowBase):
    total_fisik: int
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("updated_at")
    @classmethod
    def updated_at_utc(cls, v: datetime) -> datetime:
        return as_utc(v)


class StockUpsertResponse(BaseModel):
    ok: bool = True
    data: StockRowResponse


class StockBulkResponse(BaseModel):
    ok: bool = True
    count: int


class StockBulkNotice(BaseModel):
    """Payload of the stocks_bulk_update event; clients refetch on receipt."""

    count: int
