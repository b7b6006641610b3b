# stock_opname/models/stock.py
from datetime import datetime

from sqlalchemy import (
    String,
    Integer,
    DateTime,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_opname.models.base import Base

# Columns overwritten on conflict; everything except the key.
UPSERT_COLUMNS = (
    "provider",
    "validity",
    "quota",
    "atas",
    "bawah",
    "belakang",
    "komputer",
    "total_fisik",
    "updated_at",
)


class Stock(Base):
    """
    One product's physical count, keyed by its display name
    ("provider | quota | validity").

    total_fisik is stored for convenience only; it is recomputed from the
    three display locations on every write.
    """

    __tablename__ = "stocks"

    name: Mapped[str] = mapped_column(String(255), primary_key=True)

    provider: Mapped[str] = mapped_column(
        String(100), nullable=False, server_default=text("''")
    )
    validity: Mapped[str] = mapped_column(
        String(100), nullable=False, server_default=text("''")
    )
    quota: Mapped[str] = mapped_column(
        String(100), nullable=False, server_default=text("''")
    )

    atas: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
        doc="Top display shelf.",
    )
    bawah: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
        doc="Bottom display shelf.",
    )
    belakang: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
        doc="Back room.",
    )
    komputer: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
        doc="Reference count from the point-of-sale system.",
    )
    total_fisik: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        server_default=text("0"),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=text("CURRENT_TIMESTAMP"),
    )
