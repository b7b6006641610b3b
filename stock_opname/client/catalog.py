# stock_opname/client/catalog.py
"""
Reference catalog of sellable packages.

The catalog is an XML file listing one <package> per product:

    <packages>
      <package>
        <provider>Telkomsel</provider>
        <validity>30hr</validity>
        <quota>1GB</quota>
      </package>
    </packages>

Each package becomes one stock row named "provider | quota | validity".
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

logger = logging.getLogger(__name__)

NAME_SEPARATOR = " | "


class CatalogError(ValueError):
    """The catalog document could not be parsed at all."""


def row_name(provider: str, quota: str, validity: str) -> str:
    return NAME_SEPARATOR.join((provider, quota, validity))


def split_row_name(name: str) -> tuple[str, str, str]:
    """Inverse of row_name; missing parts come back as ""."""
    parts = name.split(NAME_SEPARATOR)
    parts += [""] * (3 - len(parts))
    return parts[0], parts[1], parts[2]


@dataclass(frozen=True)
class CatalogEntry:
    provider: str
    validity: str
    quota: str

    @property
    def name(self) -> str:
        return row_name(self.provider, self.quota, self.validity)


def parse_catalog(xml_text: str) -> list[CatalogEntry]:
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise CatalogError(f"Catalog is not valid XML: {e}") from e

    entries: list[CatalogEntry] = []
    for index, package in enumerate(root.iter("package"), start=1):
        fields = {}
        for tag in ("provider", "validity", "quota"):
            element = package.find(tag)
            if element is None:
                logger.error("Skipping package #%d: missing <%s>", index, tag)
                break
            fields[tag] = (element.text or "").strip()
        else:
            entries.append(CatalogEntry(**fields))

    if not entries:
        logger.warning("Catalog contains no usable packages.")
    return entries


def load_catalog(path: str | Path) -> list[CatalogEntry]:
    return parse_catalog(Path(path).read_text(encoding="utf-8"))


def providers(entries: Iterable[CatalogEntry]) -> list[str]:
    """Distinct providers in first-seen order (for the provider filter)."""
    seen: dict[str, None] = {}
    for entry in entries:
        seen.setdefault(entry.provider, None)
    return list(seen)
