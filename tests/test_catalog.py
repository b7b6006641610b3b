import pytest

from stock_opname.client.catalog import (
    CatalogEntry,
    CatalogError,
    load_catalog,
    parse_catalog,
    providers,
    row_name,
    split_row_name,
)

CATALOG = """<?xml version="1.0" encoding="UTF-8"?>
<packages>
  <package>
    <provider>Telkomsel</provider>
    <validity>30hr</validity>
    <quota>1GB</quota>
  </package>
  <package>
    <provider>XL</provider>
    <quota>5GB</quota>
  </package>
  <package>
    <provider>Telkomsel</provider>
    <validity>7hr</validity>
    <quota>2GB</quota>
  </package>
</packages>
"""


def test_parse_skips_incomplete_packages():
    entries = parse_catalog(CATALOG)
    assert entries == [
        CatalogEntry(provider="Telkomsel", validity="30hr", quota="1GB"),
        CatalogEntry(provider="Telkomsel", validity="7hr", quota="2GB"),
    ]


def test_entry_name_is_provider_quota_validity():
    entry = CatalogEntry(provider="T", validity="30hr", quota="1GB")
    assert entry.name == "T | 1GB | 30hr"
    assert split_row_name(entry.name) == ("T", "1GB", "30hr")


def test_split_pads_short_names():
    assert split_row_name("Paket Baru 1") == ("Paket Baru 1", "", "")
    assert row_name("A", "", "") == "A |  | "


def test_providers_in_first_seen_order():
    entries = [
        CatalogEntry("XL", "1", "1"),
        CatalogEntry("T", "1", "1"),
        CatalogEntry("XL", "2", "2"),
    ]
    assert providers(entries) == ["XL", "T"]


def test_invalid_xml_raises():
    with pytest.raises(CatalogError):
        parse_catalog("<packages><package>")


def test_load_from_file(tmp_path):
    path = tmp_path / "data.xml"
    path.write_text(CATALOG, encoding="utf-8")
    assert len(load_catalog(path)) == 2
