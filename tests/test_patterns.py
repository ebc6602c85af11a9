"""Tests for loading and compiling the pattern catalog."""

from pathlib import Path

import pytest
from agent_warden.errors import PatternCatalogError
from agent_warden.patterns import PatternCatalog, default_catalog, load_catalog, parse_catalog


def test_bundled_catalog_has_every_table() -> None:
    catalog = load_catalog()
    for table in PatternCatalog.model_fields:
        assert getattr(catalog, table), f"{table} is empty"


def test_default_catalog_is_cached() -> None:
    assert default_catalog() is default_catalog()


def test_injection_entries_carry_metadata() -> None:
    for entry in load_catalog().injection:
        assert entry.type
        assert entry.severity in {"low", "medium", "high", "critical"}
        assert entry.description


def test_load_from_file(tmp_path: Path) -> None:
    path = tmp_path / "patterns.yaml"
    path.write_text("sensitive_paths:\n  - {pattern: '/srv/private'}\n")
    catalog = load_catalog(path)
    assert len(catalog.sensitive_paths) == 1
    assert catalog.injection == []


def test_ignore_case_flag() -> None:
    catalog = parse_catalog({"recursive": [{"pattern": "loop", "ignore_case": True}]})
    assert catalog.recursive[0].search("LOOP")


def test_invalid_regex_fails(tmp_path: Path) -> None:
    path = tmp_path / "patterns.yaml"
    path.write_text("exfiltration:\n  - {pattern: '(unclosed'}\n")
    with pytest.raises(PatternCatalogError, match="invalid pattern"):
        load_catalog(path)


def test_missing_file_fails(tmp_path: Path) -> None:
    with pytest.raises(PatternCatalogError):
        load_catalog(tmp_path / "absent.yaml")


def test_entry_without_pattern_fails() -> None:
    with pytest.raises(PatternCatalogError):
        parse_catalog({"credentials": [{"name": "nameless"}]})


def test_non_mapping_fails() -> None:
    with pytest.raises(PatternCatalogError):
        parse_catalog(["not", "a", "mapping"])  # type: ignore[arg-type]


def test_unknown_tables_ignored() -> None:
    catalog = parse_catalog({"mystery": [{"pattern": "x"}]})
    assert catalog.credentials == []
