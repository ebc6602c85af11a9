"""Regex pattern catalog for the anomaly detector and content sanitizer.

Tables live in YAML so they can be tuned without a redeploy. The bundled
``patterns.yaml`` is used unless ``WARDEN_PATTERN_FILE`` points elsewhere.
Every pattern is compiled at load time; a bad regex fails startup with
``PatternCatalogError`` rather than silently weakening detection.
"""

from __future__ import annotations

import logging
import re
from importlib import resources
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agent_warden.errors import PatternCatalogError

logger = logging.getLogger(__name__)

BUNDLED_CATALOG = "patterns.yaml"


class PatternEntry(BaseModel):
    """One compiled detection pattern."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    regex: re.Pattern[str]
    name: str | None = None
    type: str | None = None
    severity: str | None = None
    description: str | None = None

    def search(self, text: str) -> re.Match[str] | None:
        return self.regex.search(text)


class PatternCatalog(BaseModel):
    """All detection tables, compiled."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    self_modification: list[PatternEntry] = Field(default_factory=list)
    exfiltration: list[PatternEntry] = Field(default_factory=list)
    credentials: list[PatternEntry] = Field(default_factory=list)
    recursive: list[PatternEntry] = Field(default_factory=list)
    sensitive_paths: list[PatternEntry] = Field(default_factory=list)
    tunnel_domains: list[PatternEntry] = Field(default_factory=list)
    injection: list[PatternEntry] = Field(default_factory=list)
    credential_leaks: list[PatternEntry] = Field(default_factory=list)


def _compile_entry(table: str, raw: Any) -> PatternEntry:
    if not isinstance(raw, dict) or "pattern" not in raw:
        raise PatternCatalogError(f"{table}: each entry needs a 'pattern' field")
    flags = re.IGNORECASE if raw.get("ignore_case") else 0
    try:
        regex = re.compile(str(raw["pattern"]), flags)
    except re.error as exc:
        raise PatternCatalogError(f"{table}: invalid pattern {raw['pattern']!r}: {exc}") from exc
    try:
        return PatternEntry(
            regex=regex,
            name=raw.get("name"),
            type=raw.get("type"),
            severity=raw.get("severity"),
            description=raw.get("description"),
        )
    except ValidationError as exc:
        raise PatternCatalogError(f"{table}: {exc}") from exc


def parse_catalog(data: dict[str, Any]) -> PatternCatalog:
    """Compile a raw mapping (as loaded from YAML) into a catalog."""
    if not isinstance(data, dict):
        raise PatternCatalogError("Pattern catalog must be a mapping of table name to entries")

    tables: dict[str, list[PatternEntry]] = {}
    for table in PatternCatalog.model_fields:
        entries = data.get(table) or []
        if not isinstance(entries, list):
            raise PatternCatalogError(f"{table}: expected a list of entries")
        tables[table] = [_compile_entry(table, raw) for raw in entries]

    unknown = set(data) - set(PatternCatalog.model_fields)
    if unknown:
        logger.warning("Ignoring unknown pattern tables: %s", ", ".join(sorted(unknown)))

    return PatternCatalog(**tables)


def load_catalog(path: str | Path | None = None) -> PatternCatalog:
    """Load the pattern catalog from ``path`` or the bundled default."""
    try:
        if path is None:
            text = resources.files("agent_warden").joinpath(BUNDLED_CATALOG).read_text("utf-8")
            source = BUNDLED_CATALOG
        else:
            text = Path(path).read_text(encoding="utf-8")
            source = str(path)
        data = yaml.safe_load(text)
    except (OSError, yaml.YAMLError) as exc:
        raise PatternCatalogError(f"Failed to load pattern catalog: {exc}") from exc

    catalog = parse_catalog(data)
    logger.info(
        "Loaded pattern catalog from %s (%d injection, %d leak patterns)",
        source,
        len(catalog.injection),
        len(catalog.credential_leaks),
    )
    return catalog


_default: PatternCatalog | None = None


def default_catalog() -> PatternCatalog:
    """Bundled catalog, loaded once per process."""
    global _default
    if _default is None:
        _default = load_catalog()
    return _default
