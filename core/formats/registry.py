"""Format id lookup table loaded from YAML."""

from __future__ import annotations

from pathlib import Path
from types import MappingProxyType

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from core.formats.models import FormatConfig, FormatTable


class FormatRegistry:
    """Resolve requested format ids (or their aliases) to a FormatConfig.

    Unknown ids resolve to the table's default format.
    """

    def __init__(self, table: FormatTable) -> None:
        self._default = table.default_format
        self._formats = MappingProxyType(dict(table.formats))
        lookup: dict[str, str] = {}
        for format_id, config in table.formats.items():
            lookup[format_id.lower()] = format_id
            for alias in config.aliases:
                lookup.setdefault(alias.lower(), format_id)
        self._lookup = MappingProxyType(lookup)

    @property
    def default_format(self) -> str:
        return self._default

    def resolve(self, format_id: str | None) -> tuple[str, FormatConfig]:
        canonical = self.canonical_id(format_id)
        return canonical, self._formats[canonical]

    def canonical_id(self, format_id: str | None) -> str:
        if not format_id:
            return self._default
        key = format_id.strip()
        if key in self._formats:
            return key
        return self._lookup.get(key.lower(), self._default)

    def is_known(self, format_id: str) -> bool:
        key = format_id.strip()
        return key in self._formats or key.lower() in self._lookup

    def ids(self) -> list[str]:
        return sorted(self._formats)

    def items(self) -> list[tuple[str, FormatConfig]]:
        return [(format_id, self._formats[format_id]) for format_id in self.ids()]


def load_format_registry(path: Path | None = None) -> FormatRegistry:
    """Load and validate the format table from YAML."""

    table_path = path or Path(__file__).with_name("formats.yaml")

    try:
        raw = yaml.safe_load(table_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Format table not found: {table_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in format table: {table_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Format table must contain a mapping: {table_path}")

    try:
        table = FormatTable.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid format table schema: {table_path}") from exc
    return FormatRegistry(table)
