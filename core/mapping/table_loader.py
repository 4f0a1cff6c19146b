"""Mapping table parsing and the per-process mapping table cache."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from core.utils.errors import ConfigurationError, StorageError
from core.utils.log_events import log_event

if TYPE_CHECKING:
    from core.formats.registry import FormatRegistry
    from core.storage.template_storage import TemplateStorage

logger = logging.getLogger("docbuilder.mapping")

TARGET_COLUMN = "cell"
TOKEN_COLUMN = "raw_text"
SOURCE_COLUMN = "placeholder"
_DELIMITER = ","
# Spreadsheet exports on Windows are usually cp1252 rather than UTF-8.
_ENCODINGS = ("utf-8-sig", "cp1252")


@dataclass(frozen=True)
class MappingRow:
    """One binding: template position <- placeholder token <- source path."""

    target_position: str
    placeholder_token: str
    source_path: str


def parse_mapping_table(text: str) -> list[MappingRow]:
    """Parse comma-delimited mapping text with a ``cell,raw_text,placeholder`` header.

    Literal double quotes are stripped; delimiters inside quoted fields are not
    supported, so mapping authors must not put commas in any column. Rows
    lacking a target position or placeholder token are dropped. A duplicated
    target position keeps its first slot in table order and the last row's values.
    """

    lines = text.replace("\r\n", "\n").replace("\r", "\n").split("\n")
    non_blank = [line for line in lines if line.strip()]
    if not non_blank:
        return []

    header = [_clean(column).lower() for column in non_blank[0].split(_DELIMITER)]
    rows_by_target: dict[str, MappingRow] = {}

    for line in non_blank[1:]:
        values = [_clean(value) for value in line.split(_DELIMITER)]
        record = dict(zip(header, values))
        target = record.get(TARGET_COLUMN, "")
        token = record.get(TOKEN_COLUMN, "")
        if not target or not token:
            continue

        source = record.get(SOURCE_COLUMN, "") or token.strip("{}").strip()
        rows_by_target[target] = MappingRow(
            target_position=target,
            placeholder_token=token,
            source_path=source,
        )

    return list(rows_by_target.values())


class MappingTableCache:
    """Lazily loads one mapping table per format id and keeps it for the process.

    There is no lock: two concurrent first loads for the same format both
    download and parse, and the last one stored wins. Loads are idempotent so
    the duplicate work is harmless. Failed loads are not cached.
    """

    def __init__(self, storage: TemplateStorage, registry: FormatRegistry) -> None:
        self._storage = storage
        self._registry = registry
        self._tables: dict[str, tuple[MappingRow, ...]] = {}

    def get_or_load(self, format_id: str) -> tuple[MappingRow, ...]:
        canonical_id, config = self._registry.resolve(format_id)
        cached = self._tables.get(canonical_id)
        if cached is not None:
            return cached

        started = time.perf_counter()
        try:
            raw = self._storage.download(config.mapping)
        except StorageError as exc:
            raise ConfigurationError(
                f"mapping table '{config.mapping}' could not be downloaded: {exc}",
                stage="load_mapping",
                format_id=canonical_id,
            ) from exc

        text = _decode_table(raw, config.mapping, canonical_id) if isinstance(raw, bytes) else raw
        rows = tuple(parse_mapping_table(text))
        if not rows:
            raise ConfigurationError(
                f"mapping table '{config.mapping}' has no usable rows",
                stage="load_mapping",
                format_id=canonical_id,
            )

        self._tables[canonical_id] = rows
        log_event(
            logger,
            logging.INFO,
            "mapping_loaded",
            format_id=canonical_id,
            mapping_file=config.mapping,
            row_count=len(rows),
            load_ms=int((time.perf_counter() - started) * 1000),
        )
        return rows

    def cached_formats(self) -> list[str]:
        return sorted(self._tables)

    def clear(self) -> None:
        self._tables.clear()


def _clean(value: str) -> str:
    return value.replace('"', "").strip()


def _decode_table(raw: bytes, file_name: str, format_id: str) -> str:
    for encoding in _ENCODINGS:
        try:
            return raw.decode(encoding)
        except UnicodeDecodeError:
            continue
    raise ConfigurationError(
        f"mapping table '{file_name}' is not valid text in any of: {', '.join(_ENCODINGS)}",
        stage="load_mapping",
        format_id=format_id,
    )
