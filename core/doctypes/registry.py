"""Normalize raw prospect records per document type."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Any

import yaml  # type: ignore[import-untyped]
from pydantic import ValidationError

from core.doctypes.models import DocumentTypeConfig, DocumentTypeTable, FieldRule
from core.utils.errors import InputValidationError

_EMPTY_MARKERS = frozenset({"", "null", "undefined"})
_TRUTHY_FLAGS = frozenset({"true", "x", "si", "sí", "1"})


@dataclass(frozen=True)
class NormalizedRecord:
    """Output of one document type normalizer."""

    document_type: str
    format_id: str | None
    data: dict[str, Any]


class DocumentTypeRegistry:
    def __init__(self, table: DocumentTypeTable) -> None:
        self._types = dict(table.types)

    def ids(self) -> list[str]:
        return sorted(self._types)

    def __contains__(self, doctype_id: object) -> bool:
        return doctype_id in self._types

    def resolve(self, doctype_id: str, record: Mapping[str, Any]) -> tuple[str, DocumentTypeConfig]:
        """Return the concrete document type, following variants once."""

        config = self._types.get(doctype_id)
        if config is None:
            raise InputValidationError(
                f"unsupported document type: {doctype_id}",
                stage="normalize",
                document_type=doctype_id,
            )
        if not config.otherwise:
            return doctype_id, config

        target = config.otherwise
        for variant in config.variants:
            if any(_has_value(_pick(record, key)) for key in variant.when_any):
                target = variant.use
                break
        return target, self._types[target]

    def normalize(
        self,
        doctype_id: str,
        record: Mapping[str, Any],
        today: date | None = None,
    ) -> NormalizedRecord:
        resolved_id, config = self.resolve(doctype_id, record)
        current_day = today or date.today()
        data = {
            output_key: _apply_rule(rule, record, current_day)
            for output_key, rule in config.fields.items()
        }
        return NormalizedRecord(document_type=resolved_id, format_id=config.format, data=data)


def load_doctype_registry(path: Path | None = None) -> DocumentTypeRegistry:
    """Load and validate document type normalizers from YAML."""

    table_path = path or Path(__file__).with_name("doctypes.yaml")

    try:
        raw = yaml.safe_load(table_path.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise ValueError(f"Document type table not found: {table_path}") from exc
    except yaml.YAMLError as exc:
        raise ValueError(f"Invalid YAML in document type table: {table_path}") from exc

    if not isinstance(raw, dict):
        raise ValueError(f"Document type table must contain a mapping: {table_path}")

    try:
        table = DocumentTypeTable.model_validate(raw)
    except ValidationError as exc:
        raise ValueError(f"Invalid document type table schema: {table_path}") from exc
    return DocumentTypeRegistry(table)


def clean_value(value: Any) -> Any:
    """Trim strings; ``None``, blank, ``"null"`` and ``"undefined"`` become ``""``.

    Booleans become ``"X"``/``""`` so check-box cells read the same everywhere.
    """

    if value is None:
        return ""
    if isinstance(value, bool):
        return "X" if value else ""
    if isinstance(value, str):
        text = value.strip()
        return "" if text.lower() in _EMPTY_MARKERS else text
    return value


def flag_value(value: Any) -> str:
    if value is True:
        return "X"
    if value is None or value is False:
        return ""
    return "X" if str(value).strip().lower() in _TRUTHY_FLAGS else ""


def _apply_rule(rule: FieldRule, record: Mapping[str, Any], today: date) -> Any:
    if rule.flag is not None:
        return flag_value(_pick(record, rule.flag))

    for key in rule.candidates:
        cleaned = clean_value(_pick(record, key))
        if cleaned != "":
            return cleaned

    for parts in rule.join_any:
        joined = " ".join(
            str(cleaned) for cleaned in (clean_value(_pick(record, key)) for key in parts) if cleaned != ""
        )
        if joined:
            return joined

    if rule.today:
        return today.strftime("%d/%m/%Y")
    if rule.default is not None:
        return rule.default
    return ""


def _pick(record: Mapping[str, Any], key: str) -> Any:
    if key in record:
        return record[key]
    current: Any = record
    for segment in key.split("."):
        if not isinstance(current, Mapping) or segment not in current:
            return None
        current = current[segment]
    return current


def _has_value(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip() != ""
    return True
