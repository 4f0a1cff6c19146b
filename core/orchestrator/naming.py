"""Output file naming and input hashing."""

from __future__ import annotations

import hashlib
import json
import re
import unicodedata
from collections.abc import Mapping
from datetime import date
from typing import Any

from core.mapping.flatten import FlatIndex

_NON_ALNUM_RE = re.compile(r"[^A-Za-z0-9]+")

EMPTY_SEGMENT = "SIN_VALOR"


def sanitize_segment(value: Any, *, fallback: str = EMPTY_SEGMENT) -> str:
    """Strip accents, turn other non-alphanumerics into ``_`` and upper-case."""

    text = "" if value is None else str(value)
    decomposed = unicodedata.normalize("NFD", text)
    ascii_only = "".join(char for char in decomposed if not unicodedata.combining(char))
    collapsed = _NON_ALNUM_RE.sub("_", ascii_only).strip("_")
    return collapsed.upper() or fallback


def format_file_date(day: date) -> str:
    return day.strftime("%d-%m-%Y")


def filter_record(record: Mapping[str, Any]) -> dict[str, Any]:
    """Drop top-level keys whose value is None or an empty/blank string."""

    return {
        key: value
        for key, value in record.items()
        if value is not None and not (isinstance(value, str) and value.strip() == "")
    }


def content_hash(filtered: Mapping[str, Any]) -> str:
    """MD5 over canonical JSON of the filtered input; for change detection only."""

    canonical = json.dumps(
        filtered,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )
    return hashlib.md5(canonical.encode("utf-8")).hexdigest()


def client_name(index: FlatIndex, record: Mapping[str, Any]) -> str:
    first = _first_text(
        index.get("cliente.primer_nombre"),
        index.get("cliente.nombre"),
        record.get("nombre"),
    )
    last = _first_text(
        index.get("cliente.apellido_paterno"),
        record.get("apellido_paterno"),
        record.get("apellido"),
    )
    return f"{first} {last}".strip()


def client_code(record: Mapping[str, Any]) -> str:
    return _first_text(
        record.get("codigo_de_prospecto"),
        record.get("codigo_de_cliente"),
        record.get("codigo"),
        record.get("id"),
    ) or "SIN_CODIGO"


def build_file_name(
    *,
    prefix: str,
    file_label: str,
    naming: str,
    extension: str,
    index: FlatIndex,
    record: Mapping[str, Any],
    today: date,
) -> str:
    """``PREFIX_LABEL_NAME_CODE_DD-MM-YYYY.ext`` or the expediente variant.

    Expediente naming: ``PREFIX_EXPEDIENTE_<number>_<name>_DD-MM-YYYY.ext``.
    """

    stamp = format_file_date(today)
    if naming == "expediente":
        number = _first_text(
            record.get("numero_de_expediente"),
            record.get("expediente"),
            index.get("numero_de_expediente"),
        ) or "SIN_EXPEDIENTE"
        name = " ".join(
            part
            for part in (
                _first_text(record.get("nombre")),
                _first_text(record.get("apellido_paterno"), record.get("apellido")),
            )
            if part
        ) or "SIN_NOMBRE"
        segments = [prefix, "EXPEDIENTE", sanitize_segment(number), sanitize_segment(name), stamp]
    else:
        segments = [
            prefix,
            file_label,
            sanitize_segment(client_name(index, record)),
            sanitize_segment(client_code(record)),
            stamp,
        ]
    return f"{'_'.join(segments)}.{extension}"


def build_batch_file_name(record: Mapping[str, Any], document_type: str, extension: str) -> str:
    """``APELLIDO_PATERNO_APELLIDO_MATERNO_NOMBRE_CODIGO_tipo.ext``; empty parts are dropped."""

    parts = [
        sanitize_segment(
            _first_text(
                record.get("primer_apellido"),
                record.get("apellido_paterno"),
                record.get("cliente_apellido_paterno"),
            ),
            fallback="",
        ),
        sanitize_segment(
            _first_text(
                record.get("segundo_apellido"),
                record.get("apellido_materno"),
                record.get("cliente_apellido_materno"),
            ),
            fallback="",
        ),
        sanitize_segment(
            _first_text(record.get("primer_nombre"), record.get("cliente_primer_nombre")),
            fallback="",
        ),
        sanitize_segment(
            _first_text(record.get("codigo_de_prospecto"), record.get("id_expediente")),
            fallback="",
        ),
        document_type,
    ]
    return f"{'_'.join(part for part in parts if part)}.{extension}"


def _first_text(*values: Any) -> str:
    for value in values:
        if value is None or isinstance(value, (dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return ""
