"""Document assembly: record -> template + mapping table -> filled bytes."""

from __future__ import annotations

import io
import logging
import time
import zipfile
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Any

from docx import Document
from docx.opc.exceptions import PackageNotFoundError
from openpyxl import load_workbook
from openpyxl.utils.exceptions import IllegalCharacterError, InvalidFileException

from core.doctypes.registry import DocumentTypeRegistry, load_doctype_registry
from core.formats.models import FormatConfig
from core.formats.registry import FormatRegistry, load_format_registry
from core.mapping.resolver import ResolvedRecord, prepare_record
from core.mapping.table_loader import MappingRow, MappingTableCache
from core.orchestrator.naming import (
    build_batch_file_name,
    build_file_name,
    content_hash,
    filter_record,
)
from core.render.docx_filler import fill_document
from core.render.models import FillReport
from core.render.post_rules import apply_post_rules
from core.render.xlsx_filler import fill_workbook, select_worksheet
from core.storage.template_storage import TemplateStorage
from core.utils.errors import (
    ConfigurationError,
    DocumentBuildError,
    InputValidationError,
    RenderError,
    StorageError,
)
from core.utils.log_events import log_event

logger = logging.getLogger("docbuilder.pipeline")

_LEGACY_SUFFIXES = frozenset({".xls", ".doc"})


def _local_now() -> datetime:
    """Aware local time; file-name dates and ages follow the server's calendar day."""

    return datetime.now().astimezone()


@dataclass
class BuildContext:
    """Collaborators shared by every build in one process."""

    storage: TemplateStorage
    formats: FormatRegistry
    doctypes: DocumentTypeRegistry
    mapping_cache: MappingTableCache
    file_prefix: str = "SUMATE"
    protection_secret: str | None = None
    clock: Callable[[], datetime] = _local_now

    @classmethod
    def create(
        cls,
        storage: TemplateStorage,
        *,
        formats_path: Path | None = None,
        doctypes_path: Path | None = None,
        file_prefix: str = "SUMATE",
        protection_secret: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> BuildContext:
        formats = load_format_registry(formats_path)
        return cls(
            storage=storage,
            formats=formats,
            doctypes=load_doctype_registry(doctypes_path),
            mapping_cache=MappingTableCache(storage, formats),
            file_prefix=file_prefix,
            protection_secret=protection_secret,
            clock=clock or _local_now,
        )


@dataclass(frozen=True)
class BuiltDocument:
    content: bytes
    file_name: str
    content_hash: str
    format_id: str
    document_type: str | None
    mime_type: str
    report: FillReport

    success = True

    @property
    def kind(self) -> str:
        return self.report.kind


@dataclass(frozen=True)
class BuildFailure:
    error_code: str
    message: str
    stage: str
    format_id: str | None = None
    document_type: str | None = None

    success = False

    @classmethod
    def from_error(cls, error: DocumentBuildError) -> BuildFailure:
        return cls(
            error_code=error.error_code,
            message=error.message,
            stage=error.stage,
            format_id=error.format_id,
            document_type=error.document_type,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "stage": self.stage,
            "format_id": self.format_id,
            "document_type": self.document_type,
        }


@dataclass
class BatchResult:
    requested: list[str]
    documents: list[BuiltDocument] = field(default_factory=list)
    errors: list[BuildFailure] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return bool(self.documents)


def build_document(
    record: Any,
    *,
    context: BuildContext,
    format_id: str | None = None,
    document_type: str | None = None,
) -> BuiltDocument | BuildFailure:
    """Build one document; every DocumentBuildError becomes a BuildFailure.

    Unexpected exceptions propagate to the caller's top-level handler.
    """

    started = time.perf_counter()
    try:
        built = _build(record, context=context, format_id=format_id, document_type=document_type)
    except DocumentBuildError as exc:
        failure = BuildFailure.from_error(exc)
        log_event(
            logger,
            logging.WARNING,
            "build_failed",
            error_code=failure.error_code,
            failure_stage=failure.stage,
            format_id=failure.format_id or format_id,
            document_type=failure.document_type or document_type,
            message=failure.message,
        )
        return failure

    summary = built.report.summary
    log_event(
        logger,
        logging.INFO,
        "fill_summary",
        format_id=built.format_id,
        document_type=built.document_type,
        kind=built.kind,
        total_rows=summary.total_rows,
        written=summary.written_count,
        blanked=summary.blanked_count,
        skipped=summary.skipped_count,
        unmapped=summary.unmapped_count,
        markers_cleared=summary.markers_cleared,
        build_ms=int((time.perf_counter() - started) * 1000),
    )
    for warning in built.report.warnings:
        log_event(
            logger,
            logging.INFO,
            "partial_mapping" if warning.code == "PARTIAL_MAPPING" else warning.code.lower(),
            format_id=built.format_id,
            count=len(warning.source_paths),
        )
    return built


def build_documents(
    document_types: Iterable[str],
    record: Any,
    *,
    context: BuildContext,
) -> BatchResult:
    """Build each document type independently; file names follow the batch pattern."""

    requested = list(document_types)
    result = BatchResult(requested=requested)
    try:
        naming_source = _first_record(record)
    except InputValidationError:
        naming_source = {}

    for document_type in requested:
        built = build_document(record, context=context, document_type=document_type)
        if isinstance(built, BuildFailure):
            result.errors.append(built)
            continue
        file_name = build_batch_file_name(naming_source, document_type, built.kind)
        result.documents.append(replace(built, file_name=file_name))

    return result


def _build(
    record: Any,
    *,
    context: BuildContext,
    format_id: str | None,
    document_type: str | None,
) -> BuiltDocument:
    source = _first_record(record)
    if not filter_record(source):
        raise InputValidationError(
            "no usable fields in input record",
            stage="validate_input",
            format_id=format_id,
            document_type=document_type,
        )

    now = context.clock()
    requested_format = format_id
    resolved_type = document_type
    if document_type:
        normalized = context.doctypes.normalize(document_type, source, today=now.date())
        source = dict(normalized.data)
        resolved_type = normalized.document_type
        requested_format = format_id or normalized.format_id

    filtered = filter_record(source)
    if not filtered:
        raise InputValidationError(
            f"document type '{resolved_type}' produced no usable fields",
            stage="validate_input",
            format_id=format_id,
            document_type=resolved_type,
        )

    canonical_id, config = context.formats.resolve(requested_format)
    if requested_format and not context.formats.is_known(requested_format):
        log_event(
            logger,
            logging.WARNING,
            "format_fallback",
            requested=requested_format,
            format_id=canonical_id,
        )

    resolved = prepare_record(filtered, today=now.date())
    template_bytes = _download_template(context, config, canonical_id)
    rows = context.mapping_cache.get_or_load(canonical_id)

    if config.kind == "xlsx":
        content, report = _render_xlsx(template_bytes, resolved, rows, config, canonical_id, context, now)
    else:
        content, report = _render_docx(template_bytes, resolved, rows, canonical_id)

    file_name = build_file_name(
        prefix=context.file_prefix,
        file_label=config.file_label,
        naming=config.naming,
        extension=config.extension,
        index=resolved.index,
        record=filtered,
        today=now.date(),
    )
    return BuiltDocument(
        content=content,
        file_name=file_name,
        content_hash=content_hash(filtered),
        format_id=canonical_id,
        document_type=resolved_type,
        mime_type=config.mime_type,
        report=report,
    )


def _first_record(record: Any) -> dict[str, Any]:
    if isinstance(record, list):
        record = record[0] if record else {}
    if not isinstance(record, Mapping):
        raise InputValidationError("input record must be a JSON object", stage="validate_input")
    return dict(record)


def _download_template(context: BuildContext, config: FormatConfig, format_id: str) -> bytes:
    if Path(config.template).suffix.lower() in _LEGACY_SUFFIXES:
        raise ConfigurationError(
            f"legacy binary template '{config.template}' is not supported",
            stage="load_template",
            format_id=format_id,
        )
    try:
        return context.storage.download(config.template)
    except StorageError as exc:
        raise ConfigurationError(
            f"template '{config.template}' could not be downloaded: {exc}",
            stage="load_template",
            format_id=format_id,
        ) from exc


def _render_xlsx(
    template_bytes: bytes,
    resolved: ResolvedRecord,
    rows: tuple[MappingRow, ...],
    config: FormatConfig,
    format_id: str,
    context: BuildContext,
    now: datetime,
) -> tuple[bytes, FillReport]:
    try:
        workbook = load_workbook(io.BytesIO(template_bytes))
    except (InvalidFileException, zipfile.BadZipFile, KeyError, ValueError, OSError) as exc:
        raise RenderError(
            f"template is not a readable workbook: {type(exc).__name__}: {exc}",
            stage="load_template",
            format_id=format_id,
        ) from exc

    try:
        report = fill_workbook(
            workbook,
            resolved,
            rows,
            sheet_name=config.sheet,
            format_id=format_id,
        )
        worksheet = select_worksheet(workbook, config.sheet, format_id=format_id)
        apply_post_rules(
            worksheet,
            config.post_rules,
            report,
            protection_secret=context.protection_secret,
            timestamp_ms=int(now.timestamp() * 1000),
            format_id=format_id,
        )
    except (IllegalCharacterError, TypeError, ValueError) as exc:
        raise RenderError(
            f"{type(exc).__name__}: {exc}",
            stage="fill",
            format_id=format_id,
        ) from exc

    buffer = io.BytesIO()
    try:
        workbook.save(buffer)
    except (IllegalCharacterError, TypeError, ValueError) as exc:
        raise RenderError(
            f"{type(exc).__name__}: {exc}",
            stage="serialize",
            format_id=format_id,
        ) from exc
    return buffer.getvalue(), report


def _render_docx(
    template_bytes: bytes,
    resolved: ResolvedRecord,
    rows: tuple[MappingRow, ...],
    format_id: str,
) -> tuple[bytes, FillReport]:
    try:
        document = Document(io.BytesIO(template_bytes))
    except (PackageNotFoundError, zipfile.BadZipFile, KeyError, ValueError) as exc:
        raise RenderError(
            f"template is not a readable document: {type(exc).__name__}: {exc}",
            stage="load_template",
            format_id=format_id,
        ) from exc

    try:
        report = fill_document(document, resolved, rows)
    except ValueError as exc:
        raise RenderError(f"{type(exc).__name__}: {exc}", stage="fill", format_id=format_id) from exc

    buffer = io.BytesIO()
    try:
        document.save(buffer)
    except ValueError as exc:
        raise RenderError(
            f"{type(exc).__name__}: {exc}",
            stage="serialize",
            format_id=format_id,
        ) from exc
    return buffer.getvalue(), report
