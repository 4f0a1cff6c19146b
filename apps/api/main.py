"""FastAPI wrapper for the document builder."""

from __future__ import annotations

import asyncio
import base64
import logging
import threading
import time
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from urllib.parse import quote, unquote, urlparse

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse, Response
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from core.delivery.webhook import WebhookClient
from core.orchestrator.pipeline import (
    BatchResult,
    BuildContext,
    BuildFailure,
    BuiltDocument,
    build_document,
    build_documents,
)
from core.settings import Settings, cors_origins_from_env
from core.storage.document_store import DocumentRecord, GeneratedDocumentStore
from core.storage.template_storage import LocalStorage, OutputStorage, SupabaseStorage
from core.utils.errors import DeliveryError, StorageError
from core.utils.log_events import log_event

app = FastAPI(title="docbuilder API", version="0.1.0")
logger = logging.getLogger("docbuilder.api")

REQUEST_ID_HEADER = "X-Docbuilder-Request-Id"
CONTENT_HASH_HEADER = "X-Docbuilder-Content-Hash"

_CONTROL_KEYS = frozenset({"formato", "template", "tipo_ficha", "saveToStorage", "sendToN8n"})
_MAX_LIST_LIMIT = 500

_cors_origins = cors_origins_from_env()
if _cors_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(_cors_origins),
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
        expose_headers=[REQUEST_ID_HEADER, CONTENT_HASH_HEADER, "Content-Disposition"],
    )


class GenerateRequest(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    data: dict[str, Any] | list[dict[str, Any]]
    formato: str | None = None
    tipo_ficha: str | None = None
    save_to_storage: bool = Field(default=False, alias="saveToStorage")


class BatchRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    fichas_a_generar: list[str] = Field(min_length=1)
    datos_prospecto: dict[str, Any] | list[dict[str, Any]]


@dataclass
class _Runtime:
    settings: Settings
    context: BuildContext
    outputs: OutputStorage
    documents: GeneratedDocumentStore
    webhook: WebhookClient | None


class ApiRequestError(Exception):
    def __init__(
        self,
        *,
        status_code: int,
        error_code: str,
        message: str,
        detail: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.detail = detail or {}


_runtime_lock = threading.Lock()
_runtime_cache: _Runtime | None = None


@app.middleware("http")
async def request_id_middleware(request: Request, call_next):
    """Ensure every response has a request id header."""

    request_id = uuid.uuid4().hex
    request.state.request_id = request_id
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:  # noqa: BLE001
        logger.exception("unhandled error on %s", request.url.path)
        _log_event(
            logging.ERROR,
            "error",
            request_id,
            error_code="INTERNAL_ERROR",
            status_code=500,
            failure_stage="middleware",
            path=request.url.path,
        )
        response = _error_response(
            status_code=500,
            error_code="INTERNAL_ERROR",
            message="internal server error",
            request_id=request_id,
            detail={"path": request.url.path},
        )
    response.headers.setdefault(REQUEST_ID_HEADER, request_id)
    _log_event(
        logging.INFO,
        "done",
        request_id,
        path=request.url.path,
        status_code=response.status_code,
        total_ms=_elapsed_ms(started),
    )
    return response


@app.exception_handler(ApiRequestError)
async def api_request_error_handler(request: Request, exc: ApiRequestError) -> JSONResponse:
    request_id = _request_id_from_request(request)
    _log_event(
        logging.ERROR,
        "error",
        request_id,
        error_code=exc.error_code,
        status_code=exc.status_code,
        failure_stage=exc.detail.get("stage", "request"),
        path=request.url.path,
    )
    return _error_response(
        status_code=exc.status_code,
        error_code=exc.error_code,
        message=exc.message,
        request_id=request_id,
        detail=exc.detail,
    )


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    """Liveness endpoint."""

    return {"status": "ok"}


@app.get("/readyz")
async def readyz(request: Request) -> JSONResponse:
    """Readiness: template storage must answer a listing."""

    runtime = _get_runtime()
    try:
        templates = await asyncio.to_thread(runtime.context.storage.list_templates)
    except StorageError as exc:
        return _error_response(
            status_code=503,
            error_code="STORAGE_UNAVAILABLE",
            message=str(exc),
            request_id=_request_id_from_request(request),
        )
    return JSONResponse(
        status_code=200,
        content={
            "status": "ready",
            "storage": "supabase" if runtime.settings.uses_remote_storage else "local",
            "templates": len(templates),
            "webhook_configured": runtime.webhook is not None,
        },
    )


@app.post("/webhook/generar-documento", response_model=None)
async def webhook_generate(request: Request) -> Response:
    """Build one document from a raw record and return the file bytes."""

    request_id = _request_id_from_request(request)
    body = await _read_json(request)
    if isinstance(body, list):
        body = body[0] if body else {}
    if not isinstance(body, dict):
        raise ApiRequestError(
            status_code=422,
            error_code="VALIDATION_ERROR",
            message="request body must be a JSON object",
            detail={"stage": "validate_input"},
        )

    document_type = _optional_text(body.get("tipo_ficha"))
    format_id = _optional_text(body.get("formato")) or _optional_text(body.get("template"))
    if format_id is None and document_type is None:
        format_id = "general"
    record = {key: value for key, value in body.items() if key not in _CONTROL_KEYS}
    runtime = _get_runtime()

    _log_event(
        logging.INFO,
        "start",
        request_id,
        endpoint="webhook",
        format_id=format_id,
        document_type=document_type,
    )
    built = await asyncio.to_thread(
        build_document,
        record,
        context=runtime.context,
        format_id=format_id,
        document_type=document_type,
    )
    if isinstance(built, BuildFailure):
        raise _failure_error(built)

    location: str | None = None
    if body.get("saveToStorage", True) is not False:
        location = await asyncio.to_thread(_persist, runtime, built, record, request_id)
    if runtime.webhook is not None and body.get("sendToN8n", True) is not False:
        await asyncio.to_thread(_deliver, runtime, built, location, request_id)

    headers = {
        "Content-Disposition": _content_disposition(built.file_name),
        CONTENT_HASH_HEADER: built.content_hash,
    }
    return Response(content=built.content, media_type=built.mime_type, headers=headers)


@app.post("/api/generar-documento")
async def api_generate(request: Request) -> JSONResponse:
    """Build one document and return it base64-encoded."""

    request_id = _request_id_from_request(request)
    payload = _validate(GenerateRequest, await _read_json(request))
    runtime = _get_runtime()

    _log_event(
        logging.INFO,
        "start",
        request_id,
        endpoint="api",
        format_id=payload.formato,
        document_type=payload.tipo_ficha,
    )
    built = await asyncio.to_thread(
        build_document,
        payload.data,
        context=runtime.context,
        format_id=payload.formato or (None if payload.tipo_ficha else "general"),
        document_type=payload.tipo_ficha,
    )
    if isinstance(built, BuildFailure):
        raise _failure_error(built)

    storage_url: str | None = None
    if payload.save_to_storage:
        record = payload.data[0] if isinstance(payload.data, list) and payload.data else payload.data
        storage_url = await asyncio.to_thread(_persist, runtime, built, record, request_id)

    return JSONResponse(
        status_code=200,
        content={
            "success": True,
            "data": {
                "fileName": built.file_name,
                "formato": built.format_id,
                "tipoFicha": built.document_type,
                "base64Data": base64.b64encode(built.content).decode("ascii"),
                "storageUrl": storage_url,
                "dataHash": built.content_hash,
                "fillReport": built.report.model_dump(mode="json"),
            },
            "timestamp": _now_iso(),
        },
    )


@app.post("/api/generar-multiples")
async def api_generate_many(request: Request) -> JSONResponse:
    """Build several document types from one prospect record."""

    request_id = _request_id_from_request(request)
    payload = _validate(BatchRequest, await _read_json(request))
    runtime = _get_runtime()

    _log_event(
        logging.INFO,
        "start",
        request_id,
        endpoint="batch",
        document_types=payload.fichas_a_generar,
    )
    result = await asyncio.to_thread(
        build_documents,
        payload.fichas_a_generar,
        payload.datos_prospecto,
        context=runtime.context,
    )
    return JSONResponse(
        status_code=200 if result.success else 400,
        content=_batch_payload(result),
    )


@app.get("/api/plantillas")
async def list_templates() -> JSONResponse:
    runtime = _get_runtime()
    try:
        templates = await asyncio.to_thread(runtime.context.storage.list_templates)
    except StorageError as exc:
        raise ApiRequestError(
            status_code=502,
            error_code="STORAGE_ERROR",
            message=str(exc),
            detail={"stage": "list_templates"},
        ) from exc

    plantillas = [
        {
            "nombre": item.name,
            "tamaño": item.size or 0,
            "fechaModificacion": item.updated_at,
            "tipo": item.file_type,
        }
        for item in templates
    ]
    return JSONResponse(
        status_code=200,
        content={
            "success": True,
            "plantillas": plantillas,
            "total": len(plantillas),
            "timestamp": _now_iso(),
        },
    )


@app.get("/api/documentos")
async def list_documents(
    prospect_id: str | None = None,
    formato: str | None = None,
    limite: int = 50,
) -> JSONResponse:
    runtime = _get_runtime()
    rows = runtime.documents.list_documents(
        prospect_id=prospect_id,
        format_id=formato,
        limit=min(max(limite, 0), _MAX_LIST_LIMIT),
    )
    return JSONResponse(
        status_code=200,
        content={
            "success": True,
            "documentos": [_document_payload(row) for row in rows],
            "total": len(rows),
            "timestamp": _now_iso(),
        },
    )


@app.get("/api/descargar/{document_id}", response_model=None)
async def download_document(document_id: str) -> Response:
    runtime = _get_runtime()
    row = runtime.documents.increment_downloads(document_id)
    if row is None:
        raise ApiRequestError(
            status_code=404,
            error_code="NOT_FOUND",
            message="document not found",
            detail={"document_id": document_id},
        )

    parsed = urlparse(row.location)
    if parsed.scheme in {"http", "https"}:
        return RedirectResponse(url=row.location, status_code=307)

    path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(row.location)
    if not path.is_file():
        raise ApiRequestError(
            status_code=404,
            error_code="NOT_FOUND",
            message="document file is no longer available",
            detail={"document_id": document_id},
        )
    return FileResponse(path, filename=row.file_name)


@app.get("/api/stats")
async def stats() -> JSONResponse:
    runtime = _get_runtime()
    counts = runtime.documents.stats()
    return JSONResponse(
        status_code=200,
        content={
            "success": True,
            "stats": {
                "totales": {
                    "documentos": counts["total"],
                    "hoy": counts["last_day"],
                    "semana": counts["last_week"],
                },
                "porFormato": counts["by_format"],
            },
            "timestamp": _now_iso(),
        },
    )


def _get_runtime() -> _Runtime:
    global _runtime_cache

    try:
        settings = Settings.from_env()
    except ValueError as exc:
        raise ApiRequestError(
            status_code=500,
            error_code="CONFIGURATION_ERROR",
            message=str(exc),
            detail={"stage": "settings"},
        ) from exc

    with _runtime_lock:
        if _runtime_cache is None or _runtime_cache.settings != settings:
            _runtime_cache = _create_runtime(settings)
        return _runtime_cache


def _create_runtime(settings: Settings) -> _Runtime:
    logging.getLogger("docbuilder").setLevel(settings.log_level)
    if settings.uses_remote_storage:
        storage = SupabaseStorage(
            base_url=settings.supabase_url or "",
            api_key=settings.supabase_key or "",
            templates_bucket=settings.templates_bucket,
            generated_bucket=settings.generated_bucket,
            timeout_seconds=settings.http_timeout_seconds,
        )
        templates: Any = storage
        outputs: OutputStorage = storage
    else:
        local = LocalStorage(settings.templates_dir, settings.output_dir)
        templates = local
        outputs = local

    context = BuildContext.create(
        templates,
        formats_path=settings.formats_path,
        doctypes_path=settings.doctypes_path,
        file_prefix=settings.file_prefix,
        protection_secret=settings.protection_secret,
    )
    webhook = (
        WebhookClient(settings.webhook_url, timeout_seconds=settings.http_timeout_seconds)
        if settings.webhook_url
        else None
    )
    return _Runtime(
        settings=settings,
        context=context,
        outputs=outputs,
        documents=GeneratedDocumentStore(settings.metadata_path),
        webhook=webhook,
    )


def _persist(
    runtime: _Runtime,
    built: BuiltDocument,
    record: dict[str, Any],
    request_id: str,
) -> str | None:
    """Upload the output and record its metadata; failures are logged, not raised."""

    try:
        location = runtime.outputs.upload(
            built.file_name,
            built.content,
            content_type=built.mime_type,
        )
    except StorageError as exc:
        _log_event(
            logging.WARNING,
            "persist_failed",
            request_id,
            format_id=built.format_id,
            file_name=built.file_name,
            message=str(exc),
        )
        return None

    try:
        runtime.documents.add(
            file_name=built.file_name,
            format_id=built.format_id,
            content_hash=built.content_hash,
            location=location,
            document_type=built.document_type,
            prospect_id=_optional_text(record.get("paciente_id")) or _optional_text(record.get("id")),
            expediente=_optional_text(record.get("numero_de_expediente"))
            or _optional_text(record.get("expediente")),
            wa_id=_optional_text(record.get("wa_id")),
        )
    except (OSError, ValueError) as exc:
        _log_event(
            logging.WARNING,
            "metadata_failed",
            request_id,
            file_name=built.file_name,
            message=str(exc),
        )
    _log_event(
        logging.INFO,
        "persisted",
        request_id,
        format_id=built.format_id,
        file_name=built.file_name,
    )
    return location


def _deliver(runtime: _Runtime, built: BuiltDocument, location: str | None, request_id: str) -> None:
    assert runtime.webhook is not None
    try:
        runtime.webhook.send(
            file_name=built.file_name,
            mime_type=built.mime_type,
            content=built.content,
            metadata={
                "formato": built.format_id,
                "dataHash": built.content_hash,
                "storageUrl": location,
            },
        )
    except DeliveryError as exc:
        _log_event(
            logging.WARNING,
            "delivery_failed",
            request_id,
            format_id=built.format_id,
            status_code=exc.status_code,
            message=str(exc),
        )


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError as exc:
        raise ApiRequestError(
            status_code=400,
            error_code="INVALID_JSON",
            message="request body must be valid JSON",
            detail={"stage": "validate_input"},
        ) from exc


def _validate(model: type[BaseModel], body: Any) -> Any:
    try:
        return model.model_validate(body)
    except ValidationError as exc:
        raise ApiRequestError(
            status_code=422,
            error_code="VALIDATION_ERROR",
            message="invalid request body",
            detail={
                "stage": "validate_input",
                "errors": exc.errors(include_url=False, include_context=False, include_input=False),
            },
        ) from exc


def _failure_error(failure: BuildFailure) -> ApiRequestError:
    return ApiRequestError(
        status_code=422 if failure.error_code == "VALIDATION_ERROR" else 400,
        error_code=failure.error_code,
        message=failure.message,
        detail={
            "stage": failure.stage,
            "format_id": failure.format_id,
            "document_type": failure.document_type,
        },
    )


def _batch_payload(result: BatchResult) -> dict[str, Any]:
    return {
        "success": result.success,
        "documentos_generados": [
            {
                "tipo_ficha": document.document_type,
                "fileName": document.file_name,
                "fileData": base64.b64encode(document.content).decode("ascii"),
                "formato": document.format_id,
                "mimeType": document.mime_type,
                "dataHash": document.content_hash,
            }
            for document in result.documents
        ],
        "errores": [
            {"tipo_ficha": error.document_type, "error": error.message, **error.to_dict()}
            for error in result.errors
        ],
        "metadata": {
            "total_solicitados": len(result.requested),
            "total_generados": len(result.documents),
            "total_errores": len(result.errors),
            "timestamp": _now_iso(),
        },
    }


def _document_payload(row: DocumentRecord) -> dict[str, Any]:
    return {
        "id": row.id,
        "fileName": row.file_name,
        "formato": row.format_id,
        "tipoFicha": row.document_type,
        "dataHash": row.content_hash,
        "prospectId": row.prospect_id,
        "expediente": row.expediente,
        "waId": row.wa_id,
        "location": row.location,
        "createdAt": row.created_at,
        "downloadCount": row.download_count,
        "lastDownloadAt": row.last_download_at,
    }


def _content_disposition(file_name: str) -> str:
    ascii_name = file_name.encode("ascii", "replace").decode("ascii").replace('"', "_")
    return f"attachment; filename=\"{ascii_name}\"; filename*=UTF-8''{quote(file_name)}"


def _optional_text(value: Any) -> str | None:
    if value is None or isinstance(value, (dict, list, bool)):
        return None
    text = str(value).strip()
    return text or None


def _request_id_from_request(request: Request) -> str:
    request_id = getattr(request.state, "request_id", None)
    if isinstance(request_id, str) and request_id:
        return request_id
    return uuid.uuid4().hex


def _error_response(
    *,
    status_code: int,
    error_code: str,
    message: str,
    request_id: str,
    detail: dict[str, Any] | None = None,
) -> JSONResponse:
    payload_detail = dict(detail or {})
    payload_detail["request_id"] = request_id

    return JSONResponse(
        status_code=status_code,
        headers={REQUEST_ID_HEADER: request_id},
        content={
            "error_code": error_code,
            "message": message,
            "detail": payload_detail,
        },
    )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


def _log_event(level: int, event: str, request_id: str, **fields: Any) -> None:
    log_event(logger, level, event, request_id=request_id, **fields)
