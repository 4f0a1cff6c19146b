"""Template and output storage collaborators.

``LocalStorage`` serves templates from a directory and writes outputs to
another. ``SupabaseStorage`` talks to the Supabase Storage REST API with httpx.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from core.utils.errors import StorageError
from core.utils.log_events import log_event

logger = logging.getLogger("docbuilder.storage")

_LIST_LIMIT = 100


@dataclass(frozen=True)
class TemplateInfo:
    name: str
    size: int | None = None
    updated_at: str | None = None

    @property
    def file_type(self) -> str:
        suffix = Path(self.name).suffix.lower()
        if suffix in {".xlsx", ".xls"}:
            return "excel"
        if suffix in {".docx", ".doc"}:
            return "word"
        if suffix == ".csv":
            return "mapping"
        return "unknown"


class TemplateStorage(Protocol):
    def download(self, name: str) -> bytes: ...

    def list_templates(self) -> list[TemplateInfo]: ...


class OutputStorage(Protocol):
    def upload(self, name: str, content: bytes, *, content_type: str) -> str: ...


class LocalStorage:
    """Filesystem-backed template and output storage."""

    def __init__(self, templates_dir: Path, output_dir: Path | None = None) -> None:
        self._templates_dir = templates_dir
        self._output_dir = output_dir

    def download(self, name: str) -> bytes:
        path = _safe_child(self._templates_dir, name)
        try:
            return path.read_bytes()
        except FileNotFoundError as exc:
            raise StorageError(f"template not found: {name}", name=name) from exc
        except OSError as exc:
            raise StorageError(f"template could not be read: {name}: {exc}", name=name) from exc

    def list_templates(self) -> list[TemplateInfo]:
        if not self._templates_dir.is_dir():
            raise StorageError(f"templates directory not found: {self._templates_dir}")
        items: list[TemplateInfo] = []
        for path in sorted(self._templates_dir.iterdir()):
            if not path.is_file() or path.name.startswith("."):
                continue
            stat = path.stat()
            items.append(
                TemplateInfo(
                    name=path.name,
                    size=stat.st_size,
                    updated_at=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc).isoformat(),
                )
            )
        return items

    def upload(self, name: str, content: bytes, *, content_type: str) -> str:
        if self._output_dir is None:
            raise StorageError("output directory is not configured", name=name)
        path = _safe_child(self._output_dir, name)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = path.with_suffix(f"{path.suffix}.tmp")
        try:
            temp_path.write_bytes(content)
            temp_path.replace(path)
        except OSError as exc:
            temp_path.unlink(missing_ok=True)
            raise StorageError(f"output could not be written: {name}: {exc}", name=name) from exc
        return path.resolve().as_uri()


class SupabaseStorage:
    """Supabase Storage REST client.

    Every non-2xx response, transport error or timeout is raised as
    StorageError; callers treat it like any other missing template.
    """

    def __init__(
        self,
        *,
        base_url: str,
        api_key: str,
        templates_bucket: str,
        generated_bucket: str,
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._templates_bucket = templates_bucket
        self._generated_bucket = generated_bucket
        self._client = client or httpx.Client(timeout=timeout_seconds)
        self._headers = {"apikey": api_key, "Authorization": f"Bearer {api_key}"}

    def download(self, name: str) -> bytes:
        url = self._object_url(self._templates_bucket, name)
        response = self._request("GET", url, name=name)
        return response.content

    def list_templates(self) -> list[TemplateInfo]:
        url = f"{self._base_url}/storage/v1/object/list/{self._templates_bucket}"
        body = {
            "prefix": "",
            "limit": _LIST_LIMIT,
            "offset": 0,
            "sortBy": {"column": "name", "order": "asc"},
        }
        response = self._request("POST", url, json=body)
        try:
            payload = response.json()
        except ValueError as exc:
            raise StorageError("template listing is not valid JSON") from exc
        if not isinstance(payload, list):
            raise StorageError("template listing must be a JSON array")
        return [_template_info(item) for item in payload if isinstance(item, dict) and item.get("name")]

    def upload(self, name: str, content: bytes, *, content_type: str) -> str:
        url = self._object_url(self._generated_bucket, name)
        self._request(
            "POST",
            url,
            name=name,
            content=content,
            extra_headers={"Content-Type": content_type, "x-upsert": "true"},
        )
        return self.public_url(name)

    def public_url(self, name: str) -> str:
        return f"{self._base_url}/storage/v1/object/public/{self._generated_bucket}/{quote(name)}"

    def close(self) -> None:
        self._client.close()

    def _object_url(self, bucket: str, name: str) -> str:
        return f"{self._base_url}/storage/v1/object/{bucket}/{quote(name)}"

    def _request(
        self,
        method: str,
        url: str,
        *,
        name: str | None = None,
        extra_headers: dict[str, str] | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        headers = dict(self._headers)
        if extra_headers:
            headers.update(extra_headers)
        try:
            response = self._client.request(method, url, headers=headers, **kwargs)
        except httpx.TimeoutException as exc:
            log_event(logger, logging.WARNING, "storage_timeout", method=method, name=name)
            raise StorageError(f"storage request timed out: {name or url}", name=name) from exc
        except httpx.HTTPError as exc:
            raise StorageError(f"storage request failed: {exc}", name=name) from exc

        if response.status_code >= 400:
            log_event(
                logger,
                logging.WARNING,
                "storage_error",
                method=method,
                name=name,
                status_code=response.status_code,
            )
            raise StorageError(
                f"storage returned HTTP {response.status_code} for {name or url}",
                name=name,
            )
        return response


def _template_info(item: dict[str, Any]) -> TemplateInfo:
    metadata = item.get("metadata") or {}
    size = metadata.get("size") if isinstance(metadata, dict) else None
    return TemplateInfo(
        name=str(item["name"]),
        size=int(size) if isinstance(size, (int, float)) else None,
        updated_at=item.get("updated_at"),
    )


def _safe_child(root: Path, name: str) -> Path:
    candidate = (root / name).resolve()
    resolved_root = root.resolve()
    if candidate != resolved_root and resolved_root not in candidate.parents:
        raise StorageError(f"invalid object name: {name}", name=name)
    return candidate
