"""Local JSON store for generated document metadata."""

from __future__ import annotations

import json
import threading
import uuid
from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

_STORE_VERSION = 1


@dataclass
class DocumentRecord:
    """Metadata row for one persisted document."""

    id: str
    file_name: str
    format_id: str
    content_hash: str
    location: str
    created_at: str
    document_type: str | None = None
    prospect_id: str | None = None
    expediente: str | None = None
    wa_id: str | None = None
    download_count: int = 0
    last_download_at: str | None = None


@dataclass
class DocumentStoreData:
    """On-disk JSON structure for generated document metadata."""

    version: int = _STORE_VERSION
    documents: dict[str, DocumentRecord] = field(default_factory=dict)


class GeneratedDocumentStore:
    """Persist document metadata rows in a JSON file.

    Writes replace the file atomically; a process-local lock serializes
    read-modify-write cycles.
    """

    def __init__(self, store_path: Path) -> None:
        self._store_path = store_path
        self._lock = threading.Lock()

    def add(
        self,
        *,
        file_name: str,
        format_id: str,
        content_hash: str,
        location: str,
        document_type: str | None = None,
        prospect_id: str | None = None,
        expediente: str | None = None,
        wa_id: str | None = None,
        now: datetime | None = None,
    ) -> DocumentRecord:
        record = DocumentRecord(
            id=uuid.uuid4().hex,
            file_name=file_name,
            format_id=format_id,
            content_hash=content_hash,
            location=location,
            created_at=_iso(now),
            document_type=document_type,
            prospect_id=prospect_id,
            expediente=expediente,
            wa_id=wa_id,
        )
        with self._lock:
            data = self._read_data()
            data.documents[record.id] = record
            self._write_data(data)
        return record

    def get(self, document_id: str) -> DocumentRecord | None:
        return self._read_data().documents.get(document_id)

    def list_documents(
        self,
        *,
        prospect_id: str | None = None,
        format_id: str | None = None,
        limit: int = 50,
    ) -> list[DocumentRecord]:
        """Newest first, optionally filtered by prospect and format."""

        rows = [
            record
            for record in self._read_data().documents.values()
            if (prospect_id is None or record.prospect_id == prospect_id)
            and (format_id is None or record.format_id == format_id)
        ]
        rows.sort(key=lambda record: record.created_at, reverse=True)
        return rows[: max(limit, 0)]

    def find_latest(self, *, prospect_id: str, format_id: str) -> DocumentRecord | None:
        rows = self.list_documents(prospect_id=prospect_id, format_id=format_id, limit=1)
        return rows[0] if rows else None

    def increment_downloads(
        self,
        document_id: str,
        now: datetime | None = None,
    ) -> DocumentRecord | None:
        with self._lock:
            data = self._read_data()
            record = data.documents.get(document_id)
            if record is None:
                return None
            record.download_count += 1
            record.last_download_at = _iso(now)
            self._write_data(data)
        return record

    def stats(self, now: datetime | None = None, window_days: int = 30) -> dict[str, Any]:
        """Counts for the trailing window: total, last day, last week, per format."""

        current = now or datetime.now(timezone.utc)
        window_start = current - timedelta(days=window_days)
        day_start = current - timedelta(days=1)
        week_start = current - timedelta(days=7)

        created = [
            (datetime.fromisoformat(record.created_at), record.format_id)
            for record in self._read_data().documents.values()
        ]
        recent = [(stamp, format_id) for stamp, format_id in created if stamp > window_start]
        return {
            "total": len(recent),
            "last_day": sum(1 for stamp, _ in recent if stamp > day_start),
            "last_week": sum(1 for stamp, _ in recent if stamp > week_start),
            "by_format": dict(sorted(Counter(format_id for _, format_id in recent).items())),
        }

    def _read_data(self) -> DocumentStoreData:
        if not self._store_path.exists():
            return DocumentStoreData()

        try:
            raw = json.loads(self._store_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ValueError(f"Invalid document store JSON: {self._store_path}") from exc

        documents: dict[str, DocumentRecord] = {}
        for document_id, item in raw.get("documents", {}).items():
            documents[document_id] = DocumentRecord(**item)

        version = int(raw.get("version", _STORE_VERSION))
        return DocumentStoreData(version=version, documents=documents)

    def _write_data(self, data: DocumentStoreData) -> None:
        self._store_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self._store_path.with_suffix(f"{self._store_path.suffix}.tmp")

        payload = {
            "version": data.version,
            "documents": {key: asdict(data.documents[key]) for key in sorted(data.documents)},
        }
        temp_path.write_text(
            json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False),
            encoding="utf-8",
        )
        temp_path.replace(self._store_path)


def _iso(now: datetime | None) -> str:
    return (now or datetime.now(timezone.utc)).isoformat()
