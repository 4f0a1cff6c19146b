from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest

from core.storage.template_storage import LocalStorage, SupabaseStorage, TemplateInfo
from core.utils.errors import StorageError


def test_local_storage_download_and_listing(tmp_path: Path) -> None:
    templates = tmp_path / "templates"
    templates.mkdir()
    (templates / "Mapfield_general.csv").write_bytes(b"cell,raw_text,placeholder\n")
    (templates / "Formato.xlsx").write_bytes(b"xlsx")
    (templates / ".hidden").write_bytes(b"x")
    storage = LocalStorage(templates)

    assert storage.download("Formato.xlsx") == b"xlsx"
    listing = storage.list_templates()
    assert [item.name for item in listing] == ["Formato.xlsx", "Mapfield_general.csv"]
    assert listing[0].size == 4
    assert listing[0].updated_at is not None
    assert [item.file_type for item in listing] == ["excel", "mapping"]


def test_local_storage_missing_and_escaping_names(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path)

    with pytest.raises(StorageError, match="template not found") as excinfo:
        storage.download("nope.xlsx")
    assert excinfo.value.name == "nope.xlsx"

    with pytest.raises(StorageError, match="invalid object name"):
        storage.download("../outside.xlsx")


def test_local_storage_listing_requires_directory(tmp_path: Path) -> None:
    with pytest.raises(StorageError, match="templates directory not found"):
        LocalStorage(tmp_path / "absent").list_templates()


def test_local_storage_upload_returns_file_uri(tmp_path: Path) -> None:
    storage = LocalStorage(tmp_path / "templates", tmp_path / "out")

    location = storage.upload("doc.xlsx", b"payload", content_type="application/octet-stream")

    written = tmp_path / "out" / "doc.xlsx"
    assert written.read_bytes() == b"payload"
    assert location == written.resolve().as_uri()
    assert not (tmp_path / "out" / "doc.xlsx.tmp").exists()


def test_local_storage_upload_without_output_dir(tmp_path: Path) -> None:
    with pytest.raises(StorageError, match="output directory"):
        LocalStorage(tmp_path).upload("doc.xlsx", b"x", content_type="application/octet-stream")


@pytest.mark.parametrize(
    ("name", "file_type"),
    [("a.XLSX", "excel"), ("a.xls", "excel"), ("a.docx", "word"), ("a.doc", "word"), ("a.pdf", "unknown")],
)
def test_template_info_file_type(name: str, file_type: str) -> None:
    assert TemplateInfo(name=name).file_type == file_type


def _supabase(handler) -> tuple[SupabaseStorage, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def recording(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return handler(request)

    client = httpx.Client(transport=httpx.MockTransport(recording))
    storage = SupabaseStorage(
        base_url="https://project.supabase.co/",
        api_key="anon-key",
        templates_bucket="plantillas-documentos",
        generated_bucket="documentos-generados",
        client=client,
    )
    return storage, seen


def test_supabase_download_sends_auth_headers() -> None:
    storage, seen = _supabase(lambda request: httpx.Response(200, content=b"template"))

    assert storage.download("Visita domiciliaria con etiquetas.docx") == b"template"

    request = seen[0]
    assert request.method == "GET"
    assert request.url.raw_path.decode() == (
        "/storage/v1/object/plantillas-documentos/Visita%20domiciliaria%20con%20etiquetas.docx"
    )
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["authorization"] == "Bearer anon-key"


def test_supabase_list_templates_parses_metadata() -> None:
    payload = [
        {"name": "Formato.xlsx", "updated_at": "2024-03-01T00:00:00Z", "metadata": {"size": 1024}},
        {"name": "Mapfield_general.csv", "metadata": None},
        {"id": "folder-without-name"},
    ]
    storage, seen = _supabase(lambda request: httpx.Response(200, json=payload))

    listing = storage.list_templates()

    assert listing == [
        TemplateInfo(name="Formato.xlsx", size=1024, updated_at="2024-03-01T00:00:00Z"),
        TemplateInfo(name="Mapfield_general.csv"),
    ]
    body = json.loads(seen[0].content)
    assert seen[0].method == "POST"
    assert body["limit"] == 100
    assert body["sortBy"] == {"column": "name", "order": "asc"}


def test_supabase_list_templates_rejects_non_array() -> None:
    storage, _ = _supabase(lambda request: httpx.Response(200, json={"error": "x"}))

    with pytest.raises(StorageError, match="JSON array"):
        storage.list_templates()


def test_supabase_upload_upserts_and_returns_public_url() -> None:
    storage, seen = _supabase(lambda request: httpx.Response(200, json={"Key": "x"}))

    location = storage.upload("A B.xlsx", b"bytes", content_type="application/vnd.ms-excel")

    assert location == "https://project.supabase.co/storage/v1/object/public/documentos-generados/A%20B.xlsx"
    request = seen[0]
    assert request.method == "POST"
    assert request.headers["x-upsert"] == "true"
    assert request.headers["content-type"] == "application/vnd.ms-excel"
    assert request.content == b"bytes"


def test_supabase_http_error_becomes_storage_error() -> None:
    storage, _ = _supabase(lambda request: httpx.Response(404, json={"error": "not found"}))

    with pytest.raises(StorageError, match="HTTP 404") as excinfo:
        storage.download("missing.xlsx")
    assert excinfo.value.name == "missing.xlsx"


def test_supabase_timeout_becomes_storage_error() -> None:
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    storage, _ = _supabase(timeout)

    with pytest.raises(StorageError, match="timed out"):
        storage.download("Formato.xlsx")


def test_supabase_transport_error_becomes_storage_error() -> None:
    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    storage, _ = _supabase(refused)

    with pytest.raises(StorageError, match="storage request failed"):
        storage.list_templates()
