from __future__ import annotations

import httpx
import pytest

import apps.api.main as api_main
from apps.api.main import app


@pytest.mark.anyio
async def test_request_id_header_present_for_404() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/__does_not_exist__")

    assert response.status_code == 404
    assert response.headers["X-Docbuilder-Request-Id"]


@pytest.mark.anyio
async def test_request_id_header_present_for_405() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post("/healthz")

    assert response.status_code == 405
    assert response.headers["X-Docbuilder-Request-Id"]


@pytest.mark.anyio
async def test_unhandled_error_becomes_internal_error(
    tmp_path, monkeypatch: pytest.MonkeyPatch
) -> None:
    def boom(*args, **kwargs):
        raise RuntimeError("unexpected")

    monkeypatch.delenv("SUPABASE_URL", raising=False)
    monkeypatch.setenv("DOCBUILDER_TEMPLATES_DIR", str(tmp_path))
    monkeypatch.setenv("DOCBUILDER_OUTPUT_DIR", str(tmp_path / "generated"))
    monkeypatch.setattr(api_main, "build_document", boom)

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.post("/api/generar-documento", json={"data": {"nombre": "Ana"}})

    assert response.status_code == 500
    payload = response.json()
    assert payload["error_code"] == "INTERNAL_ERROR"
    assert payload["detail"]["path"] == "/api/generar-documento"
    assert payload["detail"]["request_id"] == response.headers["X-Docbuilder-Request-Id"]
