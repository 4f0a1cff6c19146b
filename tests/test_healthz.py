from __future__ import annotations

import httpx
import pytest

from apps.api.main import app


@pytest.mark.anyio
async def test_healthz_returns_ok_and_request_id() -> None:
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        first = await client.get("/healthz")
        second = await client.get("/healthz")

    assert first.status_code == 200
    assert first.json() == {"status": "ok"}
    assert first.headers["X-Docbuilder-Request-Id"]
    assert first.headers["X-Docbuilder-Request-Id"] != second.headers["X-Docbuilder-Request-Id"]
