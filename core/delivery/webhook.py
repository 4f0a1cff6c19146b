"""Push generated documents to the workflow-automation webhook."""

from __future__ import annotations

import base64
import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from core.utils.errors import DeliveryError
from core.utils.log_events import log_event

logger = logging.getLogger("docbuilder.delivery")

SOURCE_NAME = "docbuilder"


def build_delivery_payload(
    *,
    file_name: str,
    mime_type: str,
    content: bytes,
    metadata: dict[str, Any] | None = None,
    now: datetime | None = None,
) -> dict[str, Any]:
    generated_at = (now or datetime.now(timezone.utc)).isoformat()
    return {
        "fileName": file_name,
        "mimeType": mime_type,
        "base64": base64.b64encode(content).decode("ascii"),
        "metadata": {
            "generatedAt": generated_at,
            "source": SOURCE_NAME,
            **(metadata or {}),
        },
    }


class WebhookClient:
    """POST JSON documents to one webhook URL; failures raise DeliveryError."""

    def __init__(
        self,
        url: str,
        *,
        timeout_seconds: float = 30.0,
        client: httpx.Client | None = None,
    ) -> None:
        self._url = url
        self._client = client or httpx.Client(timeout=timeout_seconds)

    def send(
        self,
        *,
        file_name: str,
        mime_type: str,
        content: bytes,
        metadata: dict[str, Any] | None = None,
    ) -> int:
        payload = build_delivery_payload(
            file_name=file_name,
            mime_type=mime_type,
            content=content,
            metadata=metadata,
        )
        try:
            response = self._client.post(self._url, json=payload)
        except httpx.TimeoutException as exc:
            raise DeliveryError(f"webhook timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise DeliveryError(f"webhook request failed: {exc}") from exc

        if response.status_code >= 400:
            raise DeliveryError(
                f"webhook returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        log_event(
            logger,
            logging.INFO,
            "delivered",
            file_name=file_name,
            status_code=response.status_code,
            size_bytes=len(content),
        )
        return response.status_code

    def close(self) -> None:
        self._client.close()
