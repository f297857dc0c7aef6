"""Outbound HTTP calls for webhook delivery."""

from __future__ import annotations

import json
from typing import Any

import httpx

from jellyhook.config import DeliveryConfig
from jellyhook.utils.logging import get_logger

log = get_logger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


def is_chat_webhook(url: str, marker: str) -> bool:
    """True if ``url`` points at the chat platform's webhook API."""
    return bool(marker) and marker in url


def is_success(response: httpx.Response) -> bool:
    return 200 <= response.status_code < 300


def encode_body(body: Any) -> bytes:
    """Compact JSON encoding, identical whatever the httpx version."""
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


class HttpSender:
    """Thin wrapper over a shared ``httpx.AsyncClient`` with a fixed timeout.

    ``send`` returns the response for any status code; only transport
    problems (timeouts, connection errors) raise ``httpx.HTTPError``.
    """

    def __init__(
        self,
        config: DeliveryConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config
        self._client = httpx.AsyncClient(
            timeout=config.timeout,
            transport=transport,
            headers={"User-Agent": config.user_agent},
        )

    async def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Any,
    ) -> httpx.Response:
        request_headers = httpx.Headers(headers)
        request_headers.setdefault("Content-Type", JSON_HEADERS["Content-Type"])
        return await self._client.request(
            method,
            url,
            headers=request_headers,
            content=encode_body(body),
            timeout=self._config.timeout,
        )

    async def close(self) -> None:
        await self._client.aclose()
