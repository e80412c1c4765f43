"""HTTP backend for the remote memory store using httpx."""

from __future__ import annotations

import contextlib
import time
from typing import Any

import httpx

from ..core.config import BackendSettings
from ..core.exceptions import BackendRequestError, BackendTimeoutError
from ..core.schemas import MemoryFilter, MemoryItem, ScoredMemory
from ..utils.logging_config import get_logger
from .base import MemoryBackend

logger = get_logger(__name__)

USER_AGENT = "conversation-memory/1.0"


def _raise_for_status(response: httpx.Response) -> None:
    """Map HTTP status codes to backend exceptions."""
    if response.is_success:
        return
    body: Any = None
    with contextlib.suppress(Exception):
        body = response.json()
    msg = f"HTTP {response.status_code}"
    if isinstance(body, dict) and "detail" in body:
        msg = f"{msg}: {body['detail']}"
    retryable = response.status_code == 429 or response.status_code >= 500
    raise BackendRequestError(msg, status_code=response.status_code, retryable=retryable)


class HttpMemoryBackend(MemoryBackend):
    """Talks to a Mem0-style REST memory service.

    Endpoints (relative to ``base_url``): ``POST /memories``,
    ``POST /memories/search``, ``POST /memories/delete``,
    ``GET /memories/{id}``, ``PUT /memories/{id}``. A 404 is a
    ``BackendRequestError`` like any other rejection, except where a missing
    item is an expected answer (``get``, ``update``, ``delete``).
    """

    def __init__(
        self,
        settings: BackendSettings,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }
        if self._settings.api_key:
            headers["Authorization"] = f"Bearer {self._settings.api_key}"
        return headers

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self._settings.base_url,
                timeout=self._settings.timeout_ms / 1000,
                headers=self._build_headers(),
                transport=self._transport,
                limits=httpx.Limits(
                    max_connections=100,
                    max_keepalive_connections=20,
                    keepalive_expiry=30.0,
                ),
            )
        return self._client

    async def _request(
        self, method: str, path: str, payload: dict[str, Any] | None = None
    ) -> dict[str, Any]:
        start = time.perf_counter()
        try:
            response = await self.client.request(method, path, json=payload)
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(f"{method} {path} timed out: {e}") from e
        except httpx.TransportError as e:
            raise BackendRequestError(
                f"Failed to reach {self._settings.base_url}: {e}", retryable=True
            ) from e
        _raise_for_status(response)
        logger.debug(
            "backend_request",
            method=method,
            path=path,
            status=response.status_code,
            elapsed_ms=round((time.perf_counter() - start) * 1000),
        )
        if not response.content:
            return {}
        try:
            data = response.json()
        except ValueError as e:
            raise BackendRequestError(f"Malformed response from {path}", retryable=True) from e
        return data if isinstance(data, dict) else {}

    async def add(self, items: list[MemoryItem]) -> list[str]:
        payload = {"items": [i.model_dump(mode="json", by_alias=True) for i in items]}
        data = await self._request("POST", "/memories", payload)
        return [str(i) for i in data.get("ids", [i.id for i in items])]

    async def search(self, query: str, flt: MemoryFilter, limit: int) -> list[ScoredMemory]:
        payload = {
            "query": query,
            "filters": flt.model_dump(mode="json", by_alias=True, exclude_none=True),
            "limit": limit,
        }
        data = await self._request("POST", "/memories/search", payload)
        results: list[ScoredMemory] = []
        for raw in data.get("results", []):
            memory = raw.get("memory") if isinstance(raw, dict) else None
            if memory is None:
                continue
            results.append(
                ScoredMemory(
                    item=MemoryItem.model_validate(memory),
                    score=float(raw.get("score") or 0.0),
                )
            )
        return results

    async def delete(self, ids: list[str]) -> int:
        if not ids:
            return 0
        try:
            data = await self._request("POST", "/memories/delete", {"ids": ids})
        except BackendRequestError as e:
            if e.status_code == 404:
                return 0
            raise
        return int(data.get("deleted", 0))

    async def get(self, item_id: str) -> MemoryItem | None:
        try:
            data = await self._request("GET", f"/memories/{item_id}")
        except BackendRequestError as e:
            if e.status_code == 404:
                return None
            raise
        memory = data.get("memory", data)
        return MemoryItem.model_validate(memory) if memory else None

    async def update(self, item: MemoryItem) -> bool:
        payload = {"memory": item.model_dump(mode="json", by_alias=True)}
        try:
            await self._request("PUT", f"/memories/{item.id}", payload)
        except BackendRequestError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    async def aclose(self) -> None:
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None
