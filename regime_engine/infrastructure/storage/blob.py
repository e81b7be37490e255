"""
Remote object-store storage over HTTP (bearer token).

GET {base_url}/{key} reads an object (404 -> missing);
PUT {base_url}/{key} replaces it.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from regime_engine.core.errors import StorageError
from regime_engine.infrastructure.storage.base import TextObjectStorageAdapter

logger = logging.getLogger(__name__)


class BlobStorageAdapter(TextObjectStorageAdapter):
    def __init__(
        self,
        base_url: str,
        token: str,
        version: str,
        timeout_seconds: float = 15.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        super().__init__(version)
        self.base_url = base_url.rstrip("/")
        self._token = token
        self.timeout_seconds = timeout_seconds
        self._client = client

    def _url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self._token}"}

    async def _request(self, method: str, key: str, **kwargs) -> httpx.Response:
        headers = {**self._headers(), **kwargs.pop("headers", {})}
        if self._client is not None:
            return await self._client.request(method, self._url(key), headers=headers, **kwargs)
        async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
            return await client.request(method, self._url(key), headers=headers, **kwargs)

    async def _read_text(self, key: str) -> Optional[str]:
        try:
            response = await self._request("GET", key)
        except httpx.HTTPError as exc:
            raise StorageError(f"Blob read failed for {key}: {exc}") from exc
        if response.status_code == 404:
            return None
        if response.status_code >= 400:
            raise StorageError(f"Blob read failed for {key}: HTTP {response.status_code}")
        return response.text

    async def _write_text(self, key: str, body: str) -> None:
        content_type = "application/x-ndjson" if key.endswith(".jsonl") else "application/json"
        try:
            response = await self._request(
                "PUT",
                key,
                content=body.encode("utf-8"),
                headers={"Content-Type": content_type},
            )
        except httpx.HTTPError as exc:
            logger.error(f"Blob write failed for {key}: {exc}")
            raise StorageError(f"Blob write failed for {key}: {exc}") from exc
        if response.status_code >= 400:
            logger.error(f"Blob write failed for {key}: HTTP {response.status_code}")
            raise StorageError(f"Blob write failed for {key}: HTTP {response.status_code}")
