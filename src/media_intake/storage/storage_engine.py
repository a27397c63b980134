"""Two-tier upload to content-addressed (IPFS) nodes."""

from __future__ import annotations

import asyncio
import json
import logging
import secrets
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx

from ..config import StorageConfig, StorageNodeConfig
from ..entries.entry_models import StorageOrigin
from ..exceptions import StorageNodeError, StorageUploadFailedError
from .storage_models import NodeHealth, StorageHealth, StorageResult

logger = logging.getLogger(__name__)

ADD_PARAMS = {"pin": "true", "wrap-with-directory": "false", "recursive": "false"}
CHUNK_SIZE = 1024 * 1024

BodyFactory = Callable[[], AsyncIterator[bytes]]


def parse_add_response(body: str) -> str:
    """Return the content id from an ``/api/v0/add`` response body.

    The node answers with one JSON object per line when it reports progress;
    the last line describes the added file.
    """
    lines = [line for line in body.strip().splitlines() if line.strip()]
    if not lines:
        raise StorageNodeError("empty response from storage node")
    try:
        payload = json.loads(lines[-1])
    except json.JSONDecodeError as exc:
        raise StorageNodeError(f"malformed response from storage node: {exc}") from exc
    if not isinstance(payload, dict) or not payload.get("Hash"):
        raise StorageNodeError("No hash returned from storage node")
    return str(payload["Hash"])


async def read_file_chunks(path: Path, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
    """Yield the file in chunks; every read runs in a worker thread."""
    handle = await asyncio.to_thread(path.open, "rb")
    try:
        while True:
            chunk = await asyncio.to_thread(handle.read, chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        await asyncio.to_thread(handle.close)


async def _single_chunk(data: bytes) -> AsyncIterator[bytes]:
    yield data


@dataclass(frozen=True, slots=True)
class MultipartFile:
    """A single-file ``multipart/form-data`` body streamed from an async source."""

    filename: str
    size: int
    content_type: str = "application/octet-stream"
    boundary: str = field(default_factory=lambda: secrets.token_hex(16))

    @property
    def head(self) -> bytes:
        name = self.filename.replace('"', "%22")
        return (
            f"--{self.boundary}\r\n"
            f'Content-Disposition: form-data; name="file"; filename="{name}"\r\n'
            f"Content-Type: {self.content_type}\r\n\r\n"
        ).encode()

    @property
    def tail(self) -> bytes:
        return f"\r\n--{self.boundary}--\r\n".encode()

    @property
    def headers(self) -> dict[str, str]:
        length = len(self.head) + self.size + len(self.tail)
        return {
            "Content-Type": f"multipart/form-data; boundary={self.boundary}",
            "Content-Length": str(length),
        }

    async def stream(self, chunks: AsyncIterator[bytes]) -> AsyncIterator[bytes]:
        yield self.head
        async for chunk in chunks:
            yield chunk
        yield self.tail


@dataclass(slots=True)
class StorageUploadEngine:
    """Upload to the primary node and fall back to the secondary once.

    ``origin`` in the result records which node accepted the bytes; content
    stored on the fallback node is not mirrored on the primary and is later
    unpinned by the retention sweep. File bodies are streamed, so the event
    loop never blocks on disk reads.
    """

    config: StorageConfig
    log: logging.Logger = field(default_factory=lambda: logger)

    async def upload(self, local_path: Path) -> StorageResult:
        if not local_path.is_file():
            raise StorageNodeError(f"File not found: {local_path}")
        size = local_path.stat().st_size
        form = MultipartFile(filename=local_path.name, size=size)
        return await self._store(form, lambda: read_file_chunks(local_path), label=str(local_path))

    async def upload_thumbnail(self, data: bytes, filename: str, content_type: str) -> StorageResult:
        """Pin a thumbnail image, with the same fallback rule as media files."""
        if not data:
            raise StorageNodeError("empty thumbnail")
        form = MultipartFile(filename=filename, size=len(data), content_type=content_type)
        return await self._store(form, lambda: _single_chunk(data), label=filename)

    async def _store(self, form: MultipartFile, body: BodyFactory, *, label: str) -> StorageResult:
        try:
            content_id = await self._add(self.config.primary, form, body)
        except StorageNodeError as primary_error:
            self.log.error(
                "storage.primary.failed",
                extra={"path": label, "error": str(primary_error)},
            )
            try:
                content_id = await self._add(self.config.fallback, form, body)
            except StorageNodeError as fallback_error:
                self.log.error(
                    "storage.fallback.failed",
                    extra={"path": label, "error": str(fallback_error)},
                )
                raise StorageUploadFailedError(str(primary_error), str(fallback_error)) from fallback_error
            self.log.warning(
                "storage.fallback.uploaded",
                extra={"path": label, "content_id": content_id},
            )
            return StorageResult(
                content_id=content_id,
                origin=StorageOrigin.FALLBACK,
                gateway_url=self.gateway_url(content_id, StorageOrigin.FALLBACK),
                size_bytes=form.size,
            )

        self.log.info(
            "storage.primary.uploaded",
            extra={"path": label, "content_id": content_id},
        )
        return StorageResult(
            content_id=content_id,
            origin=StorageOrigin.PRIMARY,
            gateway_url=self.gateway_url(content_id, StorageOrigin.PRIMARY),
            size_bytes=form.size,
        )

    def gateway_url(self, content_id: str, origin: StorageOrigin) -> str:
        node = self.config.fallback if origin is StorageOrigin.FALLBACK else self.config.primary
        return f"{node.gateway_url.rstrip('/')}/ipfs/{content_id}"

    async def unpin_fallback(self, content_id: str) -> None:
        """Release the pin on the fallback node; raises :class:`StorageNodeError`."""
        url = f"{self.config.fallback.api_url.rstrip('/')}/api/v0/pin/rm"
        try:
            async with httpx.AsyncClient(timeout=self.config.unpin_timeout_seconds) as client:
                response = await client.post(url, params={"arg": content_id, "recursive": "true"})
        except httpx.HTTPError as exc:
            raise StorageNodeError(f"unpin {content_id} failed: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise StorageNodeError(
                f"unpin {content_id} failed with status {response.status_code}"
            )
        self.log.info("storage.fallback.unpinned", extra={"content_id": content_id})

    async def health(self) -> StorageHealth:
        primary, fallback = await asyncio.gather(
            self._node_health(self.config.primary),
            self._node_health(self.config.fallback),
        )
        return StorageHealth(
            primary=primary,
            fallback=fallback,
            primary_gateway=self.config.primary.gateway_url,
            fallback_gateway=self.config.fallback.gateway_url,
        )

    async def _add(self, node: StorageNodeConfig, form: MultipartFile, body: BodyFactory) -> str:
        if form.size > self.config.max_upload_bytes:
            raise StorageNodeError(
                f"file of {form.size} bytes exceeds the {self.config.max_upload_bytes} byte ceiling"
            )
        url = f"{node.api_url.rstrip('/')}/api/v0/add"
        try:
            async with httpx.AsyncClient(timeout=self.config.upload_timeout_seconds) as client:
                response = await client.post(
                    url,
                    params=ADD_PARAMS,
                    content=form.stream(body()),
                    headers=form.headers,
                )
        except httpx.TimeoutException as exc:
            raise StorageNodeError(f"timeout after {self.config.upload_timeout_seconds}s") from exc
        except httpx.HTTPError as exc:
            raise StorageNodeError(f"transport error: {exc}") from exc
        except OSError as exc:
            raise StorageNodeError(f"read error: {exc}") from exc
        if not 200 <= response.status_code < 300:
            raise StorageNodeError(f"add failed with status {response.status_code}")
        return parse_add_response(response.text)

    async def _node_health(self, node: StorageNodeConfig) -> NodeHealth:
        url = f"{node.api_url.rstrip('/')}/api/v0/id"
        try:
            async with httpx.AsyncClient(timeout=node.health_timeout_seconds) as client:
                response = await client.post(url)
        except httpx.HTTPError as exc:
            return NodeHealth(endpoint=node.api_url, healthy=False, error=str(exc))
        if not 200 <= response.status_code < 300:
            return NodeHealth(
                endpoint=node.api_url,
                healthy=False,
                error=f"status {response.status_code}",
            )
        data: dict[str, Any] | None
        try:
            body = response.json()
            data = body if isinstance(body, dict) else None
        except ValueError:
            data = None
        return NodeHealth(endpoint=node.api_url, healthy=True, data=data)
