from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from media_intake.config import StorageConfig, StorageNodeConfig
from media_intake.entries.entry_models import StorageOrigin
from media_intake.exceptions import StorageNodeError, StorageUploadFailedError
from media_intake.storage.storage_engine import (
    ADD_PARAMS,
    MultipartFile,
    StorageUploadEngine,
    parse_add_response,
    read_file_chunks,
)


class DummyHTTPResponse:
    def __init__(self, status_code: int, text: str = "", json_data: Any = None) -> None:
        self.status_code = status_code
        self.text = text
        self._json_data = json_data

    def json(self) -> Any:
        if self._json_data is None:
            raise ValueError("No JSON data")
        return self._json_data


class DummyAsyncClient:
    def __init__(self, post_queue: list[DummyHTTPResponse | Exception]) -> None:
        self._post_queue = post_queue
        self.calls: list[dict[str, Any]] = []

    async def __aenter__(self) -> "DummyAsyncClient":  # pragma: no cover - helper
        return self

    async def __aexit__(self, exc_type, exc_value, traceback) -> None:  # pragma: no cover - helper
        return None

    async def post(
        self,
        url: str,
        params: dict[str, str] | None = None,
        content: Any = None,
        headers: dict[str, str] | None = None,
    ):
        body = b"".join([chunk async for chunk in content]) if content is not None else None
        self.calls.append({"url": url, "params": params, "body": body, "headers": headers})
        if not self._post_queue:
            raise RuntimeError("No post responses queued")
        item = self._post_queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


def _added(cid: str) -> DummyHTTPResponse:
    return DummyHTTPResponse(200, text=json.dumps({"Name": "upload.bin", "Hash": cid, "Size": "2048"}))


@pytest.fixture
def storage_config() -> StorageConfig:
    return StorageConfig(
        primary=StorageNodeConfig(api_url="http://primary:5002", gateway_url="https://primary.gw"),
        fallback=StorageNodeConfig(api_url="http://fallback:5001/", gateway_url="https://fallback.gw/"),
        max_upload_bytes=4096,
    )


@pytest.fixture
def upload_file(tmp_path: Path) -> Path:
    path = tmp_path / "upload.bin"
    path.write_bytes(b"x" * 2048)
    return path


def _install(monkeypatch, queue: list[DummyHTTPResponse | Exception]) -> DummyAsyncClient:
    client = DummyAsyncClient(queue)
    monkeypatch.setattr("httpx.AsyncClient", lambda *args, **kwargs: client)
    return client


def test_parse_add_response_takes_last_line() -> None:
    body = '{"Name":"upload.bin","Bytes":1024}\n{"Name":"upload.bin","Hash":"QmFinal"}\n'

    assert parse_add_response(body) == "QmFinal"


@pytest.mark.parametrize("body", ["", "not json", '{"Name":"upload.bin"}'])
def test_parse_add_response_rejects_bad_bodies(body: str) -> None:
    with pytest.raises(StorageNodeError):
        parse_add_response(body)


@pytest.mark.asyncio
async def test_upload_to_primary(monkeypatch, storage_config, upload_file) -> None:
    client = _install(monkeypatch, [_added("QmPrimary")])
    engine = StorageUploadEngine(storage_config)

    result = await engine.upload(upload_file)

    assert result.content_id == "QmPrimary"
    assert result.origin is StorageOrigin.PRIMARY
    assert result.gateway_url == "https://primary.gw/ipfs/QmPrimary"
    assert result.size_bytes == 2048
    assert len(client.calls) == 1
    assert client.calls[0]["url"] == "http://primary:5002/api/v0/add"
    assert client.calls[0]["params"] == ADD_PARAMS


@pytest.mark.asyncio
async def test_upload_streams_multipart_body(monkeypatch, storage_config, upload_file) -> None:
    client = _install(monkeypatch, [_added("QmPrimary")])
    engine = StorageUploadEngine(storage_config)

    await engine.upload(upload_file)

    call = client.calls[0]
    content_type = call["headers"]["Content-Type"]
    assert content_type.startswith("multipart/form-data; boundary=")
    boundary = content_type.split("boundary=")[1]
    body = call["body"]
    assert int(call["headers"]["Content-Length"]) == len(body)
    assert body.startswith(f"--{boundary}\r\n".encode())
    assert b'filename="upload.bin"' in body
    assert b"x" * 2048 in body
    assert body.endswith(f"\r\n--{boundary}--\r\n".encode())


@pytest.mark.asyncio
async def test_file_is_read_in_worker_threads(monkeypatch, tmp_path) -> None:
    path = tmp_path / "chunks.bin"
    path.write_bytes(b"abcdefghij")
    offloaded: list[str] = []
    real_to_thread = asyncio.to_thread

    async def recording_to_thread(func, /, *args, **kwargs):
        offloaded.append(getattr(func, "__name__", repr(func)))
        return await real_to_thread(func, *args, **kwargs)

    monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)

    chunks = [chunk async for chunk in read_file_chunks(path, chunk_size=4)]

    assert chunks == [b"abcd", b"efgh", b"ij"]
    assert offloaded[0] == "open"
    assert offloaded.count("read") == 4
    assert offloaded[-1] == "close"


@pytest.mark.asyncio
async def test_fallback_retry_resends_the_whole_file(monkeypatch, storage_config, upload_file) -> None:
    client = _install(monkeypatch, [DummyHTTPResponse(502), _added("QmFallback")])
    engine = StorageUploadEngine(storage_config)

    await engine.upload(upload_file)

    assert client.calls[0]["body"] == client.calls[1]["body"]
    assert b"x" * 2048 in client.calls[1]["body"]


@pytest.mark.asyncio
async def test_upload_thumbnail(monkeypatch, storage_config) -> None:
    client = _install(monkeypatch, [_added("QmThumb")])
    engine = StorageUploadEngine(storage_config)

    result = await engine.upload_thumbnail(b"\x89PNG", "thumb.png", "image/png")

    assert result.content_id == "QmThumb"
    assert result.origin is StorageOrigin.PRIMARY
    assert result.size_bytes == 4
    assert b"Content-Type: image/png" in client.calls[0]["body"]
    assert b"\x89PNG" in client.calls[0]["body"]


@pytest.mark.asyncio
async def test_empty_thumbnail_is_rejected(monkeypatch, storage_config) -> None:
    client = _install(monkeypatch, [])
    engine = StorageUploadEngine(storage_config)

    with pytest.raises(StorageNodeError):
        await engine.upload_thumbnail(b"", "thumb.png", "image/png")
    assert client.calls == []


def test_multipart_filename_is_quoted() -> None:
    form = MultipartFile(filename='a"b.png', size=0, boundary="fixed")

    assert b'filename="a%22b.png"' in form.head
    assert form.headers["Content-Length"] == str(len(form.head) + len(form.tail))


@pytest.mark.asyncio
async def test_primary_failure_falls_back_once(monkeypatch, storage_config, upload_file) -> None:
    client = _install(monkeypatch, [DummyHTTPResponse(500), _added("QmFallback")])
    engine = StorageUploadEngine(storage_config)

    result = await engine.upload(upload_file)

    assert result.origin is StorageOrigin.FALLBACK
    assert result.gateway_url == "https://fallback.gw/ipfs/QmFallback"
    assert [call["url"] for call in client.calls] == [
        "http://primary:5002/api/v0/add",
        "http://fallback:5001/api/v0/add",
    ]


@pytest.mark.asyncio
async def test_both_nodes_failing(monkeypatch, storage_config, upload_file) -> None:
    client = _install(
        monkeypatch,
        [httpx.ConnectError("connection refused"), DummyHTTPResponse(200, text='{"Name":"x"}')],
    )
    engine = StorageUploadEngine(storage_config)

    with pytest.raises(StorageUploadFailedError) as excinfo:
        await engine.upload(upload_file)

    assert "transport error" in excinfo.value.primary_reason
    assert "No hash" in excinfo.value.fallback_reason
    assert len(client.calls) == 2


@pytest.mark.asyncio
async def test_timeout_is_reported(monkeypatch, storage_config, upload_file) -> None:
    _install(monkeypatch, [httpx.ReadTimeout("slow"), httpx.ReadTimeout("slow")])
    engine = StorageUploadEngine(storage_config)

    with pytest.raises(StorageUploadFailedError) as excinfo:
        await engine.upload(upload_file)

    assert excinfo.value.primary_reason.startswith("timeout after")


@pytest.mark.asyncio
async def test_oversized_file_is_never_sent(monkeypatch, storage_config, tmp_path) -> None:
    big = tmp_path / "big.bin"
    big.write_bytes(b"x" * 5000)
    client = _install(monkeypatch, [])
    engine = StorageUploadEngine(storage_config)

    with pytest.raises(StorageUploadFailedError):
        await engine.upload(big)

    assert client.calls == []


@pytest.mark.asyncio
async def test_missing_file(monkeypatch, storage_config, tmp_path) -> None:
    client = _install(monkeypatch, [])
    engine = StorageUploadEngine(storage_config)

    with pytest.raises(StorageNodeError):
        await engine.upload(tmp_path / "missing.bin")
    assert client.calls == []


@pytest.mark.asyncio
async def test_unpin_fallback(monkeypatch, storage_config) -> None:
    client = _install(monkeypatch, [DummyHTTPResponse(200, json_data={"Pins": ["QmA"]})])
    engine = StorageUploadEngine(storage_config)

    await engine.unpin_fallback("QmA")

    assert client.calls[0]["url"] == "http://fallback:5001/api/v0/pin/rm"
    assert client.calls[0]["params"] == {"arg": "QmA", "recursive": "true"}


@pytest.mark.asyncio
async def test_unpin_failure_raises(monkeypatch, storage_config) -> None:
    _install(monkeypatch, [DummyHTTPResponse(500)])
    engine = StorageUploadEngine(storage_config)

    with pytest.raises(StorageNodeError):
        await engine.unpin_fallback("QmA")


@pytest.mark.asyncio
async def test_health_reports_degraded_when_both_down(monkeypatch, storage_config) -> None:
    _install(monkeypatch, [httpx.ConnectError("down"), DummyHTTPResponse(503)])
    engine = StorageUploadEngine(storage_config)

    health = await engine.health()

    assert health.status == "degraded"
    assert health.primary.healthy is False
    assert health.fallback.error == "status 503"


@pytest.mark.asyncio
async def test_health_with_one_node_up(monkeypatch, storage_config) -> None:
    _install(monkeypatch, [DummyHTTPResponse(200, json_data={"ID": "peer"}), DummyHTTPResponse(500)])
    engine = StorageUploadEngine(storage_config)

    health = await engine.health()

    assert health.status == "healthy"
    assert health.primary.data == {"ID": "peer"}
