import asyncio
from typing import Any, Dict, List, Tuple

import pytest
import requests

import nocap.walrus.network as mod
from nocap.errors import BackendUnavailable, NotFound, ValidationError
from nocap.walrus.backend import EnumerableBackend
from nocap.walrus.network import NetworkBlobStore


class _Resp:
    def __init__(self, status_code: int = 200, payload: Any = None, content: bytes = b"") -> None:
        self.status_code = status_code
        self._payload = payload
        self.content = content
        self.text = content.decode("utf-8", errors="replace")

    def json(self) -> Any:
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


def _store() -> NetworkBlobStore:
    return NetworkBlobStore("http://pub/", "http://agg", epochs=3, timeout_s=2.0)


def test_store_puts_payload_and_parses_newly_created(monkeypatch):
    calls: List[Tuple[str, Dict[str, Any]]] = []

    def fake_put(url: str, **kwargs):
        calls.append((url, kwargs))
        return _Resp(payload={"newlyCreated": {"blobObject": {"id": "0xobj", "blobId": "blob-123"}}})

    monkeypatch.setattr(mod.requests, "put", fake_put)

    meta = asyncio.run(_store().store(b"abc"))
    assert meta.blob_id == "blob-123"
    assert meta.certificate == "0xobj"
    assert meta.size == 3

    url, kwargs = calls[0]
    assert url == "http://pub/v1/blobs"
    assert kwargs["params"] == {"epochs": 3}
    assert kwargs["data"] == b"abc"
    assert kwargs["timeout"] == 2.0


def test_store_parses_already_certified(monkeypatch):
    def fake_put(url: str, **kwargs):
        return _Resp(payload={"alreadyCertified": {"blobId": "blob-old", "event": {"txDigest": "tx9"}}})

    monkeypatch.setattr(mod.requests, "put", fake_put)

    meta = asyncio.run(_store().store(b"abc"))
    assert meta.blob_id == "blob-old"
    assert meta.transaction_id == "tx9"
    assert meta.certificate is None


def test_store_errors_become_backend_unavailable(monkeypatch):
    def refused(url: str, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(mod.requests, "put", refused)
    with pytest.raises(BackendUnavailable):
        asyncio.run(_store().store(b"abc"))

    monkeypatch.setattr(mod.requests, "put", lambda url, **kw: _Resp(status_code=502, content=b"bad gateway"))
    with pytest.raises(BackendUnavailable):
        asyncio.run(_store().store(b"abc"))

    monkeypatch.setattr(mod.requests, "put", lambda url, **kw: _Resp(payload={"unexpected": True}))
    with pytest.raises(BackendUnavailable):
        asyncio.run(_store().store(b"abc"))


def test_store_rejects_oversized_payload_without_network(monkeypatch):
    def boom(url: str, **kwargs):
        raise AssertionError("network must not be called")

    monkeypatch.setattr(mod.requests, "put", boom)
    store = NetworkBlobStore("http://pub", "http://agg", max_blob_bytes=2)
    with pytest.raises(ValidationError):
        asyncio.run(store.store(b"abc"))


def test_retrieve_reads_from_aggregator(monkeypatch):
    seen: List[str] = []

    def fake_get(url: str, timeout: float):
        seen.append(url)
        if url.endswith("/missing"):
            return _Resp(status_code=404)
        return _Resp(content=b"bytes!")

    monkeypatch.setattr(mod.requests, "get", fake_get)

    assert asyncio.run(_store().retrieve("blob-1")) == b"bytes!"
    assert seen == ["http://agg/v1/blobs/blob-1"]
    with pytest.raises(NotFound):
        asyncio.run(_store().retrieve("missing"))


def test_health_counts_reachable_endpoints(monkeypatch):
    def fake_head(url: str, timeout: float):
        if url.startswith("http://agg"):
            raise requests.Timeout("slow")
        return _Resp(status_code=200)

    monkeypatch.setattr(mod.requests, "head", fake_head)
    health = asyncio.run(_store().health_check())
    assert health.status == "degraded"
    assert health.available_nodes == 1
    assert "aggregator=down" in health.detail

    monkeypatch.setattr(mod.requests, "head", lambda url, timeout: _Resp(status_code=200))
    assert asyncio.run(_store().health_check()).status == "healthy"


def test_network_backend_is_not_enumerable():
    assert not isinstance(_store(), EnumerableBackend)
