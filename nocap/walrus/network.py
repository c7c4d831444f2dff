from __future__ import annotations

import asyncio
import time
from typing import Any, Dict, Optional, Tuple

import bittensor as bt
import requests

from nocap.errors import BackendUnavailable, NotFound, ValidationError
from nocap.walrus.schemas import BackendHealth, BlobMetadata


def _parse_store_response(data: Any, size: int) -> BlobMetadata:
    """
    Map a publisher response onto BlobMetadata.

    The publisher answers with either `newlyCreated` (fresh blob object) or
    `alreadyCertified` (identical content already on the network).
    """
    if not isinstance(data, dict):
        raise BackendUnavailable("Walrus publisher returned a non-object response")

    created = data.get("newlyCreated")
    if isinstance(created, dict):
        obj = created.get("blobObject") or {}
        blob_id = obj.get("blobId")
        if blob_id:
            return BlobMetadata(
                blob_id=str(blob_id),
                certificate=str(obj["id"]) if obj.get("id") else None,
                transaction_id=None,
                size=size,
            )

    certified = data.get("alreadyCertified")
    if isinstance(certified, dict) and certified.get("blobId"):
        event = certified.get("event") or {}
        return BlobMetadata(
            blob_id=str(certified["blobId"]),
            certificate=None,
            transaction_id=str(event["txDigest"]) if event.get("txDigest") else None,
            size=size,
        )

    raise BackendUnavailable("Walrus publisher response carries no blob id")


class NetworkBlobStore:
    """
    Walrus HTTP publisher/aggregator client.

    No local caching and no retries: latency and failures of the network are
    passed through, with transport errors classified as `BackendUnavailable`
    and unknown ids as `NotFound`.
    """

    name = "network"

    def __init__(
        self,
        publisher_url: str,
        aggregator_url: str,
        *,
        epochs: int = 5,
        timeout_s: float = 30.0,
        max_blob_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self.publisher_url = publisher_url.rstrip("/")
        self.aggregator_url = aggregator_url.rstrip("/")
        self.epochs = int(epochs)
        self.timeout_s = timeout_s
        self.max_blob_bytes = int(max_blob_bytes)

    def _put_blob(self, payload: bytes) -> BlobMetadata:
        url = f"{self.publisher_url}/v1/blobs"
        try:
            r = requests.put(
                url,
                params={"epochs": self.epochs},
                data=payload,
                headers={"Content-Type": "application/octet-stream"},
                timeout=self.timeout_s,
            )
        except requests.RequestException as exc:
            raise BackendUnavailable(f"Walrus store failed: {exc}") from exc

        if r.status_code >= 400:
            raise BackendUnavailable(f"Walrus store failed: {r.status_code} {r.text[:200]}")
        try:
            data = r.json()
        except ValueError as exc:
            raise BackendUnavailable("Walrus publisher returned invalid JSON") from exc
        return _parse_store_response(data, size=len(payload))

    def _get_blob(self, blob_id: str) -> bytes:
        url = f"{self.aggregator_url}/v1/blobs/{blob_id}"
        try:
            r = requests.get(url, timeout=self.timeout_s)
        except requests.RequestException as exc:
            raise BackendUnavailable(f"Walrus retrieve failed: {exc}") from exc

        if r.status_code == 404:
            raise NotFound(f"Blob not found: {blob_id}")
        if r.status_code >= 400:
            raise BackendUnavailable(f"Walrus retrieve failed: {r.status_code} {r.text[:200]}")
        return r.content

    def _probe(self, url: str) -> Tuple[bool, float]:
        start = time.perf_counter()
        try:
            r = requests.head(url, timeout=self.timeout_s)
            ok = r.status_code < 500
        except requests.RequestException:
            ok = False
        return ok, (time.perf_counter() - start) * 1000.0

    async def store(self, payload: bytes) -> BlobMetadata:
        data = bytes(payload)
        if len(data) > self.max_blob_bytes:
            raise ValidationError(f"Blob too large: {len(data)} bytes (max: {self.max_blob_bytes})")
        bt.logging.debug(f"Storing {len(data)} bytes on Walrus via {self.publisher_url}")
        meta = await asyncio.to_thread(self._put_blob, data)
        bt.logging.info(f"Stored blob {meta.blob_id} on Walrus ({meta.size} bytes)")
        return meta

    async def retrieve(self, blob_id: str) -> bytes:
        bt.logging.debug(f"Retrieving blob {blob_id} from Walrus")
        return await asyncio.to_thread(self._get_blob, blob_id)

    async def health_check(self) -> BackendHealth:
        (pub_ok, pub_ms), (agg_ok, agg_ms) = await asyncio.gather(
            asyncio.to_thread(self._probe, self.publisher_url),
            asyncio.to_thread(self._probe, self.aggregator_url),
        )
        up = int(pub_ok) + int(agg_ok)
        status = "healthy" if up == 2 else ("degraded" if up == 1 else "unhealthy")
        detail: Dict[str, Optional[str]] = {
            "publisher": "up" if pub_ok else "down",
            "aggregator": "up" if agg_ok else "down",
        }
        return BackendHealth(
            status=status,
            latency_ms=max(pub_ms, agg_ms),
            available_nodes=up,
            detail=", ".join(f"{k}={v}" for k, v in detail.items()),
        )
