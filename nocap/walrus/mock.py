"""Disk-mirrored stand-in for the Walrus network, used offline and in tests."""

from __future__ import annotations

import asyncio
import secrets
import string
import threading
import time
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import bittensor as bt

from nocap.errors import BackendUnavailable, NotFound, ValidationError
from nocap.walrus.disk import BlobDirectory
from nocap.walrus.schemas import BackendHealth, BlobMetadata


_ID_ALPHABET = string.ascii_lowercase + string.digits
_ID_ENTROPY_CHARS = 9

# Serializes manifest read-merge-write for every mock store in this process.
_MANIFEST_LOCK = threading.Lock()


def mint_mock_blob_id() -> str:
    # Millisecond timestamp keeps ids roughly ordered; the random suffix makes
    # same-millisecond collisions negligible (36**9 ~ 1e14 per ms).
    suffix = "".join(secrets.choice(_ID_ALPHABET) for _ in range(_ID_ENTROPY_CHARS))
    return f"mock-{int(time.time() * 1000)}-{suffix}"


class MockBlobStore:
    """
    In-memory blob store with a write-through disk mirror.

    Behaves like the network backend from a caller's point of view: every
    `store` mints a fresh id, `retrieve` raises `NotFound` for unknown ids, and
    both calls sleep for a configurable latency.
    """

    name = "mock"

    def __init__(
        self,
        storage_dir: Union[str, Path],
        *,
        store_latency_s: float = 0.1,
        retrieve_latency_s: float = 0.05,
        max_blob_bytes: int = 10 * 1024 * 1024,
    ) -> None:
        self.directory = BlobDirectory(storage_dir)
        self.store_latency_s = max(0.0, float(store_latency_s))
        self.retrieve_latency_s = max(0.0, float(retrieve_latency_s))
        self.max_blob_bytes = int(max_blob_bytes)

        self._blobs: Dict[str, bytes] = {}
        # Insertion-ordered; mirrors manifest.json.
        self._manifest: Dict[str, BlobMetadata] = {}
        self._load()

    def _load(self) -> None:
        loaded = 0
        for meta in self.directory.load_manifest():
            data = self.directory.read_blob(meta.blob_id)
            if data is None:
                bt.logging.warning(f"Manifest lists blob {meta.blob_id} but its file is missing; skipping.")
                continue
            self._manifest[meta.blob_id] = meta
            self._blobs[meta.blob_id] = data
            loaded += 1
        if loaded:
            bt.logging.info(f"Mock blob store loaded {loaded} blobs from {self.directory.root}")

    async def _sleep(self, seconds: float) -> None:
        if seconds > 0:
            await asyncio.sleep(seconds)

    async def store(self, payload: bytes) -> BlobMetadata:
        data = bytes(payload)
        if len(data) > self.max_blob_bytes:
            raise ValidationError(f"Blob too large: {len(data)} bytes (max: {self.max_blob_bytes})")

        await self._sleep(self.store_latency_s)

        blob_id = mint_mock_blob_id()
        while blob_id in self._manifest:
            blob_id = mint_mock_blob_id()

        meta = BlobMetadata(
            blob_id=blob_id,
            certificate=f"mock-cert-{blob_id}",
            transaction_id=f"mock-tx-{blob_id}",
            size=len(data),
        )

        try:
            entries = await asyncio.to_thread(self._persist, meta, data, list(self._manifest.values()))
        except OSError as exc:
            raise BackendUnavailable(f"mock storage write failed: {exc}") from exc

        self._blobs[blob_id] = data
        for entry in entries:
            self._manifest.setdefault(entry.blob_id, entry)
        bt.logging.debug(f"Stored mock blob {blob_id} ({len(data)} bytes)")
        return meta

    def _persist(self, meta: BlobMetadata, data: bytes, known: List[BlobMetadata]) -> List[BlobMetadata]:
        """
        Write the blob file, then a manifest listing it.

        The manifest on disk is re-read under the lock and merged with `known`,
        so entries written by another store sharing the directory survive.
        On-disk order comes first; the new entry is always last.
        """
        with _MANIFEST_LOCK:
            self.directory.write_blob(meta.blob_id, data)
            merged: Dict[str, BlobMetadata] = {m.blob_id: m for m in self.directory.load_manifest()}
            for entry in known:
                merged.setdefault(entry.blob_id, entry)
            merged.pop(meta.blob_id, None)
            merged[meta.blob_id] = meta
            entries = list(merged.values())
            self.directory.write_manifest(entries)
        return entries

    async def retrieve(self, blob_id: str) -> bytes:
        await self._sleep(self.retrieve_latency_s)

        data = self._blobs.get(blob_id)
        if data is not None:
            return data

        found = await asyncio.to_thread(self._retrieve_from_disk, blob_id)
        if found is None:
            raise NotFound(f"Mock blob not found: {blob_id}")
        meta, data = found
        self._manifest.setdefault(blob_id, meta)
        self._blobs[blob_id] = data
        return data

    def _retrieve_from_disk(self, blob_id: str) -> Optional[Tuple[BlobMetadata, bytes]]:
        # Another process may share the directory; re-read its manifest.
        for meta in self.directory.load_manifest():
            if meta.blob_id != blob_id:
                continue
            data = self.directory.read_blob(blob_id)
            return (meta, data) if data is not None else None
        return None

    async def health_check(self) -> BackendHealth:
        start = time.perf_counter()
        writable = self.directory.is_writable()
        latency_ms = (time.perf_counter() - start) * 1000.0
        if writable:
            return BackendHealth(status="healthy", latency_ms=latency_ms, available_nodes=1)
        return BackendHealth(
            status="unhealthy",
            latency_ms=latency_ms,
            available_nodes=0,
            detail=f"storage directory not writable: {self.directory.root}",
        )

    def blob_ids(self) -> List[str]:
        return list(self._manifest.keys())

    def get_metadata(self, blob_id: str) -> Optional[BlobMetadata]:
        return self._manifest.get(blob_id)

    def clear(self) -> None:
        """Drop every blob from memory and disk. Test isolation only."""
        self._blobs.clear()
        self._manifest.clear()
        self.directory.wipe()
