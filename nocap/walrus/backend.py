from __future__ import annotations

from typing import List, Optional, Protocol, runtime_checkable

from nocap.walrus.schemas import BackendHealth, BlobMetadata


@runtime_checkable
class BlobBackend(Protocol):
    """
    Capability every blob backend provides.

    `store` mints a new blob id on every call (no dedup); `retrieve` raises
    `NotFound` for unknown ids. Both are the only suspension points in the
    persistence layer; neither enforces its own timeout.
    """

    name: str

    async def store(self, payload: bytes) -> BlobMetadata: ...

    async def retrieve(self, blob_id: str) -> bytes: ...

    async def health_check(self) -> BackendHealth: ...


@runtime_checkable
class EnumerableBackend(BlobBackend, Protocol):
    """A backend that can list what it holds, in store order."""

    def blob_ids(self) -> List[str]: ...

    def get_metadata(self, blob_id: str) -> Optional[BlobMetadata]: ...
