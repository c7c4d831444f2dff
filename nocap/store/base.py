from __future__ import annotations

from typing import List, Optional, Protocol, TypeVar, runtime_checkable

R = TypeVar("R")


@runtime_checkable
class RecordStore(Protocol[R]):
    """
    What handlers need from a record store.

    The in-memory stores assume a single writer; a threaded or multi-process
    deployment swaps in a lock-protected or external implementation of this
    same surface.
    """

    def upsert(self, record: R) -> None: ...

    def get(self, record_id: str) -> Optional[R]: ...

    def list(self) -> List[R]: ...

    def clear(self) -> None: ...

    def __len__(self) -> int: ...
