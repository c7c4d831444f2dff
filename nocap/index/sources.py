"""
Adapters the index manager scans. Each one exposes the same `snapshot()`
capability, so the manager never depends on a concrete backend type.
"""

from __future__ import annotations

from collections import Counter
from typing import Dict, Protocol, Set

import bittensor as bt

from nocap.errors import NotFound, ValidationError
from nocap.index.schemas import SourceCounts
from nocap.models import StoredCommentRecord, StoredFactRecord, decode_envelope
from nocap.store.base import RecordStore
from nocap.walrus.backend import EnumerableBackend


class IndexSource(Protocol):
    name: str

    async def snapshot(self) -> SourceCounts: ...


class RecordStoreSource:
    """Counts straight from the in-process record stores."""

    name = "records"

    def __init__(
        self,
        facts: RecordStore[StoredFactRecord],
        comments: RecordStore[StoredCommentRecord],
    ) -> None:
        self.facts = facts
        self.comments = comments

    async def snapshot(self) -> SourceCounts:
        by_status = Counter(r.fact.status for r in self.facts.list())
        return SourceCounts(
            total_facts=len(self.facts),
            total_comments=len(self.comments),
            total_blobs=len({r.blob_id for r in self.facts.list()} | {r.blob_id for r in self.comments.list()}),
            facts_by_status=dict(by_status),
        )


class BackendManifestSource:
    """
    Replays every blob an enumerable backend holds and classifies it.

    Facts are rewritten as new blobs on update, so only the last blob seen per
    fact id counts. Blobs that are not entity envelopes are counted as blobs
    and otherwise ignored.
    """

    name = "manifest"

    def __init__(self, backend: EnumerableBackend) -> None:
        self.backend = backend

    async def snapshot(self) -> SourceCounts:
        fact_status: Dict[str, str] = {}
        comment_ids: Set[str] = set()
        blob_ids = self.backend.blob_ids()

        for blob_id in blob_ids:
            try:
                payload = await self.backend.retrieve(blob_id)
                kind, data = decode_envelope(payload)
            except (NotFound, ValidationError) as exc:
                bt.logging.debug(f"Index scan skipping blob {blob_id}: {exc}")
                continue
            entity_id = str(data.get("id") or "")
            if not entity_id:
                continue
            if kind == "fact":
                fact_status[entity_id] = str(data.get("status") or "unverified")
            else:
                comment_ids.add(entity_id)

        return SourceCounts(
            total_facts=len(fact_status),
            total_comments=len(comment_ids),
            total_blobs=len(blob_ids),
            facts_by_status=dict(Counter(fact_status.values())),
        )
