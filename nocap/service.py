from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import bittensor as bt
from pydantic import Field

from nocap import __version__
from nocap.analytics import filter_by_timeframe, insights, trend_points
from nocap.auth.keys import APIKeyManager
from nocap.config import ServiceEnvConfig
from nocap.errors import NotFound, ValidationError
from nocap.index.manager import IndexManager
from nocap.index.schemas import IndexStats
from nocap.index.sources import BackendManifestSource, IndexSource, RecordStoreSource
from nocap.models import (
    ContextComment,
    Fact,
    StoredCommentRecord,
    StoredFactRecord,
    decode_envelope,
    encode_comment,
    encode_fact,
    parse_comment,
    parse_fact,
)
from nocap.schemas import HealthStatus, WireModel, utcnow
from nocap.store.comment_store import CommentStore
from nocap.store.fact_index import fact_tags
from nocap.store.fact_store import FactStore
from nocap.walrus.backend import BlobBackend, EnumerableBackend
from nocap.walrus.factory import create_backend
from nocap.walrus.schemas import BlobMetadata


MAX_BULK_IDS = 100


class BackendStatusReport(WireModel):
    available: bool
    status: HealthStatus
    latency_ms: float = 0.0
    nodes: int = 0
    detail: str = ""


class IndexStatusReport(WireModel):
    available: bool
    last_sync: Optional[str] = None
    facts: int = 0
    detail: str = ""


class HealthReport(WireModel):
    status: HealthStatus
    version: str = __version__
    backend: str = ""
    walrus_status: BackendStatusReport
    index_status: IndexStatusReport
    fact_count: int = 0
    timestamp: str = Field(default_factory=lambda: utcnow().isoformat())

    @property
    def http_status(self) -> int:
        return 503 if self.status == "unhealthy" else 200


class RebuildReport(WireModel):
    facts: int = 0
    comments: int = 0
    skipped: int = 0
    blobs: int = 0


def _overall_status(backend_ok: bool, index_ok: bool) -> HealthStatus:
    if not backend_ok and not index_ok:
        return "unhealthy"
    if backend_ok and not index_ok:
        return "degraded"
    return "healthy"


def _pick(payload: Dict[str, Any], *names: str) -> Any:
    for name in names:
        value = payload.get(name)
        if value not in (None, ""):
            return value
    return None


class FactService:
    """
    Owns the blob backend, the record stores and the managers built on them.

    Constructed once at startup and handed to the HTTP layer. Every write goes
    to the backend first; the record store is only touched once the blob is
    durable, and the index manager is then marked stale.
    """

    def __init__(
        self,
        backend: BlobBackend,
        *,
        facts: Optional[FactStore] = None,
        comments: Optional[CommentStore] = None,
        index_manager: Optional[IndexManager] = None,
        keys: Optional[APIKeyManager] = None,
    ) -> None:
        self.backend = backend
        self.facts = facts if facts is not None else FactStore()
        self.comments = comments if comments is not None else CommentStore()
        self.index_manager = index_manager or IndexManager(RecordStoreSource(self.facts, self.comments))
        self.keys = keys if keys is not None else APIKeyManager()

    @classmethod
    def from_env(cls, config: ServiceEnvConfig) -> "FactService":
        backend = create_backend(config)
        facts = FactStore()
        comments = CommentStore()
        source: IndexSource
        if config.index_source == "manifest":
            source = BackendManifestSource(backend)
        else:
            source = RecordStoreSource(facts, comments)
        service = cls(backend, facts=facts, comments=comments, index_manager=IndexManager(source))
        if config.seed_demo_keys:
            service.keys.initialize_demo_api_keys()
        return service

    # ------------------------------------------------------------------ facts

    async def _store_fact(self, fact: Fact) -> StoredFactRecord:
        meta = await self.backend.store(encode_fact(fact))
        stored = fact.model_copy(update={"blob_id": meta.blob_id})
        record = StoredFactRecord(
            fact=stored,
            blob_id=meta.blob_id,
            blob_metadata=meta,
            availability_certificate=meta.certificate,
        )
        self.facts.upsert(record)
        self.index_manager.mark_stale()
        return record

    async def create_fact(self, payload: Dict[str, Any]) -> StoredFactRecord:
        if not isinstance(payload, dict) or not _pick(payload, "id"):
            raise ValidationError("id is required")
        body = dict(payload)
        body.pop("blobId", None)
        body.pop("blob_id", None)
        fact = parse_fact(body)

        metadata = dict(fact.metadata)
        now = utcnow().isoformat()
        metadata.setdefault("version", 1)
        metadata.setdefault("created", now)
        metadata.setdefault("updated", now)
        fact = fact.model_copy(update={"metadata": metadata})

        record = await self._store_fact(fact)
        bt.logging.info(f"Stored fact {fact.id} as blob {record.blob_id}")
        return record

    async def update_fact(self, fact_id: str, updates: Dict[str, Any]) -> StoredFactRecord:
        """
        Write a new blob for `fact_id` with `updates` applied.

        Blobs are immutable, so the record ends up pointing at a different blob
        id. `metadata` is merged key by key; `metadata.version` is bumped.
        """
        existing = self.facts.get(fact_id)
        if existing is None:
            raise NotFound(f"Fact not found: {fact_id}")
        if not isinstance(updates, dict):
            raise ValidationError("update body must be a JSON object")

        merged = existing.fact.model_dump()
        for name, field in Fact.model_fields.items():
            if name in ("id", "blob_id"):
                continue
            for key in (field.alias, name):
                if key and key in updates:
                    merged[name] = updates[key]
                    break

        metadata = dict(existing.fact.metadata)
        extra = updates.get("metadata")
        if isinstance(extra, dict):
            metadata.update(extra)
        try:
            previous_version = int(existing.fact.metadata.get("version") or 1)
        except (TypeError, ValueError):
            previous_version = 1
        metadata["version"] = previous_version + 1
        metadata["updated"] = utcnow().isoformat()
        merged["metadata"] = metadata
        merged["blob_id"] = None

        record = await self._store_fact(parse_fact(merged))
        bt.logging.info(f"Updated fact {fact_id}: blob {existing.blob_id} -> {record.blob_id}")
        return record

    def get_fact(self, fact_id: str) -> StoredFactRecord:
        record = self.facts.get(fact_id)
        if record is None:
            raise NotFound(f"Fact not found: {fact_id}")
        return record

    def list_facts(self, limit: int = 10, offset: int = 0) -> Tuple[List[StoredFactRecord], int]:
        records = self.facts.list()
        start = max(0, int(offset))
        return records[start : start + max(0, int(limit))], len(records)

    def search_facts(
        self,
        *,
        tags: Sequence[str] = (),
        keywords: Sequence[str] = (),
        categories: Sequence[str] = (),
        author: Optional[str] = None,
        region: Optional[str] = None,
        status: Sequence[str] = (),
        limit: int = 10,
        offset: int = 0,
    ) -> Tuple[List[StoredFactRecord], int]:
        # No criteria means "everything", matching the plain listing.
        if not any((tags, keywords, categories, author, region, status)):
            return self.list_facts(limit, offset)
        ids = self.facts.index.search(
            tags=tags,
            keywords=keywords,
            categories=categories,
            author=author,
            region=region,
            status=status,
        )
        matched = [r for r in self.facts.list() if r.fact.id in ids]
        start = max(0, int(offset))
        return matched[start : start + max(0, int(limit))], len(matched)

    def get_facts_bulk(
        self,
        fact_ids: Sequence[str],
        *,
        include_content: bool = False,
        include_sources: bool = False,
    ) -> Dict[str, Any]:
        if not isinstance(fact_ids, (list, tuple)) or not fact_ids:
            raise ValidationError("factIds array is required and must not be empty")
        if len(fact_ids) > MAX_BULK_IDS:
            raise ValidationError(f"Maximum {MAX_BULK_IDS} fact IDs allowed per bulk request")

        facts: List[Dict[str, Any]] = []
        errors: List[Dict[str, str]] = []
        for fact_id in fact_ids:
            record = self.facts.get(str(fact_id))
            if record is None:
                errors.append({"factId": str(fact_id), "error": "Fact not found"})
                continue
            wire = record.fact.to_wire()
            if not include_content:
                wire.pop("fullContent", None)
            if not include_sources:
                wire.pop("sources", None)
            facts.append(wire)

        return {
            "facts": facts,
            "errors": errors,
            "totalRequested": len(fact_ids),
            "totalReturned": len(facts),
        }

    def tag_analytics(self, *, category: Optional[str] = None, limit: int = 50, sort_by: str = "count") -> Dict[str, Any]:
        """Per-tag counts with average importance and verification rate."""
        buckets: Dict[Tuple[str, Optional[str]], Dict[str, Any]] = {}
        for record in self.facts.list():
            fact = record.fact
            for name, tag_category in fact_tags(fact.metadata):
                if category and tag_category != category:
                    continue
                bucket = buckets.setdefault(
                    (name, tag_category),
                    {"name": name, "category": tag_category, "facts": 0, "importance": 0.0, "verified": 0},
                )
                bucket["facts"] += 1
                try:
                    bucket["importance"] += float(fact.metadata.get("importance") or 0)
                except (TypeError, ValueError):
                    pass
                if fact.status == "verified":
                    bucket["verified"] += 1

        tags = [
            {
                "name": b["name"],
                "category": b["category"],
                "count": b["facts"],
                "averageImportance": b["importance"] / b["facts"],
                "verificationRate": 100.0 * b["verified"] / b["facts"],
            }
            for b in buckets.values()
        ]
        if sort_by == "name":
            tags.sort(key=lambda t: t["name"])
        else:
            tags.sort(key=lambda t: (-t["count"], t["name"]))

        return {
            "tags": tags[: max(0, int(limit))],
            "totalTags": len(tags),
            "categories": [c["name"] for c in self.facts.index.category_stats()],
        }

    def analytics(
        self,
        timeframe: str = "30d",
        category: Optional[str] = None,
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        """Insights over the facts last updated within `timeframe`."""
        now = now or utcnow()
        facts = filter_by_timeframe([r.fact for r in self.facts.list()], timeframe, now)
        return {
            "timeframe": timeframe,
            "category": category,
            "insights": insights(facts, category),
            "generatedAt": now.isoformat(),
        }

    def trends(
        self,
        timeframe: str = "30d",
        granularity: str = "daily",
        tags: Sequence[str] = (),
        *,
        now: Optional[datetime] = None,
    ) -> Dict[str, Any]:
        if not isinstance(tags, (list, tuple)):
            raise ValidationError("tags must be a list of strings")
        wanted = {str(t).strip().lower() for t in tags if str(t).strip()}

        facts = filter_by_timeframe([r.fact for r in self.facts.list()], timeframe, now or utcnow())
        if wanted:
            facts = [f for f in facts if any(name in wanted for name, _ in fact_tags(f.metadata))]
        points = trend_points(facts, granularity)
        return {
            "timeframe": timeframe,
            "granularity": granularity,
            "tags": sorted(wanted),
            "trends": points,
            "totalDataPoints": len(points),
        }

    # --------------------------------------------------------------- comments

    async def create_comment(self, payload: Dict[str, Any]) -> StoredCommentRecord:
        if not isinstance(payload, dict) or not _pick(payload, "id") or not _pick(payload, "factId", "fact_id"):
            raise ValidationError("id and factId are required")
        comment = parse_comment(payload)

        meta = await self.backend.store(encode_comment(comment))
        record = StoredCommentRecord(
            comment=comment,
            blob_id=meta.blob_id,
            blob_metadata=meta,
            availability_certificate=meta.certificate,
        )
        self.comments.upsert(record)
        self.index_manager.mark_stale()
        bt.logging.info(f"Stored comment {comment.id} on fact {comment.fact_id} as blob {meta.blob_id}")
        return record

    def list_comments(self, fact_id: Optional[str]) -> List[ContextComment]:
        if not fact_id:
            raise ValidationError("factId query parameter is required")
        return [r.comment for r in self.comments.list_for_fact(fact_id)]

    # ------------------------------------------------------------ index/health

    async def index_stats(self) -> IndexStats:
        if not self.index_manager.initialized:
            await self.index_manager.initialize()
        elif self.index_manager.stale:
            await self.index_manager.refresh()
        return self.index_manager.get_index_stats()

    async def health(self) -> HealthReport:
        """Report partial availability instead of raising."""
        backend_ok = False
        backend_report = BackendStatusReport(available=False, status="unhealthy")
        try:
            probe = await self.backend.health_check()
            backend_ok = probe.status != "unhealthy"
            backend_report = BackendStatusReport(
                available=backend_ok,
                status=probe.status,
                latency_ms=probe.latency_ms,
                nodes=probe.available_nodes,
                detail=probe.detail,
            )
        except Exception as exc:
            bt.logging.warning(f"Blob backend health check failed: {exc}")
            backend_report = BackendStatusReport(available=False, status="unhealthy", detail=str(exc))

        index_ok = False
        index_report = IndexStatusReport(available=False)
        try:
            stats = await self.index_stats()
            index_ok = True
            index_report = IndexStatusReport(
                available=True,
                last_sync=stats.last_synced_at.isoformat() if stats.last_synced_at else None,
                facts=stats.total_facts,
            )
        except Exception as exc:
            bt.logging.warning(f"Index manager unavailable: {exc}")
            index_report = IndexStatusReport(available=False, detail=str(exc))

        return HealthReport(
            status=_overall_status(backend_ok, index_ok),
            backend=self.backend.name,
            walrus_status=backend_report,
            index_status=index_report,
            fact_count=len(self.facts),
        )

    # ---------------------------------------------------------------- rebuild

    async def rebuild_from_backend(self) -> RebuildReport:
        """
        Replay every blob an enumerable backend holds into the record stores.

        Blobs are replayed in manifest order, so the last blob written for an
        id wins. Backends that cannot enumerate (the network one) are skipped.
        """
        backend = self.backend
        if not isinstance(backend, EnumerableBackend):
            bt.logging.info(f"Backend {backend.name!r} cannot enumerate blobs; skipping rebuild.")
            return RebuildReport()

        report = RebuildReport()
        blob_ids = backend.blob_ids()
        report.blobs = len(blob_ids)
        fact_ids = set()
        comment_ids = set()
        for blob_id in blob_ids:
            try:
                kind, data = decode_envelope(await backend.retrieve(blob_id))
                meta = backend.get_metadata(blob_id) or BlobMetadata(blob_id=blob_id, size=0)
                if kind == "fact":
                    fact = parse_fact(data).model_copy(update={"blob_id": blob_id})
                    self.facts.upsert(
                        StoredFactRecord(
                            fact=fact, blob_id=blob_id, blob_metadata=meta, availability_certificate=meta.certificate
                        )
                    )
                    fact_ids.add(fact.id)
                else:
                    comment = parse_comment(data)
                    self.comments.upsert(
                        StoredCommentRecord(
                            comment=comment, blob_id=blob_id, blob_metadata=meta, availability_certificate=meta.certificate
                        )
                    )
                    comment_ids.add(comment.id)
            except (NotFound, ValidationError) as exc:
                bt.logging.debug(f"Rebuild skipping blob {blob_id}: {exc}")
                report.skipped += 1

        report.facts = len(fact_ids)
        report.comments = len(comment_ids)
        self.index_manager.mark_stale()
        bt.logging.info(
            f"Rebuilt record stores from {report.blobs} blobs: facts={report.facts} "
            f"comments={report.comments} skipped={report.skipped}"
        )
        return report
