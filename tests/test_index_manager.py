import asyncio

import pytest

from nocap.errors import BackendUnavailable
from nocap.index import BackendManifestSource, IndexManager, RecordStoreSource
from nocap.index.schemas import SourceCounts
from nocap.models import ContextComment, Fact, encode_comment, encode_fact
from nocap.service import FactService


class CountingSource:
    name = "counting"

    def __init__(self, delay_s: float = 0.0) -> None:
        self.calls = 0
        self.delay_s = delay_s

    async def snapshot(self) -> SourceCounts:
        self.calls += 1
        await asyncio.sleep(self.delay_s)
        return SourceCounts(total_facts=self.calls, facts_by_status={"verified": self.calls})


class FailingSource:
    name = "failing"

    async def snapshot(self) -> SourceCounts:
        raise BackendUnavailable("storage offline")


def test_stats_before_initialize_are_empty_and_unstamped():
    stats = IndexManager(CountingSource()).get_index_stats()
    assert stats.total_facts == 0
    assert stats.last_synced_at is None
    assert stats.source == "counting"


def test_initialize_is_idempotent():
    source = CountingSource()
    manager = IndexManager(source)

    async def run():
        await manager.initialize()
        await manager.initialize()
        await manager.initialize()

    asyncio.run(run())
    assert source.calls == 1
    assert manager.sync_count == 1
    stats = manager.get_index_stats()
    assert stats.total_facts == 1
    assert stats.last_synced_at is not None


def test_concurrent_initialize_shares_one_scan():
    source = CountingSource(delay_s=0.01)
    manager = IndexManager(source)

    async def run():
        await asyncio.gather(*(manager.initialize() for _ in range(20)))

    asyncio.run(run())
    assert source.calls == 1
    assert manager.initialized


def test_refresh_rescans_and_clears_stale():
    source = CountingSource()
    manager = IndexManager(source)

    async def run():
        await manager.initialize()
        manager.mark_stale()
        assert manager.stale
        return await manager.refresh()

    stats = asyncio.run(run())
    assert source.calls == 2
    assert stats.total_facts == 2
    assert not manager.stale


def test_failed_scan_propagates_and_leaves_previous_snapshot():
    manager = IndexManager(FailingSource())
    with pytest.raises(BackendUnavailable):
        asyncio.run(manager.initialize())
    assert not manager.initialized
    # Never raises, even after a failed scan.
    assert manager.get_index_stats().total_facts == 0


def test_returned_stats_are_copies():
    manager = IndexManager(CountingSource())
    asyncio.run(manager.initialize())
    manager.get_index_stats().facts_by_status["verified"] = 99
    assert manager.get_index_stats().facts_by_status == {"verified": 1}


def test_record_store_source_counts(blob_store):
    service = FactService(blob_store)

    async def run():
        await service.create_fact({"id": "F1", "status": "verified"})
        await service.create_fact({"id": "F2", "status": "review"})
        await service.update_fact("F2", {"status": "verified"})
        await service.create_comment({"id": "c1", "factId": "F1", "text": "hi"})
        return await RecordStoreSource(service.facts, service.comments).snapshot()

    counts = asyncio.run(run())
    assert counts.total_facts == 2
    assert counts.total_comments == 1
    assert counts.facts_by_status == {"verified": 2}
    # Only the blobs records point at; F2's first blob is superseded.
    assert counts.total_blobs == 3


def test_manifest_source_replays_backend_blobs(blob_store):
    async def run():
        await blob_store.store(encode_fact(Fact(id="F1", status="review")))
        await blob_store.store(encode_fact(Fact(id="F1", status="verified")))
        await blob_store.store(encode_fact(Fact(id="F2", status="flagged")))
        await blob_store.store(encode_comment(ContextComment(id="c1", fact_id="F1")))
        await blob_store.store(b"not an envelope")
        manager = IndexManager(BackendManifestSource(blob_store))
        await manager.initialize()
        return manager.get_index_stats()

    stats = asyncio.run(run())
    assert stats.source == "manifest"
    assert stats.total_facts == 2
    assert stats.total_comments == 1
    assert stats.total_blobs == 5
    assert stats.facts_by_status == {"verified": 1, "flagged": 1}
