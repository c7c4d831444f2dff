from __future__ import annotations

import asyncio
from typing import Optional

import bittensor as bt

from nocap.index.schemas import IndexStats
from nocap.index.sources import IndexSource
from nocap.schemas import utcnow


class IndexManager:
    """
    Aggregate counts over whatever `IndexSource` it is given.

    `initialize()` scans once; any number of concurrent callers share the same
    in-flight scan, and later calls return immediately. `refresh()` forces a
    new scan. `get_index_stats()` never raises and returns the last snapshot.
    """

    def __init__(self, source: IndexSource) -> None:
        self.source = source
        self._stats = IndexStats(source=source.name)
        self._initialized = False
        self._stale = False
        self._inflight: Optional[asyncio.Task] = None
        self.sync_count = 0

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def stale(self) -> bool:
        return self._stale

    def mark_stale(self) -> None:
        self._stale = True

    async def _scan(self) -> IndexStats:
        counts = await self.source.snapshot()
        stats = IndexStats(
            total_facts=counts.total_facts,
            total_comments=counts.total_comments,
            total_blobs=counts.total_blobs,
            facts_by_status=dict(counts.facts_by_status),
            last_synced_at=utcnow(),
            source=self.source.name,
        )
        self._stats = stats
        self._initialized = True
        self._stale = False
        self.sync_count += 1
        bt.logging.debug(
            f"Index synced from {self.source.name}: facts={stats.total_facts} comments={stats.total_comments}"
        )
        return stats

    async def _join_scan(self) -> IndexStats:
        task = self._inflight
        if task is None or task.done() or task.get_loop() is not asyncio.get_running_loop():
            task = asyncio.ensure_future(self._scan())
            self._inflight = task
        try:
            # Shielded so one caller giving up does not cancel the shared scan.
            return await asyncio.shield(task)
        finally:
            if self._inflight is task and task.done():
                self._inflight = None

    async def initialize(self) -> None:
        if self._initialized:
            return
        await self._join_scan()

    async def refresh(self) -> IndexStats:
        # An in-flight scan may predate the writes that made us stale; start fresh.
        inflight = self._inflight
        if inflight is not None and not inflight.done() and inflight.get_loop() is asyncio.get_running_loop():
            await asyncio.wait({inflight})
        self._inflight = None
        return await self._join_scan()

    def get_index_stats(self) -> IndexStats:
        return self._stats.model_copy(deep=True)
