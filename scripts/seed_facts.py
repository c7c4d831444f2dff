from __future__ import annotations

import sys
from pathlib import Path

# Allow running as a script without requiring `PYTHONPATH=.`.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

import asyncio

import bittensor as bt

from nocap.config import load_service_env
from nocap.seed import seed_sample_facts
from nocap.service import FactService


async def _run() -> None:
    service = FactService.from_env(load_service_env())
    # Facts already written to the mock directory would otherwise be seeded twice.
    await service.rebuild_from_backend()
    for record in await seed_sample_facts(service):
        bt.logging.info(f"{record.fact.id} -> {record.blob_id}")
    stats = await service.index_stats()
    bt.logging.info(f"Index: facts={stats.total_facts} comments={stats.total_comments} blobs={stats.total_blobs}")


def main() -> None:
    asyncio.run(_run())


if __name__ == "__main__":
    main()
