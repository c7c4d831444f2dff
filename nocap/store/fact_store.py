from __future__ import annotations

from typing import Dict, List, Optional

from nocap.models import StoredFactRecord
from nocap.store.fact_index import FactIndex


class FactStore:
    """Fact id -> latest StoredFactRecord. Last write wins."""

    def __init__(self, index: Optional[FactIndex] = None) -> None:
        self._records: Dict[str, StoredFactRecord] = {}
        self.index = index if index is not None else FactIndex()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, fact_id: object) -> bool:
        return fact_id in self._records

    def upsert(self, record: StoredFactRecord) -> None:
        # Record map and search index change together, with no await between.
        self._records[record.fact.id] = record
        self.index.index_fact(record.fact)

    def get(self, fact_id: str) -> Optional[StoredFactRecord]:
        return self._records.get(fact_id)

    def list(self) -> List[StoredFactRecord]:
        return list(self._records.values())

    def clear(self) -> None:
        self._records.clear()
        self.index.clear()
