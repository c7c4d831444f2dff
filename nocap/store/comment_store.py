from __future__ import annotations

from typing import Dict, List, Optional

from nocap.models import StoredCommentRecord


class CommentStore:
    """
    Comment id -> StoredCommentRecord, plus fact id -> comment ids.

    Both maps are updated inside the same synchronous call, so every stored
    comment's fact id is always a key of the by-fact index. Dicts stand in for
    ordered sets: comment ids stay in first-insert order.
    """

    def __init__(self) -> None:
        self._records: Dict[str, StoredCommentRecord] = {}
        self._by_fact: Dict[str, Dict[str, None]] = {}

    def __len__(self) -> int:
        return len(self._records)

    def upsert(self, record: StoredCommentRecord) -> None:
        comment = record.comment
        previous = self._records.get(comment.id)
        if previous is not None and previous.comment.fact_id != comment.fact_id:
            ids = self._by_fact.get(previous.comment.fact_id)
            if ids is not None:
                ids.pop(comment.id, None)
                if not ids:
                    del self._by_fact[previous.comment.fact_id]

        self._records[comment.id] = record
        self._by_fact.setdefault(comment.fact_id, {})[comment.id] = None

    def get(self, comment_id: str) -> Optional[StoredCommentRecord]:
        return self._records.get(comment_id)

    def list_for_fact(self, fact_id: str) -> List[StoredCommentRecord]:
        ids = self._by_fact.get(fact_id)
        if not ids:
            return []
        return [self._records[cid] for cid in ids]

    def count_for_fact(self, fact_id: str) -> int:
        return len(self._by_fact.get(fact_id) or ())

    def fact_ids(self) -> List[str]:
        return list(self._by_fact.keys())

    def list(self) -> List[StoredCommentRecord]:
        return list(self._records.values())

    def clear(self) -> None:
        self._records.clear()
        self._by_fact.clear()
