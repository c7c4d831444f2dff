from nocap.store.base import RecordStore
from nocap.store.comment_store import CommentStore
from nocap.store.fact_index import FactIndex
from nocap.store.fact_store import FactStore

__all__ = ["CommentStore", "FactIndex", "FactStore", "RecordStore"]
