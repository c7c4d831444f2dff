from nocap.models import ContextComment, Fact, StoredCommentRecord, StoredFactRecord
from nocap.store import CommentStore, FactStore, RecordStore
from nocap.walrus.schemas import BlobMetadata


def _fact_record(fact_id: str, blob_id: str, **fields) -> StoredFactRecord:
    fact = Fact(id=fact_id, blob_id=blob_id, **fields)
    return StoredFactRecord(fact=fact, blob_id=blob_id, blob_metadata=BlobMetadata(blob_id=blob_id, size=1))


def _comment_record(comment_id: str, fact_id: str, blob_id: str = "") -> StoredCommentRecord:
    blob_id = blob_id or f"blob-{comment_id}"
    comment = ContextComment(id=comment_id, fact_id=fact_id, text=f"text {comment_id}")
    return StoredCommentRecord(comment=comment, blob_id=blob_id, blob_metadata=BlobMetadata(blob_id=blob_id, size=1))


def test_fact_store_last_write_wins():
    store = FactStore()
    store.upsert(_fact_record("F1", "b1", summary="old"))
    store.upsert(_fact_record("F1", "b2", summary="new"))

    assert len(store) == 1
    assert "F1" in store
    assert store.get("F1").fact.summary == "new"
    assert store.get("F1").blob_id == "b2"
    assert store.get("nope") is None


def test_fact_store_keeps_search_index_in_step():
    store = FactStore()
    store.upsert(_fact_record("F1", "b1", title="Ocean vents", metadata={"tags": ["space"]}))
    assert store.index.search(tags=["space"]) == {"F1"}

    store.upsert(_fact_record("F1", "b2", title="Ocean vents", metadata={"tags": ["biology"]}))
    assert store.index.search(tags=["space"]) == set()
    assert store.index.search(tags=["biology"]) == {"F1"}

    store.clear()
    assert len(store) == 0
    assert len(store.index) == 0


def test_comments_listed_per_fact_in_insertion_order():
    store = CommentStore()
    store.upsert(_comment_record("c1", "F1"))
    store.upsert(_comment_record("c2", "F2"))
    store.upsert(_comment_record("c3", "F1"))
    store.upsert(_comment_record("c4", "F1"))

    assert [r.comment.id for r in store.list_for_fact("F1")] == ["c1", "c3", "c4"]
    assert [r.comment.id for r in store.list_for_fact("F2")] == ["c2"]
    assert all(r.comment.fact_id == "F1" for r in store.list_for_fact("F1"))
    assert store.count_for_fact("F1") == 3


def test_unknown_fact_has_no_comments():
    store = CommentStore()
    assert store.list_for_fact("missing") == []
    assert store.count_for_fact("missing") == 0


def test_reupsert_keeps_position_and_replaces_record():
    store = CommentStore()
    store.upsert(_comment_record("c1", "F1"))
    store.upsert(_comment_record("c2", "F1"))
    store.upsert(_comment_record("c1", "F1", blob_id="blob-c1-v2"))

    records = store.list_for_fact("F1")
    assert [r.comment.id for r in records] == ["c1", "c2"]
    assert records[0].blob_id == "blob-c1-v2"
    assert len(store) == 2


def test_moving_a_comment_to_another_fact_updates_both_lists():
    store = CommentStore()
    store.upsert(_comment_record("c1", "F1"))
    store.upsert(_comment_record("c1", "F2"))

    assert store.list_for_fact("F1") == []
    assert [r.comment.id for r in store.list_for_fact("F2")] == ["c1"]
    assert store.fact_ids() == ["F2"]


def test_every_stored_comment_fact_id_is_indexed():
    store = CommentStore()
    for i in range(10):
        store.upsert(_comment_record(f"c{i}", f"F{i % 3}"))
    indexed = set(store.fact_ids())
    assert all(r.comment.fact_id in indexed for r in store.list())


def test_clear_empties_records_and_index():
    store = CommentStore()
    store.upsert(_comment_record("c1", "F1"))
    store.upsert(_comment_record("c2", "F2"))
    store.clear()

    assert len(store) == 0
    assert store.list() == []
    assert store.fact_ids() == []
    assert store.list_for_fact("F1") == []


def test_stores_satisfy_record_store_protocol():
    assert isinstance(FactStore(), RecordStore)
    assert isinstance(CommentStore(), RecordStore)
