"""Unit tests for the Chroma embedding store (in-memory Chroma client)."""

from __future__ import annotations

from uuid import uuid4

import pytest
from pydantic import ValidationError

from hearth_rag.errors import InvalidQueryVector, StoreWriteFailed
from hearth_rag.retrieval.chroma_store import _build_scope_where
from hearth_rag.retrieval.models import EmbeddingRecord, SearchScope, SourceType

E1 = [1.0, 0.0, 0.0, 0.0]
E2 = [0.0, 1.0, 0.0, 0.0]
E3 = [0.0, 0.0, 1.0, 0.0]
NEAR_E1 = [0.9, 0.1, 0.0, 0.0]


def _rec(
    *,
    user: str = "u1",
    conv: str | None = None,
    source_type: SourceType = SourceType.FILE_CHUNK,
    source: str = "f1",
    idx: int = 0,
    content: str = "chunk",
    vec: list[float] = E1,
) -> EmbeddingRecord:
    return EmbeddingRecord(
        user_id=user,
        conversation_id=conv,
        source_type=source_type,
        source_id=source,
        chunk_index=idx,
        content=content,
        embedding=list(vec),
    )


def _msg(conv: str, source: str, *, user: str = "u1", vec: list[float] = E1, content: str = "msg"):
    return _rec(user=user, conv=conv, source_type=SourceType.MESSAGE, source=source, vec=vec,
                content=content)


@pytest.fixture()
def store(make_store):
    return make_store(dimension=4)


# ── Round trip ──────────────────────────────────────────────────────────


def test_exact_vector_is_nearest_at_zero_distance(store) -> None:
    target = _rec(content="the recital is on friday", vec=NEAR_E1)
    store.store_many([target, _rec(source="f2", vec=E2), _rec(source="f3", vec=E3)])

    hits = store.search("u1", NEAR_E1)
    assert hits[0].id == target.id
    assert hits[0].content == "the recital is on friday"
    assert hits[0].source_type is SourceType.FILE_CHUNK
    assert hits[0].source_id == "f1"
    assert hits[0].conversation_id is None
    assert abs(hits[0].distance) < 1e-5


def test_results_ordered_by_distance_and_limited(store) -> None:
    store.store_many([_rec(source="a", vec=E2), _rec(source="b", vec=NEAR_E1), _rec(source="c", vec=E1)])
    hits = store.search("u1", E1)
    assert [h.source_id for h in hits] == ["c", "b", "a"]
    assert [h.distance for h in hits] == sorted(h.distance for h in hits)
    assert len(store.search("u1", E1, limit=2)) == 2


def test_empty_batch_is_a_noop(store) -> None:
    store.store_many([])
    assert store.count("u1") == 0


# ── Tenant isolation ────────────────────────────────────────────────────


def test_search_never_returns_other_users_records(store) -> None:
    mine = [_rec(user="u1", source="f1", idx=i) for i in range(3)]
    theirs = [_rec(user="u2", source="f1", idx=i) for i in range(3)]
    store.store_many(mine + theirs)

    hits = store.search("u1", E1, limit=10)
    assert {h.id for h in hits} == {r.id for r in mine}

    # Scopes pointing at the other user's ids still stay inside the caller's corpus.
    store.store_many([_msg("c-u2", "m-u2", user="u2")])
    assert store.search("u1", E1, SearchScope.conversation("c-u2")) == []
    assert store.search("u3", E1, SearchScope.files(["f1"])) == []


# ── Scope composition ───────────────────────────────────────────────────


@pytest.fixture()
def corpus(store):
    records = {
        "m1": _msg("c1", "m1", vec=E1),
        "m2": _msg("c2", "m2", vec=E1),
        # A file chunk carrying a conversation id must not match a conversation scope.
        "f1_conv": _rec(conv="c1", source="f9", vec=E1),
        "f1a": _rec(source="f1", idx=0, vec=NEAR_E1),
        "f1b": _rec(source="f1", idx=1, vec=E2),
        "f2a": _rec(source="f2", idx=0, vec=E1),
        "f3a": _rec(source="f3", idx=0, vec=E3),
    }
    store.store_many(list(records.values()))
    return records


def test_conversation_scope_returns_only_its_messages(store, corpus) -> None:
    hits = store.search("u1", E1, SearchScope.conversation("c1"), limit=10)
    assert [h.id for h in hits] == [corpus["m1"].id]
    assert hits[0].conversation_id == "c1"
    assert hits[0].source_type is SourceType.MESSAGE


def test_file_scope_returns_only_listed_files(store, corpus) -> None:
    hits = store.search("u1", E1, SearchScope.files(["f1", "f3"]), limit=10)
    assert {h.id for h in hits} == {corpus["f1a"].id, corpus["f1b"].id, corpus["f3a"].id}
    assert all(h.source_type is SourceType.FILE_CHUNK for h in hits)


def test_combined_scope_is_union_ranked_together(store, corpus) -> None:
    scope = SearchScope(conversation_id="c1", file_ids=["f1"])
    hits = store.search("u1", E1, scope, limit=10)

    ids = [h.id for h in hits]
    assert set(ids) == {corpus["m1"].id, corpus["f1a"].id, corpus["f1b"].id}
    assert len(ids) == len(set(ids))
    assert [h.distance for h in hits] == sorted(h.distance for h in hits)
    assert ids[0] == corpus["m1"].id


def test_unscoped_search_spans_whole_corpus(store, corpus) -> None:
    hits = store.search("u1", E1, SearchScope(), limit=10)
    assert {h.id for h in hits} == {r.id for r in corpus.values()}
    assert {h.id for h in store.search("u1", E1, None, limit=10)} == {h.id for h in hits}


@pytest.mark.parametrize(
    "scope",
    [
        SearchScope.conversation("no-such-conversation"),
        SearchScope.files(["no-such-file"]),
        SearchScope(conversation_id="nope", file_ids=["nope"]),
    ],
)
def test_scope_matching_nothing_is_empty_not_error(store, corpus, scope) -> None:
    assert store.search("u1", E1, scope) == []


def test_empty_file_list_counts_as_absent() -> None:
    assert _build_scope_where("u1", SearchScope(file_ids=[])) == {"user_id": {"$eq": "u1"}}


def test_scope_where_shapes() -> None:
    user = {"user_id": {"$eq": "u1"}}
    conv = {
        "$and": [
            {"source_type": {"$eq": "message"}},
            {"conversation_id": {"$eq": "c1"}},
        ]
    }
    files = {
        "$and": [
            {"source_type": {"$eq": "file_chunk"}},
            {"source_id": {"$in": ["f1", "f2"]}},
        ]
    }
    assert _build_scope_where("u1", None) == user
    assert _build_scope_where("u1", SearchScope.conversation("c1")) == {"$and": [user, conv]}
    assert _build_scope_where("u1", SearchScope.files(["f1", "f2"])) == {"$and": [user, files]}
    assert _build_scope_where(
        "u1", SearchScope(conversation_id="c1", file_ids=["f1", "f2"])
    ) == {"$and": [user, {"$or": [conv, files]}]}


# ── Validation ──────────────────────────────────────────────────────────


@pytest.mark.parametrize(
    "vector",
    [[1.0, 0.0, 0.0], [1.0, 0.0, 0.0, 0.0, 0.0], [1.0, float("nan"), 0.0, 0.0], ["a", "b", "c", "d"]],
)
def test_malformed_query_vector_fails_fast(store, vector) -> None:
    with pytest.raises(InvalidQueryVector):
        store.search("u1", vector)


def test_batch_with_bad_record_writes_nothing(store) -> None:
    good = _rec(source="f1")
    bad = _rec(source="f2", vec=[1.0, 0.0, 0.0])
    with pytest.raises(StoreWriteFailed):
        store.store_many([good, bad])
    assert store.count("u1") == 0


def test_batch_with_duplicate_ids_writes_nothing(store) -> None:
    first = _rec(source="f1")
    dup = first.model_copy(update={"chunk_index": 1})
    with pytest.raises(StoreWriteFailed):
        store.store_many([first, dup])
    assert store.count("u1") == 0


def test_batch_reusing_a_stored_id_writes_nothing(store) -> None:
    first = _rec(content="first")
    store.store_many([first])

    reused = first.model_copy(update={"content": "second"})
    fresh = _rec(source="f2", vec=E2)
    with pytest.raises(StoreWriteFailed, match="existing ids"):
        store.store_many([fresh, reused])

    assert store.count("u1") == 1
    assert store.count("u1", source_id="f2") == 0
    assert [h.content for h in store.search("u1", E1)] == ["first"]


def test_zero_query_vector_is_rejected_under_cosine(store) -> None:
    store.store_many([_rec()])
    with pytest.raises(InvalidQueryVector, match="zero norm"):
        store.search("u1", [0.0] * 4)


def test_zero_query_vector_is_allowed_under_inner_product(make_store) -> None:
    store = make_store(dimension=4, distance_metric="ip")
    store.store_many([_rec()])
    assert len(store.search("u1", [0.0] * 4)) == 1


def test_message_record_requires_conversation() -> None:
    with pytest.raises(ValidationError):
        _rec(source_type=SourceType.MESSAGE, conv=None)


# ── Deletion ────────────────────────────────────────────────────────────


def test_delete_by_source(store, corpus) -> None:
    store.delete_by_source(SourceType.FILE_CHUNK, "f1")
    assert store.count("u1", source_id="f1") == 0
    assert store.count("u1", source_id="f2") == 1
    assert store.count("u1", source_type=SourceType.MESSAGE) == 2


def test_delete_by_source_respects_user_filter(store) -> None:
    store.store_many([_rec(user="u1", source="f1"), _rec(user="u2", source="f1")])
    store.delete_by_source(SourceType.FILE_CHUNK, "f1", user_id="u2")
    assert store.count("u1", source_id="f1") == 1
    assert store.count("u2", source_id="f1") == 0


def test_delete_by_conversation_only_touches_that_users_messages(store, corpus) -> None:
    store.store_many([_msg("c1", "m-other", user="u2")])
    store.delete_by_conversation("u1", "c1")

    assert store.search("u1", E1, SearchScope.conversation("c1")) == []
    assert store.count("u2") == 1
    # The file chunk tagged with c1 is not a message and survives.
    assert store.count("u1", source_id="f9") == 1
    assert store.count("u1", source_type=SourceType.MESSAGE) == 1


def test_count_filters(store, corpus) -> None:
    assert store.count("u1") == len(corpus)
    assert store.count("u1", source_type=SourceType.FILE_CHUNK) == 5
    assert store.count("u1", source_type=SourceType.FILE_CHUNK, source_id="f1") == 2
    assert store.count("nobody") == 0


# ── Collection configuration ────────────────────────────────────────────


def test_reopening_with_other_metric_is_refused(make_store) -> None:
    name = f"family_{uuid4().hex}"
    make_store(dimension=4, distance_metric="cosine", name=name)
    with pytest.raises(ValueError, match="metric"):
        make_store(dimension=4, distance_metric="ip", name=name)


def test_reopening_with_same_metric_sees_existing_records(make_store) -> None:
    name = f"family_{uuid4().hex}"
    first = make_store(dimension=4, name=name)
    first.store_many([_rec()])
    again = make_store(dimension=4, name=name)
    assert again.count("u1") == 1


def test_unsupported_metric(make_store) -> None:
    with pytest.raises(ValueError):
        make_store(dimension=4, distance_metric="l2")


def test_health_check(store) -> None:
    assert store.health_check() is True
