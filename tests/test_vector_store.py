"""Tests for the Pinecone gateway, using an in-memory index double."""

import pytest

from app.services import vector_store
from app.services.chunker import build_chunks
from app.services.exceptions import VectorIndexFailure
from app.services.vector_store import (
    DELETE_BATCH_SIZE,
    UPSERT_BATCH_SIZE,
    VectorIndexGateway,
    chunk_vector_id,
    vector_ids_for_file,
)

from conftest import InMemoryIndex, make_record


def _chunks(file_id, n):
    return build_chunks(file_id, [f"chunk text {i}" for i in range(n)])


def _vectors(n):
    return [[float(i), 0.5] for i in range(n)]


def test_vector_ids_are_derived_from_file_and_ordinal():
    assert chunk_vector_id("01ABC", 0) == "01ABC_chunk_0"
    assert vector_ids_for_file("01ABC", 3) == ["01ABC_chunk_0", "01ABC_chunk_1", "01ABC_chunk_2"]
    assert vector_ids_for_file("01ABC", 0) == []


def test_upsert_writes_one_vector_per_chunk_with_metadata():
    index = InMemoryIndex()
    gateway = VectorIndexGateway(index, namespace="docs")
    record = make_record("f1")

    written = gateway.upsert_chunks(record, _chunks("f1", 3), _vectors(3))

    assert written == ["f1_chunk_0", "f1_chunk_1", "f1_chunk_2"]
    assert index.vectors["f1_chunk_1"]["metadata"] == {
        "filename": "f1.pdf",
        "filepath": "/Shared Documents/f1.pdf",
        "fileurl": "https://contoso.sharepoint.com/f1.pdf",
        "chunk": "chunk text 1",
    }
    assert index.vectors["f1_chunk_1"]["values"] == [1.0, 0.5]


def test_upsert_is_batched():
    index = InMemoryIndex()
    gateway = VectorIndexGateway(index)

    gateway.upsert_chunks(make_record("f1"), _chunks("f1", 250), _vectors(250))

    sizes = [len(ids) for op, ids in index.calls if op == "upsert"]
    assert sizes == [UPSERT_BATCH_SIZE, UPSERT_BATCH_SIZE, 50]
    assert len(index.vectors) == 250


def test_upsert_with_mismatched_vectors_is_rejected():
    gateway = VectorIndexGateway(InMemoryIndex())
    with pytest.raises(ValueError):
        gateway.upsert_chunks(make_record("f1"), _chunks("f1", 3), _vectors(2))


def test_failed_upsert_reports_ids_already_written():
    index = InMemoryIndex(fail_on_upsert_call=2)
    gateway = VectorIndexGateway(index)

    with pytest.raises(VectorIndexFailure) as exc_info:
        gateway.upsert_chunks(make_record("f1"), _chunks("f1", 250), _vectors(250))

    assert exc_info.value.written_ids == [f"f1_chunk_{i}" for i in range(UPSERT_BATCH_SIZE)]
    assert exc_info.value.stage == "vector_index"


def test_delete_is_batched_and_ignores_absent_ids():
    index = InMemoryIndex()
    gateway = VectorIndexGateway(index)

    assert gateway.delete_many([f"x_chunk_{i}" for i in range(2500)]) == 2500

    sizes = [len(ids) for op, ids in index.calls if op == "delete"]
    assert sizes == [DELETE_BATCH_SIZE, DELETE_BATCH_SIZE, 500]


def test_delete_file_removes_exactly_its_vectors():
    index = InMemoryIndex()
    gateway = VectorIndexGateway(index)
    gateway.upsert_chunks(make_record("f1"), _chunks("f1", 4), _vectors(4))
    gateway.upsert_chunks(make_record("f10"), _chunks("f10", 2), _vectors(2))

    assert gateway.delete_file("f1", 4) == 4

    assert sorted(index.vectors) == ["f10_chunk_0", "f10_chunk_1"]


def test_delete_file_without_chunks_makes_no_call():
    index = InMemoryIndex()
    VectorIndexGateway(index).delete_file("f1", 0)
    assert index.calls == []


def test_delete_failure_is_wrapped():
    class BrokenIndex(InMemoryIndex):
        def delete(self, ids, namespace="", _request_timeout=None):
            raise ConnectionError("reset by peer")

    with pytest.raises(VectorIndexFailure, match="reset by peer"):
        VectorIndexGateway(BrokenIndex()).delete_many(["a_chunk_0"])


def test_every_index_call_carries_a_timeout():
    index = InMemoryIndex()
    gateway = VectorIndexGateway(index, timeout=7.5)

    gateway.upsert_chunks(make_record("f1"), _chunks("f1", 150), _vectors(150))
    gateway.delete_file("f1", 150)

    assert index.timeouts == [7.5, 7.5, 7.5]


def test_timeout_defaults_to_request_timeout_setting(monkeypatch):
    monkeypatch.setattr(vector_store.settings, "REQUEST_TIMEOUT_SECONDS", 12.0)
    index = InMemoryIndex()

    VectorIndexGateway(index).delete_many(["a_chunk_0"])

    assert index.timeouts == [12.0]
