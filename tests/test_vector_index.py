"""Tests for the FAISS-backed vector index and corpus snapshots."""

import pytest

from conftest import make_chunk
from tala.src.core.corpus import Chunk, ChunkStore, CorpusSnapshot
from tala.src.database.vector_index import VectorIndex


def _unit(i: int, dimension: int = 4) -> list[float]:
    return [1.0 if j == i else 0.0 for j in range(dimension)]


def _broken_factory(dimension):
    raise RuntimeError("simulated construction failure")


class TestVectorIndex:
    def test_nearest_first(self):
        index = VectorIndex(4)
        index.rebuild([_unit(0), _unit(1), _unit(2)])
        hits = index.search(_unit(1), k=2)
        assert hits[0] == (1, 0.0)
        assert len(hits) == 2

    def test_k_capped_to_size(self):
        index = VectorIndex(4)
        index.rebuild([_unit(0), _unit(1), _unit(2)])
        assert len(index.search(_unit(0), k=10)) == 3

    def test_empty_index_returns_nothing(self):
        assert VectorIndex(4).search(_unit(0), k=3) == []

    def test_add_rejects_wrong_dimension(self):
        index = VectorIndex(4)
        with pytest.raises(ValueError):
            index.add([1.0, 2.0])

    def test_construction_failure_reports_unavailable(self):
        index = VectorIndex(4, factory=_broken_factory)
        assert not index.available
        assert index.size == 0
        assert index.search(_unit(0), k=3) == []

    def test_similarity(self):
        assert VectorIndex.similarity(0.0) == 1.0
        assert VectorIndex.similarity(1.0) == 0.5


class TestCorpusSnapshot:
    def test_index_matches_vector_chunks(self):
        chunks = [
            make_chunk("a", "alpha", embedding=_unit(0)),
            make_chunk("b", "beta"),
            make_chunk("c", "gamma", embedding=_unit(2)),
            make_chunk("d", "delta", embedding=[1.0, 0.0]),
        ]
        snapshot = CorpusSnapshot.build(chunks, dimension=4)
        assert len(snapshot) == 4
        assert [chunk.id for chunk in snapshot.vector_chunks] == ["a", "c"]
        assert snapshot.index.size == len(snapshot.vector_chunks)

    def test_failed_index_keeps_chunks_for_keyword_search(self):
        chunks = [make_chunk("a", "alpha", embedding=_unit(0))]
        snapshot = CorpusSnapshot.build(chunks, dimension=4, index_factory=_broken_factory)
        assert len(snapshot) == 1
        assert snapshot.vector_chunks == ()
        assert not snapshot.vector_ready

    def test_versions_increase(self):
        first = CorpusSnapshot.build([make_chunk("a", "alpha")], dimension=4)
        second = CorpusSnapshot.build([make_chunk("a", "alpha")], dimension=4)
        assert second.version > first.version > 0

    def test_publish_swaps_reference(self):
        store = ChunkStore(CorpusSnapshot.empty(4))
        held = store.current()
        fresh = CorpusSnapshot.build([make_chunk("a", "alpha")], dimension=4)
        previous = store.publish(fresh)
        assert previous is held
        assert store.current() is fresh
        assert len(held) == 0


class TestChunkFromStore:
    def test_field_fallbacks(self):
        chunk = Chunk.from_store({"_id": "x1", "text": "Body", "topic": "history", "category": "faq", "entities": {"year": 1989}})
        assert chunk.id == "x1"
        assert chunk.text == "Body"
        assert chunk.section == "history"
        assert chunk.type == "faq"
        assert chunk.metadata == {"year": 1989}

    def test_missing_id_rejected(self):
        with pytest.raises(ValueError):
            Chunk.from_store({"content": "no id"})

    def test_calendar_typed(self):
        assert make_chunk("e", "x", type="calendar_event").is_calendar
        assert make_chunk("e", "x", section="schedule_events").is_calendar
        assert not make_chunk("e", "x").is_calendar

    def test_only_titled_dated_chunks_are_events(self):
        assert make_chunk("e", "x", type="calendar_event").is_event
        assert make_chunk("e", "x", type="event", metadata={"title": "Foundation Day", "date": "2026-12-13"}).is_event
        untitled = make_chunk("s", "Classes start at 7:30 AM.", type="schedule")
        assert untitled.is_calendar and not untitled.is_event
