"""Tests for moodscope.index — rank fusion and the ChromaDB track index."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest
from conftest import make_payload

from moodscope.exceptions import StoreError
from moodscope.index.chroma import ChromaIndex, payload_sparse_vector
from moodscope.index.fusion import RRF_K, dedupe_by_isrc, reciprocal_rank_fusion
from moodscope.isrc import isrc_to_point_id
from moodscope.sparse import text_to_sparse_vector
from moodscope.types import AudioFeatures, DiscoveryResult, ExpandedQuery, TrackDocument

if TYPE_CHECKING:
    from pathlib import Path

    from moodscope.types import TrackPayload


# --- Helpers ---


def _document(
    payload: TrackPayload, vector: tuple[float, ...], point_id: str | None = None
) -> TrackDocument:
    point_id = point_id or isrc_to_point_id(payload.isrc)
    return TrackDocument(id=point_id, vector=vector, payload=payload)


def _query(text: str, vector: tuple[float, ...]) -> ExpandedQuery:
    return ExpandedQuery(text=text, dense_vector=vector, sparse_vector=text_to_sparse_vector(text))


def _result(isrc: str, score: float = 1.0) -> DiscoveryResult:
    return DiscoveryResult(id=isrc, isrc=isrc, title="t", artist="a", album="b", score=score)


@pytest.fixture
def index(tmp_path: Path) -> ChromaIndex:
    return ChromaIndex(persist_path=tmp_path / "chroma", collection_name="test")


@pytest.fixture
def populated(index: ChromaIndex) -> ChromaIndex:
    index.upsert(
        _document(
            make_payload(
                "USRC11700001",
                "Bohemian Rhapsody",
                "Queen",
                interpretation="A mock opera about fate, guilt and escape.",
            ),
            (1.0, 0.0, 0.0, 0.0),
        )
    )
    index.upsert(
        _document(
            make_payload(
                "GBAYE0601498",
                "Here Comes the Sun",
                "The Beatles",
                album="Abbey Road",
                interpretation="Relief and hope as winter gives way to sunshine.",
            ),
            (0.0, 1.0, 0.0, 0.0),
        )
    )
    index.upsert(
        _document(
            make_payload("USUM71703861", "Silent Track", "Nobody", album="Quiet"),
            (0.0, 0.0, 0.0, 0.0),
        )
    )
    return index


# --- Fusion ---


class TestReciprocalRankFusion:
    def test_single_ranking(self):
        fused = reciprocal_rank_fusion([["a", "b"]])
        assert [item for item, _ in fused] == ["a", "b"]
        assert fused[0][1] == pytest.approx(1 / (RRF_K + 1))
        assert fused[1][1] == pytest.approx(1 / (RRF_K + 2))

    def test_items_in_several_rankings_accumulate(self):
        fused = dict(reciprocal_rank_fusion([["a", "b"], ["b", "c"]]))
        assert fused["b"] == pytest.approx(1 / (RRF_K + 2) + 1 / (RRF_K + 1))
        assert max(fused, key=fused.get) == "b"  # type: ignore[arg-type]

    def test_ties_keep_first_seen_order(self):
        fused = reciprocal_rank_fusion([["x"], ["y"]])
        assert [item for item, _ in fused] == ["x", "y"]

    def test_empty(self):
        assert reciprocal_rank_fusion([]) == []


class TestDedupeByIsrc:
    def test_keeps_first_occurrence(self):
        results = [_result("USRC11700001", 0.9), _result("usrc11700001", 0.5), _result("X", 0.1)]
        unique = dedupe_by_isrc(results)
        assert [r.score for r in unique] == [0.9, 0.1]


# --- ChromaIndex ---


class TestChromaIndexInit:
    def test_creates_persist_dir(self, tmp_path: Path):
        ChromaIndex(persist_path=tmp_path / "chroma")
        assert (tmp_path / "chroma").exists()

    def test_empty_count(self, index: ChromaIndex):
        assert index.count() == 0
        assert index.is_healthy() is True


class TestChromaIndexWrites:
    def test_upsert_and_get_payload(self, index: ChromaIndex):
        payload = make_payload(
            lyrics="Is this the real life?", audio_features=AudioFeatures(tempo=72.0)
        )
        index.upsert(_document(payload, (0.1, 0.2, 0.3, 0.4)))
        assert index.count() == 1
        assert index.get_payload("usrc11700001") == payload

    def test_upsert_same_isrc_overwrites(self, index: ChromaIndex):
        index.upsert(_document(make_payload(title="Old"), (0.1, 0.2, 0.3, 0.4)))
        index.upsert(_document(make_payload(title="New"), (0.1, 0.2, 0.3, 0.4)))
        assert index.count() == 1
        assert index.get_payload("USRC11700001").title == "New"  # type: ignore[union-attr]

    def test_get_payload_unknown_or_invalid(self, index: ChromaIndex):
        assert index.get_payload("USRC11700099") is None
        assert index.get_payload("bad") is None

    def test_set_payload_merges_fields(self, populated: ChromaIndex):
        point_id = isrc_to_point_id("USUM71703861")
        populated.set_payload(point_id, {"short_description": "A hushed ambient piece."})
        payload = populated.get_payload("USUM71703861")
        assert payload is not None
        assert payload.short_description == "A hushed ambient piece."
        assert payload.title == "Silent Track"

    def test_set_payload_refreshes_sparse_vector(self, populated: ChromaIndex):
        point_id = isrc_to_point_id("USUM71703861")
        populated.set_payload(point_id, {"short_description": "glacial whispering drones"})
        results = populated.hybrid_search([_query("glacial drones", (0.0, 0.0, 1.0, 0.0))], limit=3)
        assert results[0].isrc == "USUM71703861"

    def test_set_payload_missing_point(self, index: ChromaIndex):
        with pytest.raises(StoreError, match="not found"):
            index.set_payload("00000000-0000-0000-0000-000000000000", {"short_description": "x"})

    def test_payload_sparse_vector_covers_text_fields(self):
        payload = make_payload(lyrics="thunderbolt lightning", interpretation="fate")
        indices = set(payload_sparse_vector(payload).indices)
        assert set(text_to_sparse_vector("thunderbolt fate queen").indices) <= indices


class TestChromaIndexExistence:
    def test_check_existence(self, populated: ChromaIndex):
        result = populated.check_existence(["USRC11700001", "USRC11700099"])
        assert result == {"USRC11700001": True, "USRC11700099": False}

    def test_empty_input(self, index: ChromaIndex):
        assert index.check_existence([]) == {}


class TestChromaIndexScroll:
    def test_scroll_in_point_id_order(self, populated: ChromaIndex):
        first = populated.scroll(None, 2)
        rest = populated.scroll(first[-1][0], 10)
        ids = [point_id for point_id, _ in first + rest]
        assert len(ids) == 3
        assert ids == sorted(ids)

    def test_scroll_past_end(self, populated: ChromaIndex):
        isrcs = ("USRC11700001", "GBAYE0601498", "USUM71703861")
        last = max(isrc_to_point_id(i) for i in isrcs)
        assert populated.scroll(last, 10) == []


class TestChromaIndexHybridSearch:
    def test_dense_match_ranks_first(self, populated: ChromaIndex):
        results = populated.hybrid_search([_query("zzzz", (0.0, 1.0, 0.0, 0.0))], limit=3)
        assert results[0].isrc == "GBAYE0601498"
        assert results[0].title == "Here Comes the Sun"

    def test_sparse_and_dense_agree(self, populated: ChromaIndex):
        results = populated.hybrid_search(
            [_query("opera about fate", (1.0, 0.0, 0.0, 0.0))], limit=3
        )
        assert results[0].isrc == "USRC11700001"
        # Top hit appears in both the dense and the sparse ranking
        assert results[0].score == pytest.approx(2 / (RRF_K + 1))

    def test_multiple_queries_fused(self, populated: ChromaIndex):
        queries = [
            _query("opera fate", (1.0, 0.0, 0.0, 0.0)),
            _query("sunshine hope", (0.0, 1.0, 0.0, 0.0)),
        ]
        results = populated.hybrid_search(queries, limit=3)
        top_two = {r.isrc for r in results[:2]}
        assert top_two == {"USRC11700001", "GBAYE0601498"}

    def test_offset_and_limit(self, populated: ChromaIndex):
        queries = [_query("opera", (1.0, 0.0, 0.0, 0.0))]
        everything = populated.hybrid_search(queries, limit=3)
        page = populated.hybrid_search(queries, limit=1, offset=1)
        assert [r.isrc for r in page] == [everything[1].isrc]

    def test_dedupes_by_isrc(self, index: ChromaIndex):
        payload = make_payload()
        index.upsert(_document(payload, (1.0, 0.0, 0.0, 0.0)))
        index.upsert(_document(payload, (0.9, 0.1, 0.0, 0.0), point_id="legacy-duplicate"))
        results = index.hybrid_search([_query("bohemian", (1.0, 0.0, 0.0, 0.0))], limit=10)
        assert [r.isrc for r in results] == ["USRC11700001"]

    def test_empty_index(self, index: ChromaIndex):
        assert index.hybrid_search([_query("x y", (1.0, 0.0, 0.0, 0.0))], limit=5) == []

    def test_no_queries(self, populated: ChromaIndex):
        assert populated.hybrid_search([], limit=5) == []
