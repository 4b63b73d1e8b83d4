"""ChromaDB track index using PersistentClient.

Dense retrieval is done by ChromaDB. The document's sparse vector and the
full payload are stored as JSON in the point metadata; sparse scoring and
rank fusion happen in Python.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

import chromadb

from moodscope.exceptions import StoreError
from moodscope.index.base import BaseIndex
from moodscope.index.fusion import RRF_K, dedupe_by_isrc, reciprocal_rank_fusion
from moodscope.isrc import isrc_to_point_id, validate_and_normalize_isrc
from moodscope.sparse import text_to_sparse_vector
from moodscope.types import DiscoveryResult, SparseVector, TrackPayload

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

    from moodscope.types import ExpandedQuery, TrackDocument

__all__ = ["ChromaIndex", "payload_sparse_vector"]

logger = logging.getLogger(__name__)

_DEFAULT_PREFETCH_EXTRA = 50


def payload_sparse_vector(payload: TrackPayload) -> SparseVector:
    """Sparse vector over every text field of a stored track."""
    parts = [
        payload.title,
        payload.artist,
        payload.album,
        payload.lyrics,
        payload.interpretation,
        payload.short_description,
    ]
    return text_to_sparse_vector(" ".join(p for p in parts if p))


def _encode_sparse(vector: SparseVector) -> str:
    return json.dumps({"indices": list(vector.indices), "values": list(vector.values)})


def _decode_sparse(raw: object) -> SparseVector:
    if not isinstance(raw, str):
        return SparseVector()
    data = json.loads(raw)
    return SparseVector(indices=tuple(data["indices"]), values=tuple(data["values"]))


def _metadata(payload: TrackPayload) -> dict[str, str]:
    return {
        "isrc": payload.isrc,
        "payload": json.dumps(payload.to_dict()),
        "sparse": _encode_sparse(payload_sparse_vector(payload)),
    }


def _payload_from_meta(meta: Mapping[str, object] | None) -> TrackPayload | None:
    if not meta or not isinstance(meta.get("payload"), str):
        return None
    return TrackPayload.from_dict(json.loads(str(meta["payload"])))


class ChromaIndex(BaseIndex):
    """Track index backed by ChromaDB with file-based persistence.

    Uses ``chromadb.PersistentClient`` so no external server is needed.
    All data lives in the ``persist_path`` directory.

    Usage::

        index = ChromaIndex(persist_path=project_root / ".moodscope" / "index")
        index.upsert(document)
        results = index.hybrid_search(expanded_queries, limit=20)
    """

    def __init__(
        self,
        persist_path: Path,
        collection_name: str = "tracks",
        rrf_k: int = RRF_K,
    ) -> None:
        self._persist_path = persist_path
        self._collection_name = collection_name
        self._rrf_k = rrf_k

        try:
            self._client = chromadb.PersistentClient(path=str(persist_path))
            self._collection = self._client.get_or_create_collection(name=collection_name)
        except Exception as e:
            raise StoreError(f"Failed to initialize ChromaDB at {persist_path}: {e}") from e

        logger.info(
            "ChromaDB index initialized at %s (collection=%s)", persist_path, collection_name
        )

    def hybrid_search(
        self,
        queries: Sequence[ExpandedQuery],
        limit: int,
        offset: int = 0,
        prefetch_limit: int | None = None,
    ) -> list[DiscoveryResult]:
        if not queries or limit <= 0:
            return []
        if prefetch_limit is None:
            prefetch_limit = offset + limit + _DEFAULT_PREFETCH_EXTRA

        total = self.count()
        if total == 0:
            return []
        n_results = min(prefetch_limit, total)

        try:
            dense = self._collection.query(
                query_embeddings=[list(q.dense_vector) for q in queries],  # type: ignore[arg-type]
                n_results=n_results,
                include=["distances"],
            )
            stored = self._collection.get(include=["metadatas"])
        except Exception as e:
            raise StoreError(f"Hybrid search failed: {e}") from e

        metas: dict[str, Mapping[str, object]] = {
            point_id: meta or {}
            for point_id, meta in zip(stored["ids"], stored["metadatas"] or [], strict=True)
        }
        doc_sparse = {point_id: _decode_sparse(m.get("sparse")) for point_id, m in metas.items()}

        # Prefetch order: dense then sparse for each query
        rankings: list[list[str]] = []
        for dense_ids, query in zip(dense["ids"], queries, strict=True):
            rankings.append(list(dense_ids))
            rankings.append(self._sparse_ranking(query.sparse_vector, doc_sparse, n_results))

        fused = reciprocal_rank_fusion(rankings, k=self._rrf_k)

        results: list[DiscoveryResult] = []
        for point_id, score in fused:
            payload = _payload_from_meta(metas.get(point_id))
            if payload is None:
                logger.debug("Skipping point %s without payload", point_id)
                continue
            results.append(
                DiscoveryResult(
                    id=point_id,
                    isrc=payload.isrc.upper(),
                    title=payload.title,
                    artist=payload.artist,
                    album=payload.album,
                    score=score,
                    artwork_url=payload.artwork_url,
                )
            )

        unique = dedupe_by_isrc(results)
        logger.debug(
            "Hybrid search: %d queries, %d fused, %d unique", len(queries), len(fused), len(unique)
        )
        return unique[offset : offset + limit]

    @staticmethod
    def _sparse_ranking(
        query: SparseVector, documents: Mapping[str, SparseVector], limit: int
    ) -> list[str]:
        if query.is_empty:
            return []
        scored = [(point_id, query.dot(vec)) for point_id, vec in documents.items()]
        matching = sorted((p for p in scored if p[1] > 0), key=lambda p: p[1], reverse=True)
        return [point_id for point_id, _ in matching[:limit]]

    def check_existence(self, isrcs: Sequence[str]) -> dict[str, bool]:
        if not isrcs:
            return {}
        ids_by_isrc = {isrc: isrc_to_point_id(isrc) for isrc in isrcs}
        try:
            found = self._collection.get(ids=list(set(ids_by_isrc.values())), include=[])
        except Exception as e:
            raise StoreError(f"Existence check failed for {len(isrcs)} ISRCs: {e}") from e
        present = set(found["ids"])
        return {isrc: point_id in present for isrc, point_id in ids_by_isrc.items()}

    def upsert(self, document: TrackDocument) -> None:
        try:
            self._collection.upsert(
                ids=[document.id],
                embeddings=[list(document.vector)],  # type: ignore[arg-type]
                metadatas=[_metadata(document.payload)],  # type: ignore[list-item]
            )
        except Exception as e:
            raise StoreError(f"Failed to upsert track {document.payload.isrc}: {e}") from e
        logger.info("Upserted track %s (%s)", document.payload.isrc, document.id)

    def get_payload(self, isrc: str) -> TrackPayload | None:
        normalized = validate_and_normalize_isrc(isrc)
        if normalized is None:
            return None
        meta = self._get_meta(isrc_to_point_id(normalized))
        return _payload_from_meta(meta)

    def scroll(self, after: str | None, limit: int) -> list[tuple[str, TrackPayload]]:
        try:
            all_ids = sorted(self._collection.get(include=[])["ids"])
        except Exception as e:
            raise StoreError(f"Scroll failed: {e}") from e

        page_ids = [i for i in all_ids if after is None or i > after][:limit]
        if not page_ids:
            return []

        try:
            page = self._collection.get(ids=page_ids, include=["metadatas"])
        except Exception as e:
            raise StoreError(f"Scroll failed: {e}") from e

        by_id = dict(zip(page["ids"], page["metadatas"] or [], strict=True))
        pairs: list[tuple[str, TrackPayload]] = []
        for point_id in page_ids:
            payload = _payload_from_meta(by_id.get(point_id))
            if payload is not None:
                pairs.append((point_id, payload))
        return pairs

    def set_payload(self, point_id: str, fields: dict[str, object]) -> None:
        current = _payload_from_meta(self._get_meta(point_id))
        if current is None:
            raise StoreError(f"Point not found: {point_id}")

        merged = TrackPayload.from_dict({**current.to_dict(), **fields})
        try:
            self._collection.update(
                ids=[point_id],
                metadatas=[_metadata(merged)],  # type: ignore[list-item]
            )
        except Exception as e:
            raise StoreError(f"Failed to update payload for {point_id}: {e}") from e
        logger.debug("Updated payload fields %s for %s", sorted(fields), point_id)

    def count(self) -> int:
        try:
            return self._collection.count()
        except Exception as e:
            raise StoreError(f"Failed to count tracks: {e}") from e

    def _get_meta(self, point_id: str) -> Mapping[str, object] | None:
        try:
            found = self._collection.get(ids=[point_id], include=["metadatas"])
        except Exception as e:
            raise StoreError(f"Failed to read point {point_id}: {e}") from e
        metas = found["metadatas"] or []
        return metas[0] if metas else None
