"""Track index: abstract interface, rank fusion and the ChromaDB backend."""

from moodscope.index.base import BaseIndex
from moodscope.index.chroma import ChromaIndex, payload_sparse_vector
from moodscope.index.fusion import RRF_K, dedupe_by_isrc, reciprocal_rank_fusion

__all__ = [
    "RRF_K",
    "BaseIndex",
    "ChromaIndex",
    "dedupe_by_isrc",
    "payload_sparse_vector",
    "reciprocal_rank_fusion",
]
