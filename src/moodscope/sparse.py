"""Sparse term-frequency vectors for lexical (BM25-style) matching.

Tokens are hashed to 32-bit indices so no vocabulary has to be stored.
Weights use BM25 term-frequency saturation, ``tf / (tf + k)``; IDF is left
to the index.
"""

from __future__ import annotations

import hashlib
import re
from collections import Counter
from typing import TYPE_CHECKING

from moodscope.types import SparseVector

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = [
    "BM25_K",
    "combine_sparse_vectors",
    "hash_token",
    "text_to_sparse_vector",
    "tokenize",
]

BM25_K = 1.2

_NON_WORD = re.compile(r"[^\w\s]")


def tokenize(text: str) -> list[str]:
    """Lower-case ``text`` and split it into tokens longer than one character."""
    cleaned = _NON_WORD.sub(" ", text.lower())
    return [t for t in cleaned.split() if len(t) > 1]


def hash_token(token: str) -> int:
    """Map a token to an unsigned 32-bit index (first 4 bytes of its MD5)."""
    digest = hashlib.md5(token.encode("utf-8"), usedforsecurity=False).digest()
    return int.from_bytes(digest[:4], "big")


def text_to_sparse_vector(text: str) -> SparseVector:
    """Build a saturated term-frequency vector for ``text``.

    Empty input, or input made only of one-character tokens, gives an empty
    vector rather than an error.
    """
    counts: Counter[int] = Counter(hash_token(t) for t in tokenize(text))
    if not counts:
        return SparseVector()
    indices = tuple(counts)
    values = tuple(counts[i] / (counts[i] + BM25_K) for i in indices)
    return SparseVector(indices=indices, values=values)


def combine_sparse_vectors(vectors: Iterable[SparseVector]) -> SparseVector:
    """Merge vectors by summing the weights of shared indices."""
    combined: dict[int, float] = {}
    for vector in vectors:
        for index, value in zip(vector.indices, vector.values, strict=True):
            combined[index] = combined.get(index, 0.0) + value
    return SparseVector(indices=tuple(combined), values=tuple(combined.values()))
