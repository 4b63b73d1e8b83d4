"""ISRC validation, normalization and deterministic point ids.

An ISRC (ISO 3901) is exactly 12 alphanumeric characters, case-insensitive,
stored upper-case. Point ids are derived from the normalized ISRC so that
re-ingesting a track overwrites its document instead of duplicating it.
"""

from __future__ import annotations

import hashlib
import logging
import re
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

__all__ = [
    "ISRC_NAMESPACE",
    "batch_isrc_to_point_ids",
    "is_valid_isrc",
    "isrc_to_point_id",
    "normalize_isrc",
    "validate_and_normalize_isrc",
]

logger = logging.getLogger(__name__)

ISRC_NAMESPACE = "6ba7b810-9dad-11d1-80b4-00c04fd430c8"

_ISRC_PATTERN = re.compile(r"^[A-Z0-9]{12}$", re.IGNORECASE)


def is_valid_isrc(isrc: str | None) -> bool:
    """Return True if ``isrc`` is 12 alphanumeric characters."""
    if not isrc or not isinstance(isrc, str):
        return False
    return _ISRC_PATTERN.match(isrc) is not None


def normalize_isrc(isrc: str) -> str:
    """Upper-case a valid ISRC.

    Raises:
        ValueError: If the ISRC is not 12 alphanumeric characters.
    """
    if not is_valid_isrc(isrc):
        raise ValueError(f"Invalid ISRC format: {isrc!r}")
    return isrc.upper()


def validate_and_normalize_isrc(isrc: str | None) -> str | None:
    """Return the upper-cased ISRC, or None when it is missing or malformed."""
    if isrc is None or not is_valid_isrc(isrc):
        return None
    return isrc.upper()


def isrc_to_point_id(isrc: str) -> str:
    """Hash an ISRC to a UUID-formatted point id (8-4-4-4-12).

    The same ISRC, in any letter case, always maps to the same id.
    """
    digest = hashlib.sha256()
    digest.update(ISRC_NAMESPACE.encode("utf-8"))
    digest.update(normalize_isrc(isrc).encode("utf-8"))
    h = digest.hexdigest()
    return f"{h[0:8]}-{h[8:12]}-{h[12:16]}-{h[16:20]}-{h[20:32]}"


def batch_isrc_to_point_ids(isrcs: Iterable[str]) -> dict[str, str]:
    """Map each valid ISRC (upper-cased) to its point id; invalid ones are skipped."""
    result: dict[str, str] = {}
    for isrc in isrcs:
        normalized = validate_and_normalize_isrc(isrc)
        if normalized is None:
            logger.debug("Skipping invalid ISRC %r", isrc)
            continue
        result[normalized] = isrc_to_point_id(normalized)
    return result
