# utils/query_params.py

from typing import Any, Optional
from pydantic import BaseModel, Field

from api.reference_images.reference_images_service import (
    DEFAULT_ALGORITHM,
    clamp_limit,
    normalise_fingerprint,
    parse_length,
)


def parse_min_similarity(value: Any) -> float:
    """Threshold in [0, 1]; missing or non-numeric input means 0"""
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        threshold = float(value)
    except (TypeError, ValueError):
        return 0.0
    if threshold != threshold:  # NaN
        return 0.0
    return min(max(threshold, 0.0), 1.0)


class SearchParams(BaseModel):
    """
    Strongly-typed search parameters. Wire values (often strings from forms
    or query strings) are parsed once here, before reaching the engine.
    """
    fingerprint: str
    fingerprint_algorithm: str = DEFAULT_ALGORITHM
    fingerprint_length: int
    min_similarity: float = Field(default=0.0, ge=0.0, le=1.0)
    limit: int = Field(default=10, ge=1, le=50)

    @classmethod
    def parse(
        cls,
        fingerprint: Any,
        fingerprint_algorithm: Optional[str] = None,
        fingerprint_length: Any = None,
        min_similarity: Any = None,
        limit: Any = None,
    ) -> "SearchParams":
        normalised = normalise_fingerprint(fingerprint)
        return cls(
            fingerprint=normalised,
            fingerprint_algorithm=(fingerprint_algorithm or DEFAULT_ALGORITHM).strip().lower() or DEFAULT_ALGORITHM,
            fingerprint_length=parse_length(fingerprint_length) or len(normalised),
            min_similarity=parse_min_similarity(min_similarity),
            limit=clamp_limit(limit),
        )
