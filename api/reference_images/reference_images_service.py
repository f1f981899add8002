"""
Similarity search over the reference library.

Every candidate is scored by Hamming distance between hex fingerprints,
converted to a similarity in [0, 1] and ranked. This is a linear scan: fine
for hundreds to low thousands of references. Larger libraries would need a
bucketed nearest-neighbour index (e.g. multi-index hashing) placed in front of
``find_similar_images``; callers only depend on its inputs and SearchOutcome.
"""
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional

from api.reference_images.reference_images_schema import ReferenceImageRecord, SearchSummary
from utils.errors import ValidationError

logger = logging.getLogger(__name__)

HEX_BIT_COUNTS = [0, 1, 1, 2, 1, 2, 2, 3, 1, 2, 2, 3, 2, 3, 3, 4]
HEX_PATTERN = re.compile(r"^[0-9a-f]+$")

DEFAULT_LIMIT = 10
MAX_LIMIT = 50
DEFAULT_ALGORITHM = "ahash"


@dataclass
class ScoredCandidate:
    image: ReferenceImageRecord
    similarity: float
    distance: int
    bit_count: int


@dataclass
class SearchOutcome:
    matches: List[ScoredCandidate] = field(default_factory=list)
    summary: Optional[SearchSummary] = None


def normalise_fingerprint(value: Any) -> str:
    """Trim and lower-case a hex fingerprint, rejecting anything else"""
    if not value or not isinstance(value, str):
        raise ValidationError("Fingerprint is required")

    normalised = value.strip().lower()
    if not HEX_PATTERN.match(normalised):
        raise ValidationError("Fingerprint must be a hex-encoded string")
    return normalised


def normalise_tags(raw_tags: Any = None) -> List[str]:
    if raw_tags is None:
        return []
    if isinstance(raw_tags, (list, tuple)):
        return [str(tag).strip() for tag in raw_tags if str(tag).strip()]
    return [tag.strip() for tag in str(raw_tags).split(",") if tag.strip()]


def parse_length(value: Any) -> Optional[int]:
    """Declared hex length; None when missing, non-numeric or not positive"""
    if value is None or isinstance(value, bool):
        return None
    try:
        length = int(str(value).strip(), 10)
    except ValueError:
        return None
    return length if length > 0 else None


def clamp_limit(value: Any) -> int:
    """Limit in [1, 50]; missing, zero or non-numeric input means the default"""
    if value is None or isinstance(value, bool):
        return DEFAULT_LIMIT
    try:
        limit = float(value)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    if limit != limit or limit == 0:  # NaN or zero
        return DEFAULT_LIMIT
    return int(min(max(1, limit), MAX_LIMIT))


def hamming_distance(fingerprint_a: str, fingerprint_b: str, length: Optional[int] = None) -> int:
    """
    Count differing bits over the first ``length`` hex digits.

    Either side is right-padded with '0' when shorter than the window.
    """
    max_length = length or min(len(fingerprint_a), len(fingerprint_b))
    padded_a = fingerprint_a[:max_length].ljust(max_length, "0")
    padded_b = fingerprint_b[:max_length].ljust(max_length, "0")

    distance = 0
    for digit_a, digit_b in zip(padded_a, padded_b):
        distance += HEX_BIT_COUNTS[(int(digit_a, 16) ^ int(digit_b, 16)) & 0x0F]
    return distance


def score_candidate(query: str, query_length: int, image: ReferenceImageRecord) -> ScoredCandidate:
    candidate_length = image.fingerprint_length or len(image.fingerprint)
    length = min(query_length, candidate_length)
    bits = length * 4
    if bits <= 0:
        return ScoredCandidate(image=image, similarity=0.0, distance=0, bit_count=0)

    distance = hamming_distance(query, image.fingerprint, length)
    return ScoredCandidate(
        image=image,
        similarity=round(1 - distance / bits, 4),
        distance=distance,
        bit_count=bits,
    )


def find_similar_images(
    candidates: Iterable[ReferenceImageRecord],
    fingerprint: Any,
    fingerprint_algorithm: Optional[str] = DEFAULT_ALGORITHM,
    fingerprint_length: Any = None,
    limit: Any = DEFAULT_LIMIT,
    min_similarity: float = 0.0,
) -> SearchOutcome:
    """
    Rank ``candidates`` against a query fingerprint.

    Only candidates tagged with the query's algorithm are scored; the rest are
    excluded rather than scored as zero. Ties keep candidate order.
    """
    start = time.perf_counter()
    target = normalise_fingerprint(fingerprint)
    query_length = parse_length(fingerprint_length) or len(target)
    algorithm = (fingerprint_algorithm or DEFAULT_ALGORITHM).strip().lower()
    effective_limit = clamp_limit(limit)
    threshold = float(min_similarity or 0.0)

    eligible = [image for image in candidates if image.fingerprint_algorithm == algorithm]
    scored = [score_candidate(target, query_length, image) for image in eligible]

    kept = [entry for entry in scored if entry.similarity >= threshold]
    kept.sort(key=lambda entry: entry.similarity, reverse=True)
    matches = kept[:effective_limit]

    elapsed_ms = (time.perf_counter() - start) * 1000
    logger.debug(
        "Scored %d/%d candidates (algorithm=%s) in %.2f ms, %d matches",
        len(scored), len(eligible), algorithm, elapsed_ms, len(matches),
    )
    return SearchOutcome(
        matches=matches,
        summary=SearchSummary(
            total_candidates=len(eligible),
            evaluated=len(scored),
            min_similarity=threshold,
            limit=effective_limit,
            execution_time_ms=round(elapsed_ms, 3),
        ),
    )
