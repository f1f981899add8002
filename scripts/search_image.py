# scripts/search_image.py
"""
Fingerprint a local image and print its closest reference images as JSON.

  python scripts/search_image.py ./suspect.png --min-similarity 0.85 --limit 5
"""
import os
import sys
import json
import argparse
from pathlib import Path

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config.settings import settings
from api.reference_images.reference_images_service import find_similar_images
from api.reference_images.reference_images_store import build_reference_store
from helpers.fingerprint_helper import SUPPORTED_ALGORITHMS, compute_fingerprint
from utils.errors import ReverseImageSearchError
from utils.query_params import SearchParams


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Search the reference library with a local image")
    parser.add_argument("image", type=Path)
    parser.add_argument("--algorithm", default=settings.DEFAULT_FINGERPRINT_ALGORITHM, choices=SUPPORTED_ALGORITHMS)
    parser.add_argument("--size", type=int, default=settings.FINGERPRINT_SIZE)
    parser.add_argument("--min-similarity", default="0")
    parser.add_argument("--limit", default="10")
    args = parser.parse_args(argv)

    try:
        result = compute_fingerprint(args.image, args.algorithm, args.size)
        params = SearchParams.parse(
            result.fingerprint,
            fingerprint_algorithm=result.algorithm,
            fingerprint_length=result.length,
            min_similarity=args.min_similarity,
            limit=args.limit,
        )
        outcome = find_similar_images(
            build_reference_store(settings).list(),
            fingerprint=params.fingerprint,
            fingerprint_algorithm=params.fingerprint_algorithm,
            fingerprint_length=params.fingerprint_length,
            limit=params.limit,
            min_similarity=params.min_similarity,
        )
    except ReverseImageSearchError as e:
        print(f"❌ {e.message}", file=sys.stderr)
        return 1

    print(json.dumps({
        "query": params.model_dump(),
        "matches": [
            {
                "id": m.image.id,
                "title": m.image.title,
                "similarity": m.similarity,
                "distance": m.distance,
                "bitCount": m.bit_count,
            }
            for m in outcome.matches
        ],
        "summary": outcome.summary.model_dump(by_alias=True),
    }, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
