# scripts/index_reference_images.py
"""
Bulk-index a folder of brand assets into the reference library.

Fingerprints are computed here (server-side) rather than trusted from a
client, then each file is copied into the uploads directory and recorded in
the configured store.

  python scripts/index_reference_images.py ./assets --tags logo,2026 --dry-run
"""
import os
import sys
import json
import logging
import argparse
import mimetypes
from pathlib import Path

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from config.settings import settings
from api.reference_images.reference_images_schema import ReferenceImageCreate
from api.reference_images.reference_images_store import build_reference_store
from helpers.fingerprint_helper import SUPPORTED_ALGORITHMS, compute_fingerprint
from helpers.upload_helper import remove_asset, save_upload_bytes
from utils.errors import ReverseImageSearchError

logger = logging.getLogger("index_reference_images")

IMAGE_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".tiff"}


def iter_images(folder: Path, recursive: bool):
    pattern = "**/*" if recursive else "*"
    for path in sorted(folder.glob(pattern)):
        if path.is_file() and path.suffix.lower() in IMAGE_EXTENSIONS:
            yield path


def index_folder(folder: Path, tags, algorithm: str, size: int, recursive: bool, dry_run: bool) -> dict:
    store = build_reference_store(settings)
    indexed, failed = 0, 0

    for path in iter_images(folder, recursive):
        try:
            contents = path.read_bytes()
            result = compute_fingerprint(contents, algorithm, size)
        except (OSError, ReverseImageSearchError) as e:
            logger.warning(f"✖ Skipping {path.name}: {e}")
            failed += 1
            continue

        if dry_run:
            print(json.dumps({"file": str(path), **result.to_dict()}))
            indexed += 1
            continue

        dest = save_upload_bytes(contents, path.name, settings.reference_images_dir)
        try:
            record = store.add(ReferenceImageCreate(
                title=path.stem,
                tags=tags,
                fingerprint=result.fingerprint,
                fingerprint_algorithm=result.algorithm,
                fingerprint_length=result.length,
                file_name=dest.name,
                mime_type=mimetypes.guess_type(path.name)[0],
                file_size=len(contents),
            ))
        except ReverseImageSearchError as e:
            remove_asset(settings.reference_images_dir, dest.name)
            logger.error(f"✖ Failed to index {path.name}: {e}")
            failed += 1
            continue

        logger.info(f"✔ Indexed {path.name} as {record.id}")
        indexed += 1

    return {"indexed": indexed, "failed": failed}


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Index a folder of reference images")
    parser.add_argument("folder", type=Path, help="Folder containing images")
    parser.add_argument("--tags", default="", help="Comma-separated tags applied to every image")
    parser.add_argument("--algorithm", default=settings.DEFAULT_FINGERPRINT_ALGORITHM, choices=SUPPORTED_ALGORITHMS)
    parser.add_argument("--size", type=int, default=settings.FINGERPRINT_SIZE, help="Fingerprint grid size")
    parser.add_argument("--recursive", action="store_true", help="Descend into sub-folders")
    parser.add_argument("--dry-run", action="store_true", help="Print fingerprints without indexing")
    parser.add_argument("--debug", action="store_true")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(message)s",
    )

    if not args.folder.is_dir():
        logger.error(f"Folder not found: {args.folder}")
        return 1

    summary = index_folder(args.folder, args.tags, args.algorithm, args.size, args.recursive, args.dry_run)
    logger.info(f"Done: {summary['indexed']} indexed, {summary['failed']} failed")
    return 0 if summary["failed"] == 0 else 2


if __name__ == "__main__":
    sys.exit(main())
