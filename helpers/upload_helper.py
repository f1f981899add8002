import logging
import uuid
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


def save_upload_bytes(contents: bytes, original_filename: Optional[str], dest_dir: Path) -> Path:
    """
    Write an uploaded file under a generated name, preserving its extension.
    Names are unique, so concurrent uploads never touch the same file.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    ext = Path(original_filename or "").suffix.lower()
    dest = dest_dir / f"{uuid.uuid4().hex}{ext}"
    with dest.open("wb") as buffer:
        buffer.write(contents)
    return dest


def remove_asset(dest_dir: Path, file_name: Optional[str]) -> bool:
    """Delete a stored asset; returns False when there was nothing to delete"""
    if not file_name:
        return False
    # only ever delete inside dest_dir
    target = dest_dir / Path(file_name).name
    try:
        target.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError:
        logger.exception("Failed to remove asset %s", target)
        return False


def asset_url(file_name: Optional[str], url_prefix: str = "/uploads/reference-images") -> Optional[str]:
    if not file_name:
        return None
    return f"{url_prefix.rstrip('/')}/{file_name}"
