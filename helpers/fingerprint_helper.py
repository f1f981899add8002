"""
Perceptual fingerprints for reference images.

The average hash ("ahash") is the canonical fingerprint of the reference
library: the image is downsampled to an N x N grid, each cell reduced to its
luminance (0.299R + 0.587G + 0.114B), and every bit set when the cell is at or
above the grid mean. Bits are packed MSB-first into hex nibbles, so an 8x8
grid yields 64 bits / 16 hex digits.

pHash, dHash and wavelet hashes are delegated to ``imagehash`` and produce hex
strings tagged with their own algorithm name; they are only comparable with
fingerprints of the same tag.
"""
import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Dict, List, Union

import imagehash
import numpy as np
from PIL import Image, UnidentifiedImageError
from starlette.concurrency import run_in_threadpool

from utils.errors import DecodeError, ImageReadError, InputError

logger = logging.getLogger(__name__)

DEFAULT_HASH_SIZE = 8
AVERAGE_HASH = "ahash"

# imagehash-backed algorithms, keyed by the tag stored on the record
IMAGEHASH_ALGORITHMS = {
    "phash": imagehash.phash,
    "dhash": imagehash.dhash,
    "whash": imagehash.whash,
}
SUPPORTED_ALGORITHMS = (AVERAGE_HASH, *IMAGEHASH_ALGORITHMS)

ImageSource = Union[bytes, bytearray, BinaryIO, str, Path]


@dataclass
class FingerprintResult:
    fingerprint: str
    bits: List[int] = field(default_factory=list)
    length: int = 0
    algorithm: str = AVERAGE_HASH
    size: int = DEFAULT_HASH_SIZE

    def to_dict(self) -> Dict:
        return {
            "fingerprint": self.fingerprint,
            "bits": list(self.bits),
            "length": self.length,
            "algorithm": self.algorithm,
            "size": self.size,
        }


def _read_source(source: ImageSource) -> bytes:
    if source is None:
        raise InputError("A file is required to compute the image fingerprint.")

    if isinstance(source, (bytes, bytearray)):
        data = bytes(source)
    elif isinstance(source, (str, Path)):
        try:
            data = Path(source).read_bytes()
        except OSError as exc:
            raise ImageReadError(f"Failed to read the image file: {exc}") from exc
    else:
        try:
            if hasattr(source, "seek"):
                source.seek(0)
            data = source.read()
        except (OSError, ValueError) as exc:
            raise ImageReadError(f"Failed to read the image stream: {exc}") from exc

    if not data:
        raise InputError("A file is required to compute the image fingerprint.")
    return data


def _load_rgb(data: bytes) -> Image.Image:
    try:
        with Image.open(io.BytesIO(data)) as img:
            img.load()
            return img.convert("RGB")
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeError("Unable to load the selected image.") from exc


def pack_bits(bits: List[int]) -> str:
    """Pack bits 4 at a time, most significant bit first, into lower-case hex"""
    digits = []
    for start in range(0, len(bits), 4):
        chunk = list(bits[start:start + 4])
        chunk += [0] * (4 - len(chunk))
        nibble = (chunk[0] << 3) | (chunk[1] << 2) | (chunk[2] << 1) | chunk[3]
        digits.append(format(nibble, "x"))
    return "".join(digits)


def average_hash_bits(img: Image.Image, size: int = DEFAULT_HASH_SIZE) -> List[int]:
    grid = img.convert("RGB").resize((size, size), Image.BILINEAR)
    pixels = np.asarray(grid, dtype=np.float64).reshape(-1, 3)
    luminance = pixels[:, 0] * 0.299 + pixels[:, 1] * 0.587 + pixels[:, 2] * 0.114
    mean = luminance.mean()
    # ">=" keeps uniform images deterministic: every bit is 1
    return [1 if value >= mean else 0 for value in luminance]


def compute_average_hash(source: ImageSource, size: int = DEFAULT_HASH_SIZE) -> FingerprintResult:
    """
    Compute the average-hash fingerprint of an image.

    ``source`` may be raw bytes, a binary stream or a filesystem path.
    Raises InputError when no data is supplied, ImageReadError when the
    source cannot be read and DecodeError when it is not a decodable image.
    """
    if size < 1:
        raise InputError("Fingerprint grid size must be a positive integer.")

    img = _load_rgb(_read_source(source))
    bits = average_hash_bits(img, size)
    fingerprint = pack_bits(bits)
    return FingerprintResult(
        fingerprint=fingerprint,
        bits=bits,
        length=len(fingerprint),
        algorithm=AVERAGE_HASH,
        size=size,
    )


def compute_fingerprint(
    source: ImageSource,
    algorithm: str = AVERAGE_HASH,
    size: int = DEFAULT_HASH_SIZE,
) -> FingerprintResult:
    """Compute a fingerprint with any supported algorithm tag"""
    algorithm = (algorithm or AVERAGE_HASH).strip().lower()
    if algorithm == AVERAGE_HASH:
        return compute_average_hash(source, size)

    hash_fn = IMAGEHASH_ALGORITHMS.get(algorithm)
    if hash_fn is None:
        raise InputError(
            f"Unsupported fingerprint algorithm '{algorithm}'. "
            f"Expected one of: {', '.join(SUPPORTED_ALGORITHMS)}"
        )
    if size < 2:
        raise InputError("Fingerprint grid size must be at least 2.")
    if algorithm == "whash" and size & (size - 1):
        # imagehash asserts on this instead of raising
        raise InputError("Wavelet hash grid size must be a power of two.")

    img = _load_rgb(_read_source(source))
    image_hash = hash_fn(img, hash_size=size)

    bits = [int(b) for b in image_hash.hash.astype(np.uint8).flatten()]
    fingerprint = pack_bits(bits)
    return FingerprintResult(
        fingerprint=fingerprint,
        bits=bits,
        length=len(fingerprint),
        algorithm=algorithm,
        size=size,
    )


async def compute_fingerprint_async(
    source: ImageSource,
    algorithm: str = AVERAGE_HASH,
    size: int = DEFAULT_HASH_SIZE,
) -> FingerprintResult:
    """Run decoding and hashing in the worker threadpool"""
    return await run_in_threadpool(compute_fingerprint, source, algorithm, size)
