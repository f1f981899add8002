"""
Error types raised by the reverse image search core.

Each carries the HTTP status the boundary should answer with; controllers
translate them into HTTPException so none of these leak to clients.
"""
from fastapi import status


class ReverseImageSearchError(Exception):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(ReverseImageSearchError):
    """Malformed or missing input (fingerprint, upload, parameters)"""
    status_code = status.HTTP_400_BAD_REQUEST


class InputError(ValidationError):
    """No image data was supplied to the extractor"""


class DecodeError(ValidationError):
    """Image bytes could not be decoded or rasterised"""


class StorageError(ReverseImageSearchError):
    """Durable read/write failure of the reference library"""


class ImageReadError(ReverseImageSearchError, OSError):
    """Source bytes of an image could not be read"""
