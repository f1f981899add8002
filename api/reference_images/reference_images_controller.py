import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

from fastapi import HTTPException, UploadFile, status
from starlette.concurrency import run_in_threadpool

from api.reference_images.reference_images_schema import (
    MatchResult,
    ReferenceImageCreate,
    ReferenceImageCreateResponse,
    ReferenceImageDeleteResponse,
    ReferenceImageListResponse,
    ReferenceImageRecord,
    ReferenceImageResponse,
    RemovedImage,
    SearchQueryEcho,
    SearchRequest,
    SearchResponse,
    UploadedBy,
)
from api.reference_images.reference_images_service import find_similar_images
from api.reference_images.reference_images_store import ReferenceImageStore
from config.settings import Settings
from helpers.fingerprint_helper import FingerprintResult, compute_fingerprint_async
from helpers.upload_helper import asset_url, remove_asset, save_upload_bytes
from utils.errors import ReverseImageSearchError, ValidationError
from utils.query_params import SearchParams

logger = logging.getLogger(__name__)


@contextmanager
def translate_errors(action: str):
    """Turn core errors into HTTP responses carrying only status + message"""
    try:
        yield
    except HTTPException:
        raise
    except ReverseImageSearchError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.message) from exc
    except Exception as exc:
        logger.exception("%s failed", action)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error",
        ) from exc


def _assets_prefix(settings: Settings) -> str:
    return f"{settings.UPLOAD_URL_PREFIX.rstrip('/')}/reference-images"


def _to_response(record: ReferenceImageRecord, settings: Settings) -> ReferenceImageResponse:
    return ReferenceImageResponse(
        **record.model_dump(),
        image_url=asset_url(record.file_name, _assets_prefix(settings)),
    )


def _principal(current_user: Optional[Dict[str, Any]]) -> Optional[UploadedBy]:
    if not current_user:
        return None
    return UploadedBy(
        id=current_user.get("id"),
        email=current_user.get("email"),
        role=current_user.get("role"),
    )


def _flatten_tags(tags: Optional[List[str]]) -> List[str]:
    if not tags:
        return []
    return [part for item in tags for part in str(item).split(",")]


def list_reference_images_controller(store: ReferenceImageStore, settings: Settings) -> ReferenceImageListResponse:
    with translate_errors("Listing reference images"):
        images = [_to_response(record, settings) for record in store.list()]
        return ReferenceImageListResponse(images=images, count=len(images))


async def _read_image_upload(file: Optional[UploadFile], settings: Settings) -> bytes:
    if file is None or not file.filename:
        raise ValidationError("Reference image file is required")
    if not (file.content_type or "").startswith("image/"):
        raise ValidationError("Only image uploads are supported")

    contents = await file.read()
    if not contents:
        raise ValidationError("Uploaded image is empty")
    if len(contents) > settings.MAX_FILE_SIZE:
        raise ReverseImageSearchError(
            f"Uploaded image exceeds the {settings.MAX_FILE_SIZE // (1024 * 1024)}MB size limit",
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        )
    return contents


async def _verified_fingerprint(
    contents: bytes,
    declared: Optional[str],
    algorithm: str,
    settings: Settings,
) -> FingerprintResult:
    computed = await compute_fingerprint_async(contents, algorithm, settings.FINGERPRINT_SIZE)
    if declared and declared.strip().lower() != computed.fingerprint:
        logger.warning(
            "Client fingerprint %s does not match server fingerprint %s (%s); using the server value",
            declared.strip().lower(), computed.fingerprint, algorithm,
        )
    return computed


async def add_reference_image_controller(
    store: ReferenceImageStore,
    settings: Settings,
    file: Optional[UploadFile],
    title: Optional[str] = None,
    description: Optional[str] = None,
    source_url: Optional[str] = None,
    tags: Optional[List[str]] = None,
    fingerprint: Optional[str] = None,
    fingerprint_algorithm: Optional[str] = None,
    fingerprint_length: Optional[str] = None,
    current_user: Optional[Dict[str, Any]] = None,
) -> ReferenceImageCreateResponse:
    """
    Persist the uploaded asset, then the record. Either both exist afterwards
    or neither does: any failure after the file is written removes it.
    """
    with translate_errors("Indexing reference image"):
        contents = await _read_image_upload(file, settings)
        dest = save_upload_bytes(contents, file.filename, settings.reference_images_dir)
        try:
            algorithm = (fingerprint_algorithm or settings.DEFAULT_FINGERPRINT_ALGORITHM).strip().lower()
            if settings.VERIFY_FINGERPRINTS:
                computed = await _verified_fingerprint(contents, fingerprint, algorithm, settings)
                fingerprint = computed.fingerprint
                fingerprint_length = str(computed.length)

            fields = ReferenceImageCreate(
                title=title,
                description=description,
                source_url=source_url,
                tags=_flatten_tags(tags),
                fingerprint=fingerprint,
                fingerprint_algorithm=algorithm,
                fingerprint_length=fingerprint_length,
                file_name=dest.name,
                mime_type=file.content_type,
                file_size=len(contents),
                uploaded_by=_principal(current_user),
            )
            record = await run_in_threadpool(store.add, fields)
        except BaseException:
            remove_asset(settings.reference_images_dir, dest.name)
            raise

        return ReferenceImageCreateResponse(image=_to_response(record, settings))


def delete_reference_image_controller(
    store: ReferenceImageStore,
    settings: Settings,
    image_id: str,
) -> ReferenceImageDeleteResponse:
    with translate_errors("Deleting reference image"):
        removed = store.delete(image_id)
        if removed is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Reference image not found")

        remove_asset(settings.reference_images_dir, removed.file_name)
        return ReferenceImageDeleteResponse(removed=RemovedImage(id=removed.id, title=removed.title))


def _run_search(
    store: ReferenceImageStore,
    settings: Settings,
    params: SearchParams,
    computed: Optional[Dict[str, Any]] = None,
) -> SearchResponse:
    outcome = find_similar_images(
        store.list(),
        fingerprint=params.fingerprint,
        fingerprint_algorithm=params.fingerprint_algorithm,
        fingerprint_length=params.fingerprint_length,
        limit=params.limit,
        min_similarity=params.min_similarity,
    )
    prefix = _assets_prefix(settings)
    matches = [
        MatchResult(
            **entry.image.model_dump(),
            image_url=asset_url(entry.image.file_name, prefix),
            similarity=entry.similarity,
            distance=entry.distance,
            bit_count=entry.bit_count,
        )
        for entry in outcome.matches
    ]
    return SearchResponse(
        query=SearchQueryEcho(**params.model_dump(), computed=computed),
        matches=matches,
        summary=outcome.summary,
    )


def search_reference_images_controller(
    store: ReferenceImageStore,
    settings: Settings,
    payload: SearchRequest,
) -> SearchResponse:
    with translate_errors("Reverse image search"):
        params = SearchParams.parse(
            payload.fingerprint,
            fingerprint_algorithm=payload.fingerprint_algorithm or settings.DEFAULT_FINGERPRINT_ALGORITHM,
            fingerprint_length=payload.fingerprint_length,
            min_similarity=payload.min_similarity,
            limit=payload.limit,
        )
        return _run_search(store, settings, params)


async def search_by_image_controller(
    store: ReferenceImageStore,
    settings: Settings,
    file: Optional[UploadFile],
    algorithm: Optional[str] = None,
    size: Optional[int] = None,
    min_similarity: Optional[str] = None,
    limit: Optional[str] = None,
) -> SearchResponse:
    """Fingerprint the uploaded image server-side, then search with it"""
    with translate_errors("Reverse image search by upload"):
        contents = await _read_image_upload(file, settings)
        result = await compute_fingerprint_async(
            contents,
            algorithm or settings.DEFAULT_FINGERPRINT_ALGORITHM,
            size or settings.FINGERPRINT_SIZE,
        )
        params = SearchParams.parse(
            result.fingerprint,
            fingerprint_algorithm=result.algorithm,
            fingerprint_length=result.length,
            min_similarity=min_similarity,
            limit=limit,
        )
        computed = {"fingerprint": result.fingerprint, "length": result.length,
                    "algorithm": result.algorithm, "size": result.size}
        return await run_in_threadpool(_run_search, store, settings, params, computed)
