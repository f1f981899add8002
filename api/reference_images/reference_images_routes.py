from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from typing import List, Optional
from api.reference_images.reference_images_controller import (
    add_reference_image_controller,
    delete_reference_image_controller,
    list_reference_images_controller,
    search_by_image_controller,
    search_reference_images_controller,
)
from api.reference_images.reference_images_schema import (
    ReferenceImageCreateResponse,
    ReferenceImageDeleteResponse,
    ReferenceImageListResponse,
    SearchRequest,
    SearchResponse,
)
from api.reference_images.reference_images_store import ReferenceImageStore
from config.settings import Settings
from middlewares.auth_middleware import auth_middleware
from middlewares.role_middleware import role_middleware
from utils.deps import get_app_settings, get_reference_store

router = APIRouter(prefix="/reference-images", tags=["Reference Images"])

require_admin = role_middleware()


@router.get(
    "/",
    response_model=ReferenceImageListResponse,
    summary="List the reference library, newest first"
)
def list_reference_images_endpoint(
    store: ReferenceImageStore = Depends(get_reference_store),
    settings: Settings = Depends(get_app_settings),
    current_user=Depends(auth_middleware),
):
    return list_reference_images_controller(store, settings)


@router.post(
    "/",
    response_model=ReferenceImageCreateResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload a reference image with its precomputed fingerprint"
)
async def add_reference_image_endpoint(
    image: Optional[UploadFile] = File(None),
    title: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    source_url: Optional[str] = Form(None, alias="sourceUrl"),
    tags: Optional[List[str]] = Form(None),
    fingerprint: Optional[str] = Form(None),
    fingerprint_algorithm: Optional[str] = Form(None, alias="fingerprintAlgorithm"),
    fingerprint_length: Optional[str] = Form(None, alias="fingerprintLength"),
    store: ReferenceImageStore = Depends(get_reference_store),
    settings: Settings = Depends(get_app_settings),
    current_user=Depends(require_admin),
):
    return await add_reference_image_controller(
        store,
        settings,
        image,
        title=title,
        description=description,
        source_url=source_url,
        tags=tags,
        fingerprint=fingerprint,
        fingerprint_algorithm=fingerprint_algorithm,
        fingerprint_length=fingerprint_length,
        current_user=current_user,
    )


@router.delete(
    "/{image_id}",
    response_model=ReferenceImageDeleteResponse,
    summary="Delete a reference image and its stored file"
)
def delete_reference_image_endpoint(
    image_id: str,
    store: ReferenceImageStore = Depends(get_reference_store),
    settings: Settings = Depends(get_app_settings),
    current_user=Depends(require_admin),
):
    return delete_reference_image_controller(store, settings, image_id)


@router.post(
    "/search",
    response_model=SearchResponse,
    summary="Find reference images similar to a fingerprint"
)
def search_reference_images_endpoint(
    payload: SearchRequest,
    store: ReferenceImageStore = Depends(get_reference_store),
    settings: Settings = Depends(get_app_settings),
    current_user=Depends(auth_middleware),
):
    return search_reference_images_controller(store, settings, payload)


@router.post(
    "/search/image",
    response_model=SearchResponse,
    summary="Fingerprint an uploaded image server-side and search with it"
)
async def search_by_image_endpoint(
    image: Optional[UploadFile] = File(None),
    algorithm: Optional[str] = Form(None),
    size: Optional[int] = Form(None, ge=2, le=64),
    min_similarity: Optional[str] = Form(None, alias="minSimilarity"),
    limit: Optional[str] = Form(None),
    store: ReferenceImageStore = Depends(get_reference_store),
    settings: Settings = Depends(get_app_settings),
    current_user=Depends(auth_middleware),
):
    return await search_by_image_controller(
        store,
        settings,
        image,
        algorithm=algorithm,
        size=size,
        min_similarity=min_similarity,
        limit=limit,
    )
