from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional
from datetime import datetime


class CamelModel(BaseModel):
    """Snake_case attributes, camelCase on the wire"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True


class UploadedBy(CamelModel):
    id: Optional[Any] = None
    email: Optional[str] = None
    role: Optional[str] = None


class ReferenceImageCreate(CamelModel):
    """
    Loose input for the store's add operation. Values arrive from multipart
    forms, so tags may be a comma-separated string and the length a string.
    """
    title: Optional[str] = None
    description: Optional[str] = None
    source_url: Optional[str] = None
    tags: Optional[Any] = None
    fingerprint: Optional[str] = None
    fingerprint_algorithm: Optional[str] = None
    fingerprint_length: Optional[Any] = None
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    uploaded_by: Optional[UploadedBy] = None


class ReferenceImageRecord(CamelModel):
    id: str
    title: str = "Untitled reference"
    description: str = ""
    source_url: str = ""
    tags: List[str] = Field(default_factory=list)
    fingerprint: str
    fingerprint_algorithm: str = "ahash"
    fingerprint_length: int = Field(default=0, validate_default=True)
    file_name: Optional[str] = None
    mime_type: Optional[str] = None
    file_size: Optional[int] = None
    uploaded_by: Optional[UploadedBy] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("fingerprint_length", mode="before")
    @classmethod
    def default_length(cls, v, info):
        """Legacy records may not carry a declared length"""
        try:
            length = int(v)
        except (TypeError, ValueError):
            length = 0
        if length <= 0:
            return len(info.data.get("fingerprint") or "")
        return length

    @field_validator("title", mode="before")
    @classmethod
    def default_title(cls, v):
        return "Untitled reference" if v is None else v

    @field_validator("description", "source_url", mode="before")
    @classmethod
    def none_to_empty(cls, v):
        return "" if v is None else v


class ReferenceImageResponse(ReferenceImageRecord):
    image_url: Optional[str] = None


class MatchResult(ReferenceImageResponse):
    similarity: float
    distance: int
    bit_count: int


class SearchSummary(CamelModel):
    total_candidates: int
    evaluated: int
    min_similarity: float
    limit: int
    execution_time_ms: float


class SearchRequest(CamelModel):
    """Search body; numeric fields stay loose and are parsed by SearchParams"""
    fingerprint: Optional[str] = None
    fingerprint_algorithm: Optional[str] = None
    fingerprint_length: Optional[Any] = None
    min_similarity: Optional[Any] = None
    limit: Optional[Any] = None


class SearchQueryEcho(CamelModel):
    fingerprint: str
    fingerprint_algorithm: str
    fingerprint_length: int
    min_similarity: float
    limit: int
    computed: Optional[Dict[str, Any]] = None


class SearchResponse(CamelModel):
    success: bool = True
    query: SearchQueryEcho
    matches: List[MatchResult]
    summary: SearchSummary


class ReferenceImageListResponse(CamelModel):
    success: bool = True
    images: List[ReferenceImageResponse]
    count: int


class ReferenceImageCreateResponse(CamelModel):
    success: bool = True
    image: ReferenceImageResponse


class RemovedImage(CamelModel):
    id: str
    title: str


class ReferenceImageDeleteResponse(CamelModel):
    success: bool = True
    removed: RemovedImage
