"""
Durable storage for the reference library.

All backends share one contract (list / get / add / delete). Writes perform a
read-modify-write of the whole collection under a single lock, which is
enough for a single-instance deployment where indexing is an occasional
administrative action.
"""
import json
import logging
import os
import tempfile
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from api.reference_images.reference_images_model import ReferenceImage
from api.reference_images.reference_images_schema import ReferenceImageCreate, ReferenceImageRecord
from api.reference_images.reference_images_service import (
    DEFAULT_ALGORITHM,
    HEX_PATTERN,
    normalise_fingerprint,
    normalise_tags,
    parse_length,
)
from utils.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _sort_key(record: ReferenceImageRecord) -> datetime:
    created = record.created_at
    if created is None:
        return _EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


def build_record(fields: Union[ReferenceImageCreate, Dict[str, Any]]) -> ReferenceImageRecord:
    """Validate create fields and stamp a fresh id and timestamps"""
    if isinstance(fields, dict):
        fields = ReferenceImageCreate.model_validate(fields)

    fingerprint = normalise_fingerprint(fields.fingerprint)
    now = _utcnow()
    return ReferenceImageRecord(
        id=str(uuid.uuid4()),
        title=fields.title or "Untitled reference",
        description=fields.description or "",
        source_url=fields.source_url or "",
        tags=normalise_tags(fields.tags),
        fingerprint=fingerprint,
        fingerprint_algorithm=(fields.fingerprint_algorithm or DEFAULT_ALGORITHM).strip().lower(),
        fingerprint_length=parse_length(fields.fingerprint_length) or len(fingerprint),
        file_name=fields.file_name,
        mime_type=fields.mime_type,
        file_size=fields.file_size,
        uploaded_by=fields.uploaded_by,
        created_at=now,
        updated_at=now,
    )


class ReferenceImageStore(ABC):
    """Repository interface for reference images"""

    def __init__(self):
        self._lock = threading.RLock()

    @abstractmethod
    def list(self) -> List[ReferenceImageRecord]:
        """All records, newest first"""

    @abstractmethod
    def add(self, fields: Union[ReferenceImageCreate, Dict[str, Any]]) -> ReferenceImageRecord:
        """Validate and persist a new record; durable once this returns"""

    @abstractmethod
    def delete(self, image_id: str) -> Optional[ReferenceImageRecord]:
        """Remove a record, returning it, or None when it does not exist"""

    def get(self, image_id: str) -> Optional[ReferenceImageRecord]:
        for record in self.list():
            if record.id == image_id:
                return record
        return None

    def count(self) -> int:
        return len(self.list())


class InMemoryReferenceImageStore(ReferenceImageStore):
    """Process-local store, used by tests and throwaway deployments"""

    def __init__(self):
        super().__init__()
        self._images: List[ReferenceImageRecord] = []

    def list(self) -> List[ReferenceImageRecord]:
        with self._lock:
            images = list(self._images)
        return sorted(images, key=_sort_key, reverse=True)

    def add(self, fields) -> ReferenceImageRecord:
        record = build_record(fields)
        with self._lock:
            self._images.append(record)
        return record

    def delete(self, image_id: str) -> Optional[ReferenceImageRecord]:
        if not image_id:
            return None
        with self._lock:
            for index, record in enumerate(self._images):
                if record.id == image_id:
                    return self._images.pop(index)
        return None


class JsonReferenceImageStore(ReferenceImageStore):
    """
    Store backed by a single JSON document::

        {"updatedAt": "...", "images": [{...}, ...]}

    A bare list of images (the legacy layout) is still readable. A document
    that cannot be parsed is reset to an empty library and the reset is
    logged; I/O failures raise StorageError.
    """

    def __init__(self, data_file: Union[str, Path]):
        super().__init__()
        self.data_file = Path(data_file)

    def _ensure_storage(self) -> None:
        try:
            self.data_file.parent.mkdir(parents=True, exist_ok=True)
            if not self.data_file.exists():
                self._write_raw([])
        except OSError as exc:
            logger.exception("Failed to initialise reference store at %s", self.data_file)
            raise StorageError("Failed to initialise the reference image store") from exc

    def _write_raw(self, images: List[Dict[str, Any]]) -> None:
        payload = json.dumps({"updatedAt": _utcnow().isoformat(), "images": images}, indent=2)
        fd, tmp_path = tempfile.mkstemp(
            dir=str(self.data_file.parent), prefix=f".{self.data_file.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, self.data_file)
        except OSError:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise

    def _read_raw(self) -> List[Dict[str, Any]]:
        self._ensure_storage()
        try:
            raw = self.data_file.read_text(encoding="utf-8")
        except OSError as exc:
            logger.exception("Failed to read reference store %s", self.data_file)
            raise StorageError("Failed to read the reference image store") from exc

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            logger.error(
                "Failed to parse reference image store %s. Resetting to an empty library.",
                self.data_file,
                exc_info=True,
            )
            self._write([])
            return []

        if isinstance(parsed, list):
            return parsed
        if isinstance(parsed, dict) and isinstance(parsed.get("images"), list):
            return parsed["images"]
        logger.error("Reference image store %s has an unexpected layout; treating it as empty", self.data_file)
        return []

    def _write(self, images: List[Dict[str, Any]]) -> None:
        try:
            self._write_raw(images)
        except OSError as exc:
            logger.exception("Failed to write reference store %s", self.data_file)
            raise StorageError("Failed to write the reference image store") from exc

    @staticmethod
    def _to_record(raw: Dict[str, Any]) -> Optional[ReferenceImageRecord]:
        if not isinstance(raw, dict):
            return None
        data = dict(raw)
        if not data.get("createdAt") and data.get("uploadedAt"):
            data["createdAt"] = data["uploadedAt"]
        for key in ("fingerprintAlgorithm", "fingerprint_algorithm"):
            if isinstance(data.get(key), str):
                data[key] = data[key].strip().lower() or DEFAULT_ALGORITHM
        try:
            data["fingerprint"] = normalise_fingerprint(data.get("fingerprint"))
            return ReferenceImageRecord.model_validate(data)
        except (ValidationError, SchemaValidationError):
            logger.warning("Skipping malformed reference image entry %r", raw.get("id"))
            return None

    @staticmethod
    def _to_raw(record: ReferenceImageRecord) -> Dict[str, Any]:
        return record.model_dump(mode="json", by_alias=True)

    def list(self) -> List[ReferenceImageRecord]:
        with self._lock:
            raw_images = self._read_raw()
        records = [r for r in (self._to_record(raw) for raw in raw_images) if r is not None]
        return sorted(records, key=_sort_key, reverse=True)

    def add(self, fields) -> ReferenceImageRecord:
        record = build_record(fields)
        with self._lock:
            images = self._read_raw()
            images.append(self._to_raw(record))
            self._write(images)
        logger.info("Indexed reference image %s (%s)", record.id, record.fingerprint_algorithm)
        return record

    def delete(self, image_id: str) -> Optional[ReferenceImageRecord]:
        if not image_id:
            return None
        with self._lock:
            images = self._read_raw()
            for index, raw in enumerate(images):
                if isinstance(raw, dict) and raw.get("id") == image_id:
                    removed = images.pop(index)
                    self._write(images)
                    break
            else:
                return None
        logger.info("Removed reference image %s", image_id)
        record = self._to_record(removed)
        if record is None:
            # malformed entries are still removable; keep what the caller needs
            record = ReferenceImageRecord.model_construct(
                id=image_id,
                title=removed.get("title") or "Untitled reference",
                fingerprint="",
                file_name=removed.get("fileName"),
            )
        return record


class SqlReferenceImageStore(ReferenceImageStore):
    """Store backed by the reference_images table"""

    def __init__(self, session_factory: sessionmaker):
        super().__init__()
        self.session_factory = session_factory

    @staticmethod
    def _to_record(row: ReferenceImage) -> ReferenceImageRecord:
        return ReferenceImageRecord.model_validate(row, from_attributes=True)

    @staticmethod
    def _searchable(row: ReferenceImage) -> bool:
        if row.fingerprint and HEX_PATTERN.match(row.fingerprint):
            return True
        logger.warning("Skipping malformed reference image row %r", row.id)
        return False

    def list(self) -> List[ReferenceImageRecord]:
        db = self.session_factory()
        try:
            rows = db.query(ReferenceImage).all()
            records = [self._to_record(row) for row in rows if self._searchable(row)]
        except SQLAlchemyError as exc:
            logger.exception("Failed to list reference images")
            raise StorageError("Failed to read the reference image store") from exc
        finally:
            db.close()
        return sorted(records, key=_sort_key, reverse=True)

    def get(self, image_id: str) -> Optional[ReferenceImageRecord]:
        if not image_id:
            return None
        db = self.session_factory()
        try:
            row = db.query(ReferenceImage).filter(ReferenceImage.id == image_id).first()
            return self._to_record(row) if row else None
        except SQLAlchemyError as exc:
            logger.exception("Failed to load reference image %s", image_id)
            raise StorageError("Failed to read the reference image store") from exc
        finally:
            db.close()

    def add(self, fields) -> ReferenceImageRecord:
        record = build_record(fields)
        row = ReferenceImage(
            id=record.id,
            title=record.title,
            description=record.description,
            source_url=record.source_url,
            tags=record.tags,
            fingerprint=record.fingerprint,
            fingerprint_algorithm=record.fingerprint_algorithm,
            fingerprint_length=record.fingerprint_length,
            file_name=record.file_name,
            mime_type=record.mime_type,
            file_size=record.file_size,
            uploaded_by=record.uploaded_by.model_dump() if record.uploaded_by else None,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )
        with self._lock:
            db = self.session_factory()
            try:
                db.add(row)
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("Failed to insert reference image %s", record.id)
                raise StorageError("Failed to write the reference image store") from exc
            finally:
                db.close()
        logger.info("Indexed reference image %s (%s)", record.id, record.fingerprint_algorithm)
        return record

    def delete(self, image_id: str) -> Optional[ReferenceImageRecord]:
        if not image_id:
            return None
        with self._lock:
            db = self.session_factory()
            try:
                row = db.query(ReferenceImage).filter(ReferenceImage.id == image_id).first()
                if not row:
                    return None
                removed = self._to_record(row)
                db.delete(row)
                db.commit()
            except SQLAlchemyError as exc:
                db.rollback()
                logger.exception("Failed to delete reference image %s", image_id)
                raise StorageError("Failed to write the reference image store") from exc
            finally:
                db.close()
        logger.info("Removed reference image %s", image_id)
        return removed


def build_reference_store(settings) -> ReferenceImageStore:
    """Construct the store selected by REFERENCE_STORE_BACKEND"""
    backend = settings.REFERENCE_STORE_BACKEND
    if backend == "memory":
        return InMemoryReferenceImageStore()
    if backend == "sql":
        from config.database import Base, SessionLocal, engine

        Base.metadata.create_all(bind=engine, tables=[ReferenceImage.__table__])
        return SqlReferenceImageStore(SessionLocal)
    return JsonReferenceImageStore(settings.reference_store_file)
