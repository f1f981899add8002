import uuid
from sqlalchemy import Column, String, Integer, Text, DateTime, JSON, func
from config.database import Base


class ReferenceImage(Base):
    __tablename__ = "reference_images"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    title = Column(String(255), nullable=False, default="Untitled reference")
    description = Column(Text, nullable=False, default="")
    source_url = Column(Text, nullable=False, default="")
    tags = Column(JSON, nullable=False, default=list)

    # Fingerprint, compared only against rows of the same algorithm
    fingerprint = Column(String(1024), nullable=False)
    fingerprint_algorithm = Column(String(32), nullable=False, default="ahash", index=True)
    fingerprint_length = Column(Integer, nullable=False)

    # Binary asset under uploads/reference-images
    file_name = Column(String(255), nullable=True)
    mime_type = Column(String(100), nullable=True)
    file_size = Column(Integer, nullable=True)

    uploaded_by = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self):
        return f"<ReferenceImage(id={self.id}, title='{self.title}', algorithm='{self.fingerprint_algorithm}')>"
