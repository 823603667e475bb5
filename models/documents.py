"""Document model for uploaded files."""
from uuid import uuid4

from sqlalchemy import Column, String, DateTime, Integer

from .threads import Base, utcnow


class Document(Base):
    """
    SQLAlchemy model for uploaded documents.

    Stores metadata about an uploaded file with a reference to its MinIO object.
    The ``id`` is the ``fileId`` clients send with document-mode turns.
    """
    __tablename__ = "documents"

    id = Column(String(64), primary_key=True, default=lambda: str(uuid4()), index=True)
    user_id = Column(String, nullable=False, index=True)
    filename = Column(String, nullable=False)
    file_type = Column(String(10), nullable=False)  # Extension without the dot
    file_size = Column(Integer, nullable=False)  # Size in bytes
    minio_object_name = Column(String, unique=True, nullable=False)
    bucket_name = Column(String, nullable=False, default="documents")
    content_type = Column(String, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
