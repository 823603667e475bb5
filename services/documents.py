"""Document service for uploaded PDF files."""
from typing import Optional, List, BinaryIO
from uuid import uuid4
from sqlalchemy.orm import Session
from sqlalchemy import desc
import os

from models.documents import Document
from services.minio import MinIOService


# Only PDF uploads can be answered against
ALLOWED_EXTENSIONS = {
    '.pdf': 'application/pdf',
}

MAX_FILE_SIZE = 10 * 1024 * 1024  # 10MB


class DocumentService:
    """Service class for document upload and lookup."""

    @staticmethod
    def validate_file(filename: str, file_size: int) -> str:
        """
        Validate file type and size.

        Returns:
            The lower-cased file extension, including the dot.

        Raises:
            ValueError: if the file is too large or not an allowed type
        """
        if file_size > MAX_FILE_SIZE:
            raise ValueError(f"File size exceeds maximum allowed size of {MAX_FILE_SIZE // 1024 // 1024}MB")

        file_extension = os.path.splitext(filename)[1].lower()
        if file_extension not in ALLOWED_EXTENSIONS:
            raise ValueError(f"File type {file_extension or '(none)'} is not allowed. Allowed types: {', '.join(ALLOWED_EXTENSIONS)}")

        return file_extension

    @staticmethod
    def generate_object_name(user_id: str, filename: str) -> str:
        """Generate a unique object name for MinIO storage."""
        file_extension = os.path.splitext(filename)[1].lower()
        return f"{user_id}/{uuid4()}{file_extension}"

    @staticmethod
    def upload_document(
        db: Session,
        storage: MinIOService,
        user_id: str,
        filename: str,
        file_data: BinaryIO,
        file_size: int,
        content_type: str,
    ) -> Optional[Document]:
        """
        Upload a document to MinIO and save its metadata.

        Returns:
            Document object if successful, None if the storage upload failed
        """
        file_extension = DocumentService.validate_file(filename, file_size)
        object_name = DocumentService.generate_object_name(user_id, filename)

        success = storage.upload_file(
            file_data=file_data,
            object_name=object_name,
            content_type=content_type,
            file_size=file_size
        )

        if not success:
            return None

        db_document = Document(
            user_id=user_id,
            filename=filename,
            file_type=file_extension[1:],
            file_size=file_size,
            minio_object_name=object_name,
            bucket_name=storage.bucket,
            content_type=content_type,
        )

        db.add(db_document)
        db.commit()
        db.refresh(db_document)

        return db_document

    @staticmethod
    def get_document(db: Session, document_id: str, user_id: Optional[str] = None) -> Optional[Document]:
        """Get a document by ID, optionally ensuring user ownership."""
        query = db.query(Document).filter(Document.id == document_id)
        if user_id:
            query = query.filter(Document.user_id == user_id)
        return query.first()

    @staticmethod
    def get_user_documents(db: Session, user_id: str, skip: int = 0, limit: int = 20) -> List[Document]:
        """Get all documents for a user."""
        return db.query(Document).filter(
            Document.user_id == user_id
        ).order_by(
            desc(Document.created_at)
        ).offset(skip).limit(limit).all()

    @staticmethod
    def count_user_documents(db: Session, user_id: str) -> int:
        """Count total documents for a user."""
        return db.query(Document).filter(Document.user_id == user_id).count()
