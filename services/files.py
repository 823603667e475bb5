"""Access to the text of uploaded files for document-mode turns."""
import asyncio
import io
import logging
from typing import Callable, Optional, Protocol

import pypdf
from pypdf.errors import PyPdfError
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from errors import DocumentLoadError
from services.documents import DocumentService
from services.minio import MinIOService

logger = logging.getLogger(__name__)


class FileAccessor(Protocol):
    async def load_text(self, file_id: str, file_type: Optional[str] = None) -> str:
        ...


def extract_text_from_pdf(file_content: bytes) -> str:
    """Extract text from a PDF file, one block per page."""
    text = ""
    try:
        pdf_reader = pypdf.PdfReader(io.BytesIO(file_content))
        for page_num, page in enumerate(pdf_reader.pages):
            page_text = page.extract_text()
            if page_text:
                text += f"\n\n--- Page {page_num + 1} ---\n\n{page_text}"
    except (PyPdfError, ValueError) as e:
        logger.error(f"Error extracting text from PDF: {e}")
        raise DocumentLoadError(f"Could not read PDF: {e}") from e

    return text.strip()


class StoredFileAccessor:
    """Loads uploaded PDFs from MinIO using the ``documents`` table as index."""

    def __init__(self, session_factory: Callable[[], Session], storage_factory: Callable[[], MinIOService]):
        self.session_factory = session_factory
        self.storage_factory = storage_factory

    def _load(self, file_id: str, file_type: Optional[str]) -> str:
        db = self.session_factory()
        try:
            document = DocumentService.get_document(db, file_id)
        except SQLAlchemyError as e:
            logger.error(f"Error looking up document {file_id}: {e}")
            raise DocumentLoadError(f"Could not look up file {file_id}") from e
        finally:
            db.close()

        if document is None:
            raise DocumentLoadError(f"File {file_id} not found")
        if file_type and document.file_type != file_type:
            raise DocumentLoadError(f"File {file_id} is {document.file_type}, not {file_type}")

        content = self.storage_factory().download_file(
            object_name=document.minio_object_name,
            bucket_name=document.bucket_name
        )
        if not content:
            raise DocumentLoadError(f"Failed to download file {file_id} from storage")

        text = extract_text_from_pdf(content)
        if not text:
            raise DocumentLoadError(f"No text content extracted from file {file_id}")

        logger.info(f"Extracted {len(text)} characters from {document.filename}")
        return text

    async def load_text(self, file_id: str, file_type: Optional[str] = None) -> str:
        return await asyncio.to_thread(self._load, file_id, file_type)
