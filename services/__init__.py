from .threads import ThreadService, TitleGenerator
from .transcript import TranscriptService
from .auth import AuthService
from .documents import DocumentService
from .minio import get_minio_service

__all__ = ["ThreadService", "TitleGenerator", "TranscriptService", "AuthService",
           "DocumentService", "get_minio_service"]
