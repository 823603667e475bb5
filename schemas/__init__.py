from .threads import ThreadResponse
from .chat import ChatEntryCreate, ChatEntryResponse, CheckpointMessage
from .auth import Identity, TokenPayload
from .documents import DocumentResponse, DocumentListResponse

__all__ = ["ThreadResponse",
           "ChatEntryCreate", "ChatEntryResponse", "CheckpointMessage",
           "Identity", "TokenPayload",
           "DocumentResponse", "DocumentListResponse"]
