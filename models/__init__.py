from .threads import Thread, Base
from .transcripts import ChatEntry
from .documents import Document

__all__ = ["Thread", "ChatEntry", "Document", "Base"]
