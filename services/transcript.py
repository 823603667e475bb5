"""Append-only transcript of completed chat turns."""
from typing import List, Optional

from sqlalchemy.orm import Session

from models.transcripts import ChatEntry
from schemas.chat import ChatEntryCreate


class TranscriptService:
    """Service class for transcript entries."""

    @staticmethod
    def append_turn(db: Session, thread_id: str, user_id: str, entry: ChatEntryCreate) -> ChatEntry:
        """Append one user or assistant entry to a thread's transcript."""
        db_entry = ChatEntry(
            thread_id=thread_id,
            user_id=user_id,
            message_id=entry.id,
            role=entry.type,
            text=entry.text,
            is_web_search=entry.is_web_search,
            urls=list(entry.urls),
        )

        db.add(db_entry)
        db.commit()
        db.refresh(db_entry)

        return db_entry

    @staticmethod
    def get_entry(db: Session, thread_id: str, message_id: str) -> Optional[ChatEntry]:
        return db.query(ChatEntry).filter(
            ChatEntry.thread_id == thread_id,
            ChatEntry.message_id == message_id
        ).first()

    @staticmethod
    def get_transcript(db: Session, thread_id: str) -> List[ChatEntry]:
        """Entries of a thread in the order they were written."""
        return db.query(ChatEntry).filter(
            ChatEntry.thread_id == thread_id
        ).order_by(ChatEntry.id).all()

    @staticmethod
    def attach_feedback(db: Session, thread_id: str, message_id: str, feedback: str) -> bool:
        """Set feedback on the entry with ``message_id``. Returns False if there is none."""
        entry = TranscriptService.get_entry(db, thread_id, message_id)

        if not entry:
            return False

        if entry.feedback != feedback:
            entry.feedback = feedback
            db.commit()

        return True
