"""Thread registry: per-thread metadata and title generation."""
from typing import Optional, List
import logging

from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from sqlalchemy.orm import Session
from sqlalchemy import desc

from errors import ModelInvocationError
from models.threads import Thread, utcnow
from models.transcripts import ChatEntry
from schemas.auth import Identity
from state import message_text

logger = logging.getLogger(__name__)

TITLE_TAG = "internal_title"

TITLE_PROMPT = """Write a short title (at most six words) for a conversation that starts with the user message below.
Reply with the title only, without quotes or trailing punctuation."""


class TitleGenerator:
    """Generates a thread title from the first user message with one model call."""

    def __init__(self, model: BaseChatModel):
        self.model = model

    async def generate(self, first_message: str) -> str:
        try:
            response = await self.model.with_config(tags=[TITLE_TAG]).ainvoke(
                [SystemMessage(content=TITLE_PROMPT), HumanMessage(content=first_message)]
            )
        except Exception as e:
            logger.error(f"Title generation failed: {e}")
            raise ModelInvocationError(f"Title generation failed: {e}") from e

        title = message_text(response).strip().strip('"').strip()
        return title[:255] or "New Chat"


class ThreadService:
    """Service class for thread registry operations."""

    @staticmethod
    def get_thread(db: Session, thread_id: str, user_id: Optional[str] = None) -> Optional[Thread]:
        """Retrieve a thread by ID."""
        query = db.query(Thread).filter(Thread.id == thread_id)

        if user_id:
            query = query.filter(Thread.user_id == user_id)

        return query.first()

    @staticmethod
    def upsert_thread(db: Session, identity: Identity, thread_id: str, title: Optional[str] = None) -> Thread:
        """Create the registry entry if missing, otherwise touch it. ``title`` is only set on create."""
        thread = ThreadService.get_thread(db, thread_id)

        if thread is None:
            thread = Thread(
                id=thread_id,
                user_id=identity.id,
                email=identity.email,
                name=identity.name,
                title=title,
            )
            db.add(thread)
        else:
            thread.updated_at = utcnow()

        db.commit()
        db.refresh(thread)

        return thread

    @staticmethod
    def get_user_threads(db: Session, user_id: str, skip: int = 0, limit: int = 20) -> List[Thread]:
        """Retrieve all threads for a specific user, most recently active first."""
        return db.query(Thread).filter(
            Thread.user_id == user_id
        ).order_by(
            desc(Thread.updated_at)
        ).offset(skip).limit(limit).all()

    @staticmethod
    def delete_thread(db: Session, thread_id: str, user_id: str, commit: bool = True) -> bool:
        """Delete a thread and its transcript."""
        thread = ThreadService.get_thread(db, thread_id, user_id)

        if not thread:
            return False

        db.query(ChatEntry).filter(ChatEntry.thread_id == thread_id).delete(synchronize_session=False)
        db.delete(thread)

        if commit:
            db.commit()
        else:
            db.flush()

        return True
