"""Transcript model for completed chat turns."""
from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON, ForeignKey, UniqueConstraint

from .threads import Base, utcnow


class ChatEntry(Base):
    """
    One user or assistant entry in a thread's display transcript.

    Entries are append-only; only ``feedback`` is ever updated after insert.
    ``message_id`` is supplied by the client and is unique within a thread.
    """
    __tablename__ = "chat_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    thread_id = Column(String(64), ForeignKey("threads.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String, nullable=False, index=True)
    message_id = Column(String, nullable=False)
    role = Column(String(16), nullable=False)  # user | assistant
    text = Column(Text, nullable=False, default="")
    is_web_search = Column(Boolean, nullable=False, default=False)
    urls = Column(JSON, nullable=False, default=list)
    feedback = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("thread_id", "message_id", name="uq_chat_entries_thread_message"),
    )
