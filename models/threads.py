"""Thread model for conversation management."""
from datetime import datetime, timezone

from sqlalchemy import Column, String, DateTime
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Thread(Base):
    """
    SQLAlchemy model for conversation threads.

    One row per conversation, holding the registry metadata only.
    The resumable message state is stored by LangGraph under the same id,
    and the display transcript lives in ``chat_entries``.
    """
    __tablename__ = "threads"

    id = Column(String(64), primary_key=True, index=True)
    user_id = Column(String, nullable=False, index=True)
    email = Column(String, nullable=True)
    name = Column(String, nullable=True)
    title = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)
