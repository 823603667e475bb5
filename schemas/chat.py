"""Pydantic schemas for transcript entries and checkpoint messages."""
from datetime import datetime
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, ConfigDict


class ChatEntryCreate(BaseModel):
    """One transcript entry to append."""
    id: str = Field(..., min_length=1, description="Client-supplied message id")
    type: Literal["user", "assistant"]
    text: str = ""
    is_web_search: bool = False
    urls: List[str] = Field(default_factory=list)


class ChatEntryResponse(BaseModel):
    """Schema for transcript entries returned to clients."""
    message_id: str
    role: str
    text: str
    is_web_search: bool
    urls: List[str]
    feedback: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class CheckpointMessage(BaseModel):
    """A user or assistant message read back from the stored conversation state."""
    role: Literal["user", "assistant"]
    content: str
    id: Optional[str] = None
