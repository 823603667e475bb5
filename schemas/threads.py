"""Pydantic schemas for thread-related responses."""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict


class ThreadResponse(BaseModel):
    """Schema for thread registry entries."""
    id: str
    user_id: str
    title: Optional[str]
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)
