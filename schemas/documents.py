"""Document schemas for upload responses."""
from datetime import datetime
from typing import List
from pydantic import BaseModel, Field, ConfigDict


class DocumentResponse(BaseModel):
    """Schema for document responses."""
    id: str
    user_id: str
    filename: str
    file_type: str
    file_size: int
    content_type: str
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class DocumentListResponse(BaseModel):
    """Schema for paginated document list."""
    documents: List[DocumentResponse]
    total: int
    page: int = Field(default=1)
    page_size: int = Field(default=20)
