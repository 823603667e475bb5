from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Literal, Optional


class ChatUser(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str = Field(..., min_length=1)
    thread_id: Optional[str] = Field(default=None, alias="threadId")
    user: ChatUser
    human_id: str = Field(..., alias="humanId", min_length=1, description="Client id for the user transcript entry")
    assistant_id: str = Field(..., alias="assistantId", min_length=1, description="Client id for the assistant transcript entry")
    file_id: Optional[str] = Field(default=None, alias="fileId", description="Uploaded document to answer against")
    file_type: Optional[Literal["pdf"]] = Field(default=None, alias="fileType")

    @field_validator("message")
    @classmethod
    def message_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("message must not be blank")
        return value
