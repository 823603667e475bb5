"""Authentication schemas for verified identities."""
from typing import Optional
from pydantic import BaseModel


class Identity(BaseModel):
    """Verified caller identity supplied to the chat core."""
    id: str
    email: Optional[str] = None
    name: Optional[str] = None


class TokenPayload(BaseModel):
    """Schema for JWT token payload."""
    sub: str  # subject (user id)
    exp: int  # expiration time
    email: Optional[str] = None
    name: Optional[str] = None
