"""Bearer token verification for the chat API."""
from typing import Optional
import logging

from jose import JWTError, jwt

from config import settings
from schemas.auth import Identity, TokenPayload

logger = logging.getLogger(__name__)

ALGORITHM = "HS256"


class AuthService:
    """Service class for verifying caller identity tokens."""

    @staticmethod
    def decode_token(token: str, secret_key: Optional[str] = None) -> Optional[TokenPayload]:
        """Decode and validate a JWT token."""
        try:
            payload = jwt.decode(token, secret_key or settings.secret_key, algorithms=[ALGORITHM])
            return TokenPayload(**payload)
        except (JWTError, ValueError) as e:
            logger.warning(f"Rejected bearer token: {e}")
            return None

    @staticmethod
    def verify_identity(token: str, secret_key: Optional[str] = None) -> Optional[Identity]:
        """Return the verified identity carried by a token, or None if invalid."""
        payload = AuthService.decode_token(token, secret_key)
        if payload is None:
            return None
        return Identity(id=payload.sub, email=payload.email, name=payload.name)
