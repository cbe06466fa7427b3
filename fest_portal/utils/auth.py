from datetime import datetime, timedelta, timezone
from typing import Optional, Dict, Any, Tuple
import uuid
import jwt
import bcrypt

from fest_portal.config.settings import settings


class AuthUtils:
    """Authentication utilities for JWT token management and password hashing"""

    @staticmethod
    def hash_password(password: str) -> str:
        return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()

    @staticmethod
    def verify_password(password: str, password_hash: str) -> bool:
        """Check a plain password against a stored bcrypt hash"""
        try:
            return bcrypt.checkpw(password.encode(), password_hash.encode())
        except ValueError:
            # Malformed hash
            return False

    @staticmethod
    def generate_access_token(
        user_id: str, email: str, token_version: int = 0
    ) -> Tuple[str, str]:
        """
        Generate a JWT access token.

        Returns:
            (token, session_id): the session id is the token's ``jti`` and
            identifies this sign-in for audit purposes.
        """
        now = datetime.now(timezone.utc)
        expire = now + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        session_id = str(uuid.uuid4())

        payload = {
            "sub": str(user_id),  # Subject (user ID)
            "email": email,
            "token_version": token_version,
            "iat": now,  # Issued at
            "exp": expire,  # Expiration
            "jti": session_id,
        }

        token = jwt.encode(
            payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM
        )
        return token, session_id

    @staticmethod
    def verify_access_token(token: str) -> Optional[Dict[str, Any]]:
        """Verify and decode access token"""
        try:
            payload = jwt.decode(
                token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
            )
        except jwt.ExpiredSignatureError:
            return None
        except jwt.InvalidTokenError:
            return None

        if not payload.get("sub") or not payload.get("jti"):
            return None
        return payload

