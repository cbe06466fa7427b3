from typing import Optional
from fastapi import Response
from fest_portal.config.settings import settings

ACCESS_TOKEN_COOKIE = "access_token"


class CookieUtils:
    """Utility class for managing the session cookie"""

    @staticmethod
    def _get_cookie_settings() -> dict:
        """Get common cookie settings based on environment"""
        return {
            "secure": settings.ENVIRONMENT == "production",
            "samesite": "lax",
            "domain": settings.COOKIE_DOMAIN,
            "path": "/",
        }

    @staticmethod
    def set_auth_cookie(response: Response, access_token: str) -> None:
        """Set the HTTP-only access token cookie for browser clients"""
        response.set_cookie(
            key=ACCESS_TOKEN_COOKIE,
            value=access_token,
            httponly=True,
            max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            **CookieUtils._get_cookie_settings(),
        )

    @staticmethod
    def clear_auth_cookie(response: Response) -> None:
        response.delete_cookie(
            key=ACCESS_TOKEN_COOKIE,
            httponly=True,
            **CookieUtils._get_cookie_settings(),
        )

    @staticmethod
    def extract_bearer_token(authorization_header: Optional[str]) -> Optional[str]:
        """Extract Bearer token from Authorization header"""
        if not authorization_header:
            return None

        scheme, _, token = authorization_header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None

        return token.strip()
