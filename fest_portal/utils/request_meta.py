from dataclasses import dataclass
from typing import Optional

from fastapi import Request


@dataclass(frozen=True)
class RequestMeta:
    """Client details attached to audit records."""

    ip_address: Optional[str] = None
    user_agent: Optional[str] = None


def get_client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    return request.client.host if request.client else None


def get_request_meta(request: Request) -> RequestMeta:
    user_agent = request.headers.get("User-Agent")
    return RequestMeta(
        ip_address=get_client_ip(request),
        user_agent=user_agent[:500] if user_agent else None,
    )
