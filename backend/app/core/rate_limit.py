"""Rate limiting for the expensive tip endpoints."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from app.core.config import settings
from app.core.security import decode_access_token


def limit_key(request: Request) -> str:
    """Bucket requests per signed-in user; anonymous callers share their IP's bucket."""
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme == "Bearer" and token:
        claims = decode_access_token(token)
        if claims and claims.get("sub"):
            return f"user:{claims['sub']}"
    return f"ip:{get_remote_address(request)}"


limiter = Limiter(key_func=limit_key, enabled=settings.rate_limit_enabled)
