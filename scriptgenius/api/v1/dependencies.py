from fastapi import Request
from scriptgenius.core.config import settings
from scriptgenius.core.exceptions import RateLimitError
from scriptgenius.services.rate_limiter import rate_limiter


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


async def enforce_rate_limit(request: Request):
    """Per-IP limit on the routes that call paid providers."""
    allowed = await rate_limiter.hit(
        f"generate:{client_ip(request)}",
        settings.GENERATE_RATE_LIMIT,
        settings.GENERATE_RATE_WINDOW_SECONDS
    )
    if not allowed:
        raise RateLimitError()
