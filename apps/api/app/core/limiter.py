"""SlowAPI rate limiter singleton.

The limiter is keyed on the caller's API key so limits apply per client,
not per IP (CI runners often share egress addresses).

Usage in route handlers:
    from app.core.limiter import limiter

    settings = get_settings()

    @router.post("/scan")
    @limiter.limit(settings.scan_rate_limit)
    async def handler(request: Request, ...):
        ...

The `Request` parameter is required by SlowAPI even if the handler doesn't
use it directly; SlowAPI reads the key from it.
"""

import hashlib

from slowapi import Limiter

API_KEY_HEADER = "X-API-Key"


def _api_key_key(request) -> str:
    """Key function: rate-limit per API key.

    The raw key never reaches the limiter storage; a short digest does.
    Falls back to client IP for requests without a key (they are rejected
    by the auth dependency anyway).
    """
    api_key = request.headers.get(API_KEY_HEADER, "")
    if api_key:
        return "key:" + hashlib.sha256(api_key.encode()).hexdigest()[:16]
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=_api_key_key, default_limits=[])
