"""API key guard for scan, cache and provider routes.

Callers send their key in the X-API-Key header; keys come from the
comma-separated API_KEYS setting and are compared in constant time.
With API_KEYS empty every guarded request is rejected.
"""

import hmac
import logging

from fastapi import Depends, Header, HTTPException, status

from app.core.config import Settings, get_settings

logger = logging.getLogger(__name__)


def _matches_any(candidate: str, keys: list[str]) -> bool:
    matched = False
    for key in keys:
        # No short-circuit: every configured key is compared.
        if hmac.compare_digest(candidate.encode(), key.encode()):
            matched = True
    return matched


async def require_api_key(
    x_api_key: str = Header(default=""),
    settings: Settings = Depends(get_settings),
) -> str:
    """Validate the X-API-Key header, returning the accepted key."""
    api_key = x_api_key.strip()
    if not api_key:
        logger.warning("auth: missing X-API-Key header")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
        )

    if not settings.api_keys:
        logger.error("auth: API_KEYS is not configured; rejecting request")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    if not _matches_any(api_key, settings.api_keys):
        logger.warning("auth: invalid API key")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid API key",
        )

    return api_key
