"""FastAPI application for the repository scan service.

Routes:
  /health       liveness, no auth
  /scan/...     trigger scans, code context, statistics and history
  /cache/...    inspect and invalidate cached scan records
  /providers/.. SCM provider listing, health and URL resolution

Every route except /health requires an X-API-Key header.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from app.cache.router import router as cache_router
from app.core.config import Settings, get_settings
from app.core.limiter import limiter
from app.core.logging import configure_structlog
from app.core.middleware import RequestIdMiddleware, SecurityHeadersMiddleware
from app.core.sentry import init_sentry
from app.core.services import ScanServices, build_services
from app.providers.router import router as providers_router
from app.scans.router import router as scans_router
from runner.errors import (
    CloneFailure,
    ProviderUnavailable,
    ScanError,
    ScanInProgress,
    ScannerFailure,
)

VERSION = "0.1.0"

# Checked in order; the first matching class wins.
_STATUS_FOR_ERROR: list[tuple[type[ScanError], int]] = [
    (ProviderUnavailable, 422),
    (CloneFailure, 502),
    (ScannerFailure, 502),
    (ScanInProgress, 409),
]


async def scan_error_handler(request: Request, exc: ScanError) -> JSONResponse:
    status_code = next(
        (code for error_cls, code in _STATUS_FOR_ERROR if isinstance(exc, error_cls)),
        500,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def _add_middleware(app: FastAPI, settings: Settings) -> None:
    # Starlette wraps in reverse order of registration: RequestId is the
    # outermost layer, so 401 and 429 responses also carry security headers
    # and an X-Request-ID.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SlowAPIMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)


def create_app(services: Optional[ScanServices] = None) -> FastAPI:
    """Build the FastAPI app.

    When services is given (tests), it is installed on app.state as-is and
    the lifespan neither builds nor closes anything.
    """
    settings = get_settings()
    configure_structlog(debug=settings.debug)
    init_sentry(
        dsn=settings.sentry_dsn,
        environment="development" if settings.debug else "production",
    )

    @asynccontextmanager
    async def lifespan(app_: FastAPI):
        owned = services is None
        if owned:
            app_.state.services = await build_services(settings)
        try:
            yield
        finally:
            if owned:
                await app_.state.services.aclose()

    app_ = FastAPI(
        title="Repository Scan Service",
        description="Security scanning for git repositories with change-aware caching",
        version=VERSION,
        lifespan=lifespan,
    )
    if services is not None:
        app_.state.services = services

    app_.state.limiter = limiter
    app_.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
    app_.add_exception_handler(ScanError, scan_error_handler)
    _add_middleware(app_, settings)

    @app_.get("/health")
    async def health_check() -> dict[str, str]:
        return {"status": "ok", "version": VERSION}

    app_.include_router(scans_router)
    app_.include_router(cache_router)
    app_.include_router(providers_router)
    return app_


app = create_app()
