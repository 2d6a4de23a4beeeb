"""Cache endpoints: inspect and invalidate current scan records.

Invalidating a repository drops its current record only; its history
and counters stay, and the next POST /scan performs a full scan.
DELETE /cache clears everything, history included.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.auth.dependencies import require_api_key
from app.core.config import get_settings
from app.core.limiter import limiter
from app.core.services import get_orchestrator, get_store
from runner.engine import ScanOrchestrator
from runner.store import ScanStore

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/cache", tags=["cache"], dependencies=[Depends(require_api_key)])


@router.get("/statistics")
@limiter.limit(settings.read_rate_limit)
async def cache_statistics(
    request: Request,
    store: ScanStore = Depends(get_store),
) -> dict:
    return await store.cache_statistics()


@router.get("/repositories")
@limiter.limit(settings.read_rate_limit)
async def cached_repositories(
    request: Request,
    store: ScanStore = Depends(get_store),
) -> dict:
    repositories = await store.cached_repositories()
    return {"repositories": repositories, "count": len(repositories)}


@router.get("/repository/{repo_url:path}")
@limiter.limit(settings.read_rate_limit)
async def cached_record(
    request: Request,
    repo_url: str,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
    store: ScanStore = Depends(get_store),
) -> dict:
    """Current record for one repository; 404 when none is cached."""
    key = orchestrator.normalize(repo_url)
    record = await store.get_current_record(key)
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"No cached scan for {key}",
        )
    return record.to_dict()


@router.delete("")
async def clear_cache(
    store: ScanStore = Depends(get_store),
) -> dict:
    await store.invalidate_all()
    logger.info("Scan cache cleared via API")
    return {"cleared": True}


@router.delete("/{repo_url:path}")
async def invalidate_repository(
    repo_url: str,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
    store: ScanStore = Depends(get_store),
) -> dict:
    key = orchestrator.normalize(repo_url)
    invalidated = await store.invalidate(key)
    return {"repoUrl": key, "invalidated": invalidated}
