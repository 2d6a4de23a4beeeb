"""Scan endpoints.

POST /scan          scan a repository, or return the cached record when
                    its revision has not moved since the last scan
POST /scan/force    always rescan
POST /scan/context  source lines around a finding
GET  /scan/...      read-only statistics and record queries

All routes require X-API-Key. Triggers are throttled per API key via
SlowAPI (defaults: scan 5/5minutes, force 3/5minutes, context 20/minute,
reads 30/minute).
"""

import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app.auth.dependencies import require_api_key
from app.core.config import get_settings
from app.core.limiter import limiter
from app.core.services import get_orchestrator, get_store
from app.scans.schemas import CodeContextRequest, ScanRequest
from runner.engine import ScanOrchestrator
from runner.scanner.paths import ScanPathError
from runner.store import ScanStore

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/scan", tags=["scans"], dependencies=[Depends(require_api_key)])


@router.post("")
@limiter.limit(settings.scan_rate_limit)
async def scan_repository(
    request: Request,
    body: ScanRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Scan body.repoUrl unless its current record is still up to date."""
    outcome = await orchestrator.scan(body.repo_url)
    return outcome.to_dict()


@router.post("/force")
@limiter.limit(settings.force_scan_rate_limit)
async def force_scan_repository(
    request: Request,
    body: ScanRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Rescan body.repoUrl regardless of the cached record."""
    logger.info("Forced scan requested for %s", body.repo_url)
    outcome = await orchestrator.scan(body.repo_url, force=True)
    return outcome.to_dict()


@router.post("/context")
@limiter.limit(settings.context_rate_limit)
async def code_context(
    request: Request,
    body: CodeContextRequest,
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
) -> dict:
    try:
        context = await orchestrator.get_code_context(
            body.repo_url, body.file_path, body.line, body.context
        )
    except ScanPathError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc))
    return context.to_dict()


@router.get("/statistics")
@limiter.limit(settings.read_rate_limit)
async def scan_statistics(
    request: Request,
    store: ScanStore = Depends(get_store),
) -> dict:
    return await store.statistics()


@router.get("/records")
@limiter.limit(settings.read_rate_limit)
async def current_records(
    request: Request,
    store: ScanStore = Depends(get_store),
) -> dict:
    """All current scan records, newest first."""
    records = await store.all_current_records()
    return {"records": [r.to_dict() for r in records], "count": len(records)}


@router.get("/history/{repo_url:path}")
@limiter.limit(settings.read_rate_limit)
async def scan_history(
    request: Request,
    repo_url: str,
    limit: int = Query(default=10, ge=1, le=100),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
    store: ScanStore = Depends(get_store),
) -> dict:
    key = orchestrator.normalize(repo_url)
    records = await store.history(key, limit=limit)
    return {"repoUrl": key, "history": [r.to_dict() for r in records], "count": len(records)}


@router.get("/stale")
@limiter.limit(settings.read_rate_limit)
async def stale_records(
    request: Request,
    max_age_hours: float = Query(default=24.0, alias="maxAgeHours", gt=0),
    store: ScanStore = Depends(get_store),
) -> dict:
    """Current records older than maxAgeHours, oldest first."""
    records = await store.list_stale(timedelta(hours=max_age_hours))
    return {
        "maxAgeHours": max_age_hours,
        "records": [r.to_dict() for r in records],
        "count": len(records),
    }


@router.get("/most-scanned")
@limiter.limit(settings.read_rate_limit)
async def most_scanned(
    request: Request,
    limit: int = Query(default=10, ge=1, le=100),
    store: ScanStore = Depends(get_store),
) -> dict:
    activity = await store.most_scanned(limit)
    return {"repositories": [a.to_dict() for a in activity]}


@router.get("/most-cached")
@limiter.limit(settings.read_rate_limit)
async def most_cached(
    request: Request,
    limit: int = Query(default=10, ge=1, le=100),
    store: ScanStore = Depends(get_store),
) -> dict:
    activity = await store.most_cached(limit)
    return {"repositories": [a.to_dict() for a in activity]}
