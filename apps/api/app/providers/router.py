"""Provider endpoints: registry contents, health and URL resolution."""

import logging

from fastapi import APIRouter, Depends, Query, Request

from app.auth.dependencies import require_api_key
from app.core.config import get_settings
from app.core.limiter import limiter
from app.core.services import get_orchestrator, get_registry
from runner.engine import ScanOrchestrator
from runner.scm import ProviderRegistry
from runner.scm.urls import determine_platform, hostname_of

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter(prefix="/providers", tags=["providers"], dependencies=[Depends(require_api_key)])


@router.get("")
@limiter.limit(settings.read_rate_limit)
async def list_providers(
    request: Request,
    registry: ProviderRegistry = Depends(get_registry),
) -> dict:
    payload = registry.stats()
    payload["providers"] = [
        {"name": p.name, "platform": p.platform, "hostnames": list(p.hostnames)}
        for p in registry.all_providers()
    ]
    return payload


@router.get("/health")
@limiter.limit(settings.read_rate_limit)
async def providers_health(
    request: Request,
    registry: ProviderRegistry = Depends(get_registry),
) -> dict:
    """Run every provider's health check concurrently."""
    statuses = await registry.health_checks()
    healthy = sum(1 for s in statuses.values() if s.is_healthy)
    return {
        "providers": {name: s.to_dict() for name, s in statuses.items()},
        "healthy": healthy,
        "total": len(statuses),
    }


@router.get("/resolve")
@limiter.limit(settings.read_rate_limit)
async def resolve_provider(
    request: Request,
    repo_url: str = Query(alias="repoUrl", min_length=1),
    orchestrator: ScanOrchestrator = Depends(get_orchestrator),
    registry: ProviderRegistry = Depends(get_registry),
) -> dict:
    """Which provider would serve repoUrl, and why."""
    key = orchestrator.normalize(repo_url)
    payload = registry.recommendations(key)
    payload["repoUrl"] = key
    payload["platform"] = determine_platform(hostname_of(key))
    return payload
