"""Process-wide scan services, built once per application lifespan.

The lifespan in app.main calls build_services(settings) and stores the
result on app.state.services; route handlers reach it through the
dependency functions below. Tests install their own ScanServices (fake
providers and scanners, in-memory store) on app.state instead.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Request

from app.core.config import MEMORY_STORE_URL, Settings
from app.db.store import SqlScanStore
from app.notifications.webhook import WebhookNotifier
from runner.engine import ScanOrchestrator
from runner.scanner import build_scanners
from runner.scm import ProviderRegistry, build_default_registry
from runner.store import InMemoryScanStore, ScanStore

logger = logging.getLogger(__name__)


@dataclass
class ScanServices:
    registry: ProviderRegistry
    store: ScanStore
    orchestrator: ScanOrchestrator
    notifier: Optional[WebhookNotifier] = None

    async def aclose(self) -> None:
        await self.orchestrator.aclose()
        await self.store.close()


async def open_store(settings: Settings) -> ScanStore:
    if settings.store_url == MEMORY_STORE_URL:
        logger.info("Using in-memory scan store")
        return InMemoryScanStore(max_history_per_repo=settings.max_history_per_repo)
    logger.info("Using SQL scan store")
    return await SqlScanStore.open(
        settings.store_url,
        max_history_per_repo=settings.max_history_per_repo,
    )


async def build_services(settings: Settings) -> ScanServices:
    config = settings.to_scan_config()
    registry = build_default_registry(config)
    scanners = build_scanners(config)
    store = await open_store(settings)

    notifier = None
    if settings.webhook_urls:
        notifier = WebhookNotifier(
            settings.webhook_urls,
            secret=settings.webhook_secret,
            timeout=settings.webhook_timeout_seconds,
        )
        logger.info("Webhook notifications enabled for %d endpoint(s)", len(settings.webhook_urls))

    orchestrator = ScanOrchestrator(
        registry=registry,
        store=store,
        scanners=scanners,
        config=config,
        notifier=notifier,
    )
    return ScanServices(registry=registry, store=store, orchestrator=orchestrator, notifier=notifier)


# ---------------------------------------------------------------------------
# FastAPI dependencies
# ---------------------------------------------------------------------------


def get_services(request: Request) -> ScanServices:
    return request.app.state.services


def get_orchestrator(request: Request) -> ScanOrchestrator:
    return get_services(request).orchestrator


def get_store(request: Request) -> ScanStore:
    return get_services(request).store


def get_registry(request: Request) -> ProviderRegistry:
    return get_services(request).registry
