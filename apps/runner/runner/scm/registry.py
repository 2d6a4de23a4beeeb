"""Provider registry: resolves repository URLs to SCM providers.

Providers are indexed three ways:
  - by name       unique; registering the same name again replaces the old entry
  - by platform   append; several providers may serve one platform
  - by hostname   append; one entry per hostname the provider declares

resolve() walks three stages and returns the first capable provider:
  1. exact hostname match
  2. substring overlap between a registered hostname and the URL's
     hostname, in either direction ("gitlab." matches "gitlab.acme.io")
  3. every provider in registration order, by can_handle() alone

Stage 3 is how a wildcard provider such as generic-git is reached. It
never shadows a platform provider that matched in stage 1 or 2.

Health checks fan out concurrently with a per-provider timeout. A
provider whose check raises or times out is reported unhealthy; the
failure never reaches the caller.
"""

import asyncio
import logging
import time
from typing import Optional

from runner.scm.provider import ScmProvider
from runner.scm.types import ProviderHealthStatus
from runner.scm.urls import hostname_of

logger = logging.getLogger(__name__)

DEFAULT_HEALTH_CHECK_TIMEOUT = 10.0


class ProviderRegistry:
    def __init__(self, health_check_timeout: float = DEFAULT_HEALTH_CHECK_TIMEOUT):
        self.health_check_timeout = health_check_timeout
        self._by_name: dict[str, ScmProvider] = {}
        self._by_platform: dict[str, list[ScmProvider]] = {}
        self._by_hostname: dict[str, list[ScmProvider]] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, provider: ScmProvider) -> None:
        """Add provider to all three indexes (last write wins on name)."""
        existing = self._by_name.get(provider.name)
        if existing is not None:
            logger.info("Replacing registered provider '%s'", provider.name)
            self._drop_from_indexes(existing)

        self._by_name[provider.name] = provider
        self._by_platform.setdefault(provider.platform, []).append(provider)
        for hostname in provider.hostnames:
            self._by_hostname.setdefault(hostname.lower(), []).append(provider)

        logger.debug(
            "Registered provider %s (platform=%s, hostnames=%s)",
            provider.name, provider.platform, ", ".join(provider.hostnames) or "-",
        )

    def unregister(self, name: str) -> bool:
        """Remove the named provider from every index. Returns False if unknown."""
        provider = self._by_name.pop(name, None)
        if provider is None:
            return False
        self._drop_from_indexes(provider)
        logger.debug("Unregistered provider %s", name)
        return True

    def _drop_from_indexes(self, provider: ScmProvider) -> None:
        for index in (self._by_platform, self._by_hostname):
            for key in list(index):
                remaining = [p for p in index[key] if p is not provider]
                if remaining:
                    index[key] = remaining
                else:
                    del index[key]

    def clear(self) -> None:
        self._by_name.clear()
        self._by_platform.clear()
        self._by_hostname.clear()

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get(self, name: str) -> Optional[ScmProvider]:
        return self._by_name.get(name)

    def all_providers(self) -> list[ScmProvider]:
        return list(self._by_name.values())

    def providers_for_platform(self, platform: str) -> list[ScmProvider]:
        return list(self._by_platform.get(platform, []))

    def resolve(self, repo_url: str) -> Optional[ScmProvider]:
        """Return the best provider for repo_url, or None if nothing can handle it."""
        hostname = hostname_of(repo_url)

        if hostname:
            for provider in self._by_hostname.get(hostname, []):
                if provider.can_handle(repo_url):
                    logger.debug("Resolved %s -> %s (exact hostname)", hostname, provider.name)
                    return provider

            for registered, providers in self._by_hostname.items():
                if registered in hostname or hostname in registered:
                    for provider in providers:
                        if provider.can_handle(repo_url):
                            logger.debug(
                                "Resolved %s -> %s (hostname overlap with %s)",
                                hostname, provider.name, registered,
                            )
                            return provider

        for provider in self._by_name.values():
            if provider.can_handle(repo_url):
                logger.debug("Resolved %s -> %s (can_handle fallback)", hostname, provider.name)
                return provider

        logger.info("No provider can handle %s", hostname or repo_url)
        return None

    # ------------------------------------------------------------------
    # Health
    # ------------------------------------------------------------------

    async def _checked_health(self, provider: ScmProvider) -> ProviderHealthStatus:
        start = time.monotonic()
        try:
            return await asyncio.wait_for(
                provider.health_check(), timeout=self.health_check_timeout
            )
        except asyncio.TimeoutError:
            error = f"health check timed out after {self.health_check_timeout:.1f}s"
        except Exception as exc:
            error = str(exc) or type(exc).__name__
        logger.warning("Provider %s unhealthy: %s", provider.name, error)
        return ProviderHealthStatus(
            is_healthy=False,
            response_time=(time.monotonic() - start) * 1000,
            error=error,
        )

    async def health_checks(self) -> dict[str, ProviderHealthStatus]:
        """Run every provider's health check concurrently, isolated per provider."""
        providers = self.all_providers()
        statuses = await asyncio.gather(*(self._checked_health(p) for p in providers))
        return {provider.name: status for provider, status in zip(providers, statuses)}

    async def available_providers(self) -> list[ScmProvider]:
        """Providers whose health check passed, in registration order."""
        statuses = await self.health_checks()
        return [p for p in self.all_providers() if statuses.get(p.name) and statuses[p.name].is_healthy]

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def supported_platforms(self) -> list[str]:
        return sorted(self._by_platform)

    def is_platform_supported(self, platform: str) -> bool:
        return platform in self._by_platform

    def is_hostname_supported(self, hostname: str) -> bool:
        host = hostname.lower()
        if host in self._by_hostname:
            return True
        return any(registered in host or host in registered for registered in self._by_hostname)

    def stats(self) -> dict:
        return {
            "totalProviders": len(self._by_name),
            "providersByPlatform": {
                platform: [p.name for p in providers]
                for platform, providers in sorted(self._by_platform.items())
            },
            "supportedHostnames": sorted(self._by_hostname),
        }

    def recommendations(self, repo_url: str) -> dict:
        """Explain which provider would serve repo_url and which others could."""
        primary = self.resolve(repo_url)
        hostname = hostname_of(repo_url)
        alternatives = [
            p.name for p in self.all_providers()
            if p is not primary and p.can_handle(repo_url)
        ]

        reasons: list[str] = []
        if primary is None:
            reasons.append(f"No registered provider can handle '{hostname or repo_url}'")
        elif hostname in primary.hostnames:
            reasons.append(f"{primary.name} is registered for hostname {hostname}")
        elif not primary.hostnames:
            reasons.append(f"{primary.name} accepts any git URL and is used as a fallback")
        else:
            reasons.append(f"{primary.name} matches {hostname} by hostname pattern")
        if alternatives:
            reasons.append(f"{len(alternatives)} other provider(s) could also handle this URL")

        return {
            "primary": primary.name if primary else None,
            "alternatives": alternatives,
            "reasons": reasons,
        }
