"""Helpers shared by the hosted-platform providers (GitHub, GitLab, Bitbucket).

Uses httpx for async HTTP calls. A fresh AsyncClient is opened per request;
provider calls are infrequent (one revision probe per scan request) so
connection reuse buys little.
"""

import logging
import time
from typing import Any, Optional

import httpx

from runner.scm.types import ProviderHealthStatus, RepositoryReference
from runner.scm.urls import split_repo_url

logger = logging.getLogger(__name__)

USER_AGENT = "repo-scan-service/0.1"
DEFAULT_API_TIMEOUT = 15.0


class ApiClient:
    """JSON GET client bound to one REST API base URL."""

    def __init__(
        self,
        provider: str,
        base_url: str,
        headers: dict[str, str],
        timeout: float = DEFAULT_API_TIMEOUT,
    ):
        self.provider = provider
        self.base_url = base_url.rstrip("/")
        self.headers = headers
        self.timeout = timeout

    async def get_json(self, path: str, params: Optional[dict] = None) -> Any:
        """GET base_url + path and return the decoded body.

        Raises:
            httpx.HTTPStatusError: On a 4xx/5xx response.
            httpx.HTTPError: On transport failure.
        """
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{self.base_url}{path}",
                headers=self.headers,
                params=params,
            )
            response.raise_for_status()
            return response.json()

    async def status(self, path: str, params: Optional[dict] = None) -> int:
        """GET base_url + path and return only the status code."""
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            response = await client.get(
                f"{self.base_url}{path}",
                headers=self.headers,
                params=params,
            )
            return response.status_code


def is_not_found(exc: Exception) -> bool:
    return isinstance(exc, httpx.HTTPStatusError) and exc.response.status_code in (404, 422)


def hosted_reference(repo_url: str, platform: str) -> RepositoryReference:
    hostname, owner, name = split_repo_url(repo_url)
    return RepositoryReference(
        platform=platform,
        hostname=hostname,
        owner=owner,
        name=name,
        full_name=f"{owner}/{name}",
        original_url=repo_url,
    )


async def api_health(
    api: ApiClient,
    probe_path: str,
    auth_path: Optional[str] = None,
) -> ProviderHealthStatus:
    """Probe a REST API and report availability and token validity.

    The API counts as available when it answers below 500 (a 401 on an
    anonymous probe still proves it is reachable). authentication_valid is
    None when no auth_path is given, i.e. no token is configured.
    """
    start = time.monotonic()
    try:
        probe_status = await api.status(probe_path)
        api_available = probe_status < 500
        authentication_valid: Optional[bool] = None
        if auth_path is not None:
            auth_status = probe_status if auth_path == probe_path else await api.status(auth_path)
            authentication_valid = auth_status == 200
    except httpx.HTTPError as exc:
        logger.warning("%s health check failed: %s", api.provider, exc)
        return ProviderHealthStatus(
            is_healthy=False,
            response_time=(time.monotonic() - start) * 1000,
            api_available=False,
            error=str(exc) or type(exc).__name__,
        )

    return ProviderHealthStatus(
        is_healthy=api_available,
        response_time=(time.monotonic() - start) * 1000,
        api_available=api_available,
        authentication_valid=authentication_valid,
        error=None if api_available else f"API answered HTTP {probe_status}",
    )


def first_line(text: Optional[str]) -> Optional[str]:
    if not text:
        return None
    return text.strip().splitlines()[0] if text.strip() else None
