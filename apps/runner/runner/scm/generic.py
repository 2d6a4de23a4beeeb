"""Generic git provider: works against any HTTPS or SSH git remote.

Registered without hostnames, so the registry only reaches it through the
``can_handle`` fallback stage. Platform-specific providers therefore
always win for their own hosts.
"""

import logging
import re
import time
from pathlib import Path
from typing import Optional

from runner.scm.git import GitClient
from runner.scm.types import (
    PLATFORM_GENERIC,
    ChangeSummary,
    CloneOptions,
    ProviderHealthStatus,
    RepositoryMetadata,
    RepositoryReference,
)
from runner.scm.urls import determine_platform, normalize_repo_url, split_repo_url

logger = logging.getLogger(__name__)

_GIT_URL_PATTERNS = (
    re.compile(r"^https?://[^/\s]+/[^/\s]+/[^\s]+$"),
    re.compile(r"^ssh://[^/\s]+/[^/\s]+/[^\s]+$"),
    re.compile(r"^[A-Za-z0-9._-]+@[A-Za-z0-9.-]+:[^/\s]+/[^\s]+$"),
)


class GenericGitProvider:
    """Provider backed purely by the git CLI."""

    name = "generic-git"
    platform = PLATFORM_GENERIC
    hostnames: tuple[str, ...] = ()

    def __init__(self, git: Optional[GitClient] = None):
        self.git = git or GitClient()

    def can_handle(self, repo_url: str) -> bool:
        if not repo_url or not any(p.match(repo_url.strip()) for p in _GIT_URL_PATTERNS):
            return False
        try:
            normalize_repo_url(repo_url)
        except ValueError:
            return False
        return True

    def parse_repository_url(self, repo_url: str) -> RepositoryReference:
        hostname, owner, name = split_repo_url(repo_url)
        return RepositoryReference(
            platform=determine_platform(hostname),
            hostname=hostname,
            owner=owner,
            name=name,
            full_name=f"{owner}/{name}",
            original_url=repo_url,
        )

    async def clone(
        self,
        repo_url: str,
        target_dir: Path,
        options: Optional[CloneOptions] = None,
    ) -> str:
        return await self.git.clone(normalize_repo_url(repo_url), target_dir, options)

    async def fetch_metadata(
        self,
        repo_url: str,
        working_copy: Optional[Path] = None,
    ) -> RepositoryMetadata:
        ref = self.parse_repository_url(repo_url)
        common = {
            "platform": ref.platform,
            "hostname": ref.hostname,
            "fullName": ref.full_name,
            "cloneUrl": normalize_repo_url(repo_url),
        }
        return await self.git.describe(
            normalize_repo_url(repo_url), ref.name, common, working_copy
        )

    async def get_latest_revision(self, repo_url: str) -> str:
        return await self.git.ls_remote_head(normalize_repo_url(repo_url))

    async def change_summary(self, repo_url: str, since_revision: str) -> ChangeSummary:
        return await self.git.change_summary(normalize_repo_url(repo_url), since_revision)

    async def health_check(self) -> ProviderHealthStatus:
        start = time.monotonic()
        try:
            version = await self.git.version()
        except Exception as exc:
            logger.warning("generic-git health check failed: %s", exc)
            return ProviderHealthStatus(
                is_healthy=False,
                response_time=(time.monotonic() - start) * 1000,
                error=str(exc),
            )
        logger.debug("generic-git health check ok (%s)", version)
        return ProviderHealthStatus(
            is_healthy=True,
            response_time=(time.monotonic() - start) * 1000,
        )
