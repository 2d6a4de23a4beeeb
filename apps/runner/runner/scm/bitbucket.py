"""Bitbucket Cloud provider.

Metadata and the latest revision come from the Bitbucket 2.0 API.
Change summaries always use the git CLI: the diffstat endpoint reports
per-file line counts but not the number of commits in the range.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx

from runner.sandbox.checkout import authenticated_clone_url
from runner.scm.git import GitClient
from runner.scm.hosted import USER_AGENT, ApiClient, api_health, first_line, hosted_reference
from runner.scm.types import (
    PLATFORM_BITBUCKET,
    ChangeSummary,
    CloneOptions,
    LastCommit,
    ProviderHealthStatus,
    RepositoryMetadata,
    RepositoryReference,
)
from runner.scm.urls import hostname_of, normalize_repo_url

logger = logging.getLogger(__name__)

BITBUCKET_API_BASE = "https://api.bitbucket.org/2.0"


class BitbucketProvider:
    name = "bitbucket"
    platform = PLATFORM_BITBUCKET
    hostnames: tuple[str, ...] = ("bitbucket.org", "www.bitbucket.org")

    def __init__(
        self,
        token: str = "",
        git: Optional[GitClient] = None,
        api_base: str = BITBUCKET_API_BASE,
    ):
        self.token = token
        self.git = git or GitClient()
        self.api = ApiClient("bitbucket", api_base, self._headers())

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _clone_url(self, repo_url: str) -> str:
        return authenticated_clone_url(
            normalize_repo_url(repo_url), self.token, username="x-token-auth"
        )

    def can_handle(self, repo_url: str) -> bool:
        return hostname_of(repo_url) in self.hostnames

    def parse_repository_url(self, repo_url: str) -> RepositoryReference:
        return hosted_reference(repo_url, PLATFORM_BITBUCKET)

    async def clone(
        self,
        repo_url: str,
        target_dir: Path,
        options: Optional[CloneOptions] = None,
    ) -> str:
        return await self.git.clone(self._clone_url(repo_url), target_dir, options)

    async def _main_branch(self, ref: RepositoryReference) -> tuple[dict, str]:
        repo = await self.api.get_json(f"/repositories/{ref.full_name}")
        return repo, (repo.get("mainbranch") or {}).get("name") or "main"

    async def get_latest_revision(self, repo_url: str) -> str:
        ref = self.parse_repository_url(repo_url)
        try:
            _repo, branch = await self._main_branch(ref)
            commits = await self.api.get_json(
                f"/repositories/{ref.full_name}/commits/{branch}", params={"pagelen": 1}
            )
            return commits["values"][0]["hash"]
        except (httpx.HTTPError, KeyError, IndexError, TypeError) as exc:
            logger.warning(
                "Bitbucket API revision lookup failed for %s (%s); falling back to git",
                ref.full_name, exc,
            )
        return await self.git.ls_remote_head(self._clone_url(repo_url))

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
        try:
            repo, branch = await self._main_branch(ref)
            commits = await self.api.get_json(
                f"/repositories/{ref.full_name}/commits/{branch}", params={"pagelen": 1}
            )
        except httpx.HTTPError as exc:
            logger.warning("Bitbucket API metadata failed for %s (%s); using git", ref.full_name, exc)
            return await self.git.describe(self._clone_url(repo_url), ref.name, common, working_copy)

        values = commits.get("values") or []
        head = values[0] if values else {}
        return RepositoryMetadata(
            name=repo.get("name", ref.name),
            description=repo.get("description") or None,
            default_branch=branch,
            last_commit=LastCommit(
                hash=head.get("hash", ""),
                timestamp=head.get("date"),
                author=(head.get("author") or {}).get("raw"),
                message=first_line(head.get("message")),
            ),
            platform_specific={
                "uuid": repo.get("uuid"),
                "language": repo.get("language"),
                "size": repo.get("size"),
                "hasIssues": repo.get("has_issues"),
                "forkPolicy": repo.get("fork_policy"),
            },
            common={
                **common,
                "webUrl": ((repo.get("links") or {}).get("html") or {}).get("href"),
                "isPrivate": repo.get("is_private"),
                "createdAt": repo.get("created_on"),
                "updatedAt": repo.get("updated_on"),
            },
        )

    async def change_summary(self, repo_url: str, since_revision: str) -> ChangeSummary:
        return await self.git.change_summary(self._clone_url(repo_url), since_revision)

    async def health_check(self) -> ProviderHealthStatus:
        return await api_health(
            self.api,
            "/user",
            "/user" if self.token else None,
        )
