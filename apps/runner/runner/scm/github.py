"""GitHub provider.

Metadata, latest revision and change summaries come from the GitHub REST
API (api.github.com). When the API is unreachable, rate-limited or
rejects the token, revision probes and change summaries fall back to the
git CLI so a scan request never fails just because the API is degraded.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx

from runner.sandbox.checkout import authenticated_clone_url
from runner.scm.git import GitClient, commit_range, is_revision
from runner.scm.hosted import USER_AGENT, ApiClient, api_health, first_line, hosted_reference, is_not_found
from runner.scm.provider import RevisionNotFound
from runner.scm.types import (
    PLATFORM_GITHUB,
    ChangeSummary,
    CloneOptions,
    LastCommit,
    ProviderHealthStatus,
    RepositoryMetadata,
    RepositoryReference,
)
from runner.scm.urls import hostname_of, normalize_repo_url

logger = logging.getLogger(__name__)

GITHUB_API_BASE = "https://api.github.com"


class GitHubProvider:
    name = "github"
    platform = PLATFORM_GITHUB
    hostnames: tuple[str, ...] = ("github.com", "www.github.com")

    def __init__(
        self,
        token: str = "",
        git: Optional[GitClient] = None,
        api_base: str = GITHUB_API_BASE,
    ):
        self.token = token
        self.git = git or GitClient()
        self.api = ApiClient("github", api_base, self._headers())

    def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
            "User-Agent": USER_AGENT,
        }
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _clone_url(self, repo_url: str) -> str:
        return authenticated_clone_url(normalize_repo_url(repo_url), self.token)

    def can_handle(self, repo_url: str) -> bool:
        return hostname_of(repo_url) in self.hostnames

    def parse_repository_url(self, repo_url: str) -> RepositoryReference:
        return hosted_reference(repo_url, PLATFORM_GITHUB)

    async def clone(
        self,
        repo_url: str,
        target_dir: Path,
        options: Optional[CloneOptions] = None,
    ) -> str:
        return await self.git.clone(self._clone_url(repo_url), target_dir, options)

    async def get_latest_revision(self, repo_url: str) -> str:
        ref = self.parse_repository_url(repo_url)
        try:
            commits = await self.api.get_json(
                f"/repos/{ref.full_name}/commits", params={"per_page": 1}
            )
            return commits[0]["sha"]
        except (httpx.HTTPError, KeyError, IndexError, TypeError) as exc:
            logger.warning(
                "GitHub API revision lookup failed for %s (%s); falling back to git",
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
            repo = await self.api.get_json(f"/repos/{ref.full_name}")
            commits = await self.api.get_json(
                f"/repos/{ref.full_name}/commits", params={"per_page": 1}
            )
        except httpx.HTTPError as exc:
            logger.warning("GitHub API metadata failed for %s (%s); using git", ref.full_name, exc)
            return await self.git.describe(self._clone_url(repo_url), ref.name, common, working_copy)

        head = commits[0] if commits else {}
        commit = head.get("commit", {})
        return RepositoryMetadata(
            name=repo.get("name", ref.name),
            description=repo.get("description"),
            default_branch=repo.get("default_branch"),
            last_commit=LastCommit(
                hash=head.get("sha", ""),
                timestamp=commit.get("author", {}).get("date"),
                author=commit.get("author", {}).get("name"),
                message=first_line(commit.get("message")),
            ),
            platform_specific={
                "stars": repo.get("stargazers_count"),
                "forks": repo.get("forks_count"),
                "openIssues": repo.get("open_issues_count"),
                "language": repo.get("language"),
                "topics": repo.get("topics", []),
                "visibility": repo.get("visibility"),
            },
            common={
                **common,
                "webUrl": repo.get("html_url"),
                "isPrivate": repo.get("private"),
                "isFork": repo.get("fork"),
                "isArchived": repo.get("archived"),
                "createdAt": repo.get("created_at"),
                "updatedAt": repo.get("updated_at"),
            },
        )

    async def change_summary(self, repo_url: str, since_revision: str) -> ChangeSummary:
        if not is_revision(since_revision):
            raise RevisionNotFound("github", f"'{since_revision}' is not a commit id")

        ref = self.parse_repository_url(repo_url)
        head = await self.get_latest_revision(repo_url)
        try:
            data = await self.api.get_json(
                f"/repos/{ref.full_name}/compare/{since_revision}...{head}"
            )
        except httpx.HTTPError as exc:
            if is_not_found(exc):
                raise RevisionNotFound(
                    "github", f"revision {since_revision[:12]} not found in {ref.full_name}", exc
                ) from exc
            logger.warning("GitHub compare failed for %s (%s); using git", ref.full_name, exc)
            return await self.git.change_summary(self._clone_url(repo_url), since_revision)

        files = data.get("files") or []
        return ChangeSummary(
            files_changed=len(files),
            additions=sum(f.get("additions", 0) for f in files),
            deletions=sum(f.get("deletions", 0) for f in files),
            commits=data.get("ahead_by", data.get("total_commits", 0)),
            commit_range=commit_range(since_revision, head),
        )

    async def health_check(self) -> ProviderHealthStatus:
        return await api_health(
            self.api,
            "/rate_limit",
            "/user" if self.token else None,
        )
