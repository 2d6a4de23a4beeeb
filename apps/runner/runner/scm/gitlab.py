"""GitLab provider (gitlab.com and self-hosted ``gitlab.*`` instances).

The API base is derived from the repository's own hostname, so one
provider instance serves gitlab.com and any self-hosted instance whose
hostname starts with ``gitlab.``. Projects are addressed by their
URL-encoded full path, which keeps nested subgroups intact.

The access token is only sent to the configured default host. Any other
host is caller-supplied, so it passes the same SSRF guard as a clone
before the first API request and is queried anonymously.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional
from urllib.parse import quote

import httpx

from runner.sandbox.checkout import SandboxError, authenticated_clone_url, validate_repo_url
from runner.scm.git import GitClient, commit_range, is_revision
from runner.scm.hosted import USER_AGENT, ApiClient, api_health, first_line, hosted_reference, is_not_found
from runner.scm.provider import RevisionNotFound, ScmProviderError
from runner.scm.types import (
    PLATFORM_GITLAB,
    ChangeSummary,
    CloneOptions,
    LastCommit,
    ProviderHealthStatus,
    RepositoryMetadata,
    RepositoryReference,
)
from runner.scm.urls import hostname_of, normalize_repo_url

logger = logging.getLogger(__name__)

DEFAULT_GITLAB_HOST = "gitlab.com"


def count_diff_lines(diff: str) -> tuple[int, int]:
    """Return (additions, deletions) from a unified diff body."""
    additions = deletions = 0
    for line in diff.splitlines():
        if line.startswith("+") and not line.startswith("+++"):
            additions += 1
        elif line.startswith("-") and not line.startswith("---"):
            deletions += 1
    return additions, deletions


class GitLabProvider:
    name = "gitlab"
    platform = PLATFORM_GITLAB
    hostnames: tuple[str, ...] = ("gitlab.com", "www.gitlab.com", "gitlab.")

    def __init__(
        self,
        token: str = "",
        git: Optional[GitClient] = None,
        default_host: str = DEFAULT_GITLAB_HOST,
        allow_private_networks: bool = False,
    ):
        self.token = token
        self.git = git or GitClient()
        self.default_host = default_host.lower()
        self.allow_private_networks = allow_private_networks

    def _is_default_host(self, host: str) -> bool:
        return host.lower() in (self.default_host, f"www.{self.default_host}")

    def _headers(self, host: str) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        if self.token and self._is_default_host(host):
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    async def _api(self, host: str) -> ApiClient:
        base_url = f"https://{host}/api/v4"
        if not self._is_default_host(host):
            try:
                await asyncio.to_thread(validate_repo_url, base_url, self.allow_private_networks)
            except SandboxError as exc:
                raise ScmProviderError("gitlab", str(exc), exc) from exc
        return ApiClient("gitlab", base_url, self._headers(host))

    def _project(self, ref: RepositoryReference) -> str:
        return f"/projects/{quote(ref.full_name, safe='')}"

    def _clone_url(self, repo_url: str) -> str:
        url = normalize_repo_url(repo_url)
        if not self._is_default_host(hostname_of(url)):
            return url
        return authenticated_clone_url(url, self.token, username="oauth2")

    def can_handle(self, repo_url: str) -> bool:
        host = hostname_of(repo_url)
        return host in ("gitlab.com", "www.gitlab.com") or host.startswith("gitlab.")

    def parse_repository_url(self, repo_url: str) -> RepositoryReference:
        return hosted_reference(repo_url, PLATFORM_GITLAB)

    async def clone(
        self,
        repo_url: str,
        target_dir: Path,
        options: Optional[CloneOptions] = None,
    ) -> str:
        return await self.git.clone(self._clone_url(repo_url), target_dir, options)

    async def get_latest_revision(self, repo_url: str) -> str:
        ref = self.parse_repository_url(repo_url)
        api = await self._api(ref.hostname)
        try:
            commits = await api.get_json(
                f"{self._project(ref)}/repository/commits", params={"per_page": 1}
            )
            return commits[0]["id"]
        except (httpx.HTTPError, KeyError, IndexError, TypeError) as exc:
            logger.warning(
                "GitLab API revision lookup failed for %s (%s); falling back to git",
                ref.full_name, exc,
            )
        return await self.git.ls_remote_head(self._clone_url(repo_url))

    async def fetch_metadata(
        self,
        repo_url: str,
        working_copy: Optional[Path] = None,
    ) -> RepositoryMetadata:
        ref = self.parse_repository_url(repo_url)
        api = await self._api(ref.hostname)
        common = {
            "platform": ref.platform,
            "hostname": ref.hostname,
            "fullName": ref.full_name,
            "cloneUrl": normalize_repo_url(repo_url),
        }
        try:
            project = await api.get_json(self._project(ref))
            commits = await api.get_json(
                f"{self._project(ref)}/repository/commits", params={"per_page": 1}
            )
        except httpx.HTTPError as exc:
            logger.warning("GitLab API metadata failed for %s (%s); using git", ref.full_name, exc)
            return await self.git.describe(self._clone_url(repo_url), ref.name, common, working_copy)

        head = commits[0] if commits else {}
        return RepositoryMetadata(
            name=project.get("name", ref.name),
            description=project.get("description"),
            default_branch=project.get("default_branch"),
            last_commit=LastCommit(
                hash=head.get("id", ""),
                timestamp=head.get("committed_date"),
                author=head.get("author_name"),
                message=first_line(head.get("title")),
            ),
            platform_specific={
                "projectId": project.get("id"),
                "starCount": project.get("star_count"),
                "forksCount": project.get("forks_count"),
                "openIssuesCount": project.get("open_issues_count"),
                "visibility": project.get("visibility"),
                "topics": project.get("topics", []),
                "namespace": (project.get("namespace") or {}).get("full_path"),
            },
            common={
                **common,
                "webUrl": project.get("web_url"),
                "isPrivate": project.get("visibility") == "private",
                "isArchived": project.get("archived"),
                "createdAt": project.get("created_at"),
                "updatedAt": project.get("last_activity_at"),
            },
        )

    async def change_summary(self, repo_url: str, since_revision: str) -> ChangeSummary:
        if not is_revision(since_revision):
            raise RevisionNotFound("gitlab", f"'{since_revision}' is not a commit id")

        ref = self.parse_repository_url(repo_url)
        head = await self.get_latest_revision(repo_url)
        api = await self._api(ref.hostname)
        try:
            data = await api.get_json(
                f"{self._project(ref)}/repository/compare",
                params={"from": since_revision, "to": head},
            )
        except httpx.HTTPError as exc:
            if is_not_found(exc):
                raise RevisionNotFound(
                    "gitlab", f"revision {since_revision[:12]} not found in {ref.full_name}", exc
                ) from exc
            logger.warning("GitLab compare failed for %s (%s); using git", ref.full_name, exc)
            return await self.git.change_summary(self._clone_url(repo_url), since_revision)

        diffs = data.get("diffs") or []
        additions = deletions = 0
        for entry in diffs:
            added, removed = count_diff_lines(entry.get("diff", ""))
            additions += added
            deletions += removed
        return ChangeSummary(
            files_changed=len(diffs),
            additions=additions,
            deletions=deletions,
            commits=len(data.get("commits") or []),
            commit_range=commit_range(since_revision, head),
        )

    async def health_check(self) -> ProviderHealthStatus:
        return await api_health(
            await self._api(self.default_host),
            "/version",
            "/user" if self.token else None,
        )
