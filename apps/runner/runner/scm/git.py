"""Async git CLI wrapper shared by all SCM providers.

Providers compose a GitClient rather than inheriting git behaviour. Every
remote operation validates the URL with the SSRF guard first, and every
error message passes through redaction so embedded tokens never reach
logs or API responses.

Revision probes use ``git ls-remote`` (no clone). Change summaries use a
bare, blob-less clone into a scoped temporary directory so that only
commit and tree objects are transferred up front.
"""

import asyncio
import logging
import re
from pathlib import Path
from typing import Optional

from runner.sandbox.checkout import SandboxError, redact_repo_url, validate_repo_url
from runner.sandbox.process import CommandResult, CommandTimeout, run_command
from runner.sandbox.workspace import scan_workspace
from runner.scm.provider import RevisionNotFound, ScmProviderError
from runner.scm.types import ChangeSummary, CloneOptions, LastCommit, RepositoryMetadata

logger = logging.getLogger(__name__)

# Never prompt for credentials; fail fast instead
_GIT_ENV = {"GIT_TERMINAL_PROMPT": "0", "GIT_ASKPASS": "true"}

# Commit SHAs, full or abbreviated. Anything else is rejected before it
# reaches git's argv, where a leading "-" would be parsed as an option.
_REVISION_PATTERN = re.compile(r"^[0-9a-fA-F]{4,64}$")

_CREDENTIALS_IN_URL = re.compile(r"(https?://)[^/@\s]+@")

_SHORTSTAT_FILES = re.compile(r"(\d+) files? changed")
_SHORTSTAT_INSERTIONS = re.compile(r"(\d+) insertions?\(\+\)")
_SHORTSTAT_DELETIONS = re.compile(r"(\d+) deletions?\(-\)")

_README_NAMES = ("README.md", "README.rst", "README.txt", "README", "readme.md")
_DESCRIPTION_MIN_CHARS = 10
_DESCRIPTION_MAX_CHARS = 200


def scrub_credentials(text: str) -> str:
    """Mask userinfo in any URL that appears in free text (git stderr)."""
    return _CREDENTIALS_IN_URL.sub(r"\1***@", text)


def is_revision(value: str) -> bool:
    return bool(value) and bool(_REVISION_PATTERN.match(value))


def parse_shortstat(output: str) -> tuple[int, int, int]:
    """Return (files_changed, additions, deletions) from ``git diff --shortstat``."""

    def _grab(pattern: re.Pattern) -> int:
        match = pattern.search(output)
        return int(match.group(1)) if match else 0

    return (
        _grab(_SHORTSTAT_FILES),
        _grab(_SHORTSTAT_INSERTIONS),
        _grab(_SHORTSTAT_DELETIONS),
    )


def commit_range(since: str, until: str) -> str:
    return f"{since[:7]}..{until[:7]}"


class GitClient:
    """Runs git subprocesses on behalf of a provider."""

    def __init__(
        self,
        timeout: float = 300.0,
        allow_private_networks: bool = False,
        workspace_root: Optional[str] = None,
    ):
        self.timeout = timeout
        self.allow_private_networks = allow_private_networks
        self.workspace_root = workspace_root

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _check_url(self, url: str) -> None:
        try:
            await asyncio.to_thread(validate_repo_url, url, self.allow_private_networks)
        except SandboxError as exc:
            raise ScmProviderError("git", str(exc), exc) from exc

    async def _git(
        self,
        args: list[str],
        cwd: Optional[Path] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        try:
            return await run_command(
                ["git", *args],
                cwd=cwd,
                timeout=timeout or self.timeout,
                env=_GIT_ENV,
            )
        except CommandTimeout as exc:
            raise ScmProviderError("git", f"git {args[0]} timed out after {exc.timeout:.0f}s", exc) from exc
        except FileNotFoundError as exc:
            raise ScmProviderError("git", "git executable not found on PATH", exc) from exc

    async def _git_ok(self, args: list[str], cwd: Optional[Path] = None) -> str:
        result = await self._git(args, cwd=cwd)
        if result.returncode != 0:
            raise ScmProviderError(
                "git",
                f"git {args[0]} failed (exit {result.returncode}): "
                f"{scrub_credentials(result.stderr.strip())}",
            )
        return result.stdout

    # ------------------------------------------------------------------
    # Remote operations
    # ------------------------------------------------------------------

    async def clone(
        self,
        clone_url: str,
        target_dir: Path,
        options: Optional[CloneOptions] = None,
    ) -> str:
        """Clone clone_url into target_dir and return the HEAD commit SHA."""
        options = options or CloneOptions()
        await self._check_url(clone_url)

        args = ["clone", "--quiet"]
        if options.depth:
            args += ["--depth", str(options.depth)]
        if options.branch:
            args += ["--branch", options.branch]
        args.append("--single-branch" if options.single_branch else "--no-single-branch")
        if options.recursive:
            args.append("--recurse-submodules")
            if options.depth:
                args.append("--shallow-submodules")
        args += ["--", clone_url, str(target_dir)]

        logger.info("Cloning %s into %s", redact_repo_url(clone_url), target_dir)
        await self._git_ok(args)

        sha = (await self._git_ok(["rev-parse", "HEAD"], cwd=target_dir)).strip()
        logger.info("Clone complete: %s at %s", target_dir, sha[:12])
        return sha

    async def ls_remote_head(self, url: str, branch: Optional[str] = None) -> str:
        """Return the SHA the remote's HEAD (or branch) points at, without cloning."""
        await self._check_url(url)
        ref = f"refs/heads/{branch}" if branch else "HEAD"
        output = await self._git_ok(["ls-remote", "--", url, ref])
        for line in output.splitlines():
            parts = line.split()
            if parts and is_revision(parts[0]):
                return parts[0]
        raise ScmProviderError("git", f"remote returned no revision for {ref}: {redact_repo_url(url)}")

    async def change_summary(self, url: str, since_revision: str) -> ChangeSummary:
        """Summarize commits and line changes from since_revision to remote HEAD.

        Raises:
            RevisionNotFound: If since_revision is malformed or absent from history.
        """
        if not is_revision(since_revision):
            raise RevisionNotFound("git", f"'{since_revision}' is not a commit id")

        await self._check_url(url)
        async with scan_workspace(prefix="repo-history-", root=self.workspace_root) as tmp:
            history = tmp / "history.git"
            await self._git_ok(
                [
                    "clone", "--quiet", "--bare", "--filter=blob:none",
                    "--single-branch", "--", url, str(history),
                ]
            )
            head = (await self._git_ok(["rev-parse", "HEAD"], cwd=history)).strip()

            exists = await self._git(["cat-file", "-e", f"{since_revision}^{{commit}}"], cwd=history)
            if exists.returncode != 0:
                raise RevisionNotFound(
                    "git", f"revision {since_revision[:12]} not found in history"
                )

            count = await self._git_ok(["rev-list", "--count", f"{since_revision}..{head}"], cwd=history)
            shortstat = await self._git_ok(["diff", "--shortstat", since_revision, head], cwd=history)

        files_changed, additions, deletions = parse_shortstat(shortstat)
        return ChangeSummary(
            files_changed=files_changed,
            additions=additions,
            deletions=deletions,
            commits=int(count.strip() or 0),
            commit_range=commit_range(since_revision, head),
        )

    async def version(self) -> str:
        return (await self._git_ok(["--version"])).strip()

    # ------------------------------------------------------------------
    # Working-copy inspection
    # ------------------------------------------------------------------

    async def head_commit(self, repo_dir: Path) -> LastCommit:
        output = await self._git_ok(
            ["log", "-1", "--format=%H%x00%cI%x00%an%x00%s"], cwd=repo_dir
        )
        sha, timestamp, author, subject = (output.strip().split("\x00") + ["", "", "", ""])[:4]
        return LastCommit(
            hash=sha,
            timestamp=timestamp or None,
            author=author or None,
            message=subject or None,
        )

    async def current_branch(self, repo_dir: Path) -> Optional[str]:
        branch = (await self._git_ok(["rev-parse", "--abbrev-ref", "HEAD"], cwd=repo_dir)).strip()
        return None if branch in {"", "HEAD"} else branch

    async def snapshot_metadata(
        self,
        repo_dir: Path,
        name: str,
        common: Optional[dict] = None,
    ) -> RepositoryMetadata:
        """Build metadata from a working copy: HEAD commit, branch, README blurb."""
        return RepositoryMetadata(
            name=name,
            description=readme_description(repo_dir),
            default_branch=await self.current_branch(repo_dir),
            last_commit=await self.head_commit(repo_dir),
            platform_specific={},
            common=dict(common or {}),
        )

    async def describe(
        self,
        clone_url: str,
        name: str,
        common: Optional[dict] = None,
        working_copy: Optional[Path] = None,
    ) -> RepositoryMetadata:
        """Metadata from working_copy, or from a throwaway shallow clone."""
        if working_copy is not None:
            return await self.snapshot_metadata(working_copy, name, common)

        async with scan_workspace(prefix="repo-meta-", root=self.workspace_root) as tmp:
            target = tmp / "repo"
            await self.clone(clone_url, target, CloneOptions(depth=1))
            return await self.snapshot_metadata(target, name, common)


def readme_description(repo_dir: Path) -> Optional[str]:
    """Return the first meaningful README line, truncated, or None."""
    for candidate in _README_NAMES:
        path = repo_dir / candidate
        if not path.is_file():
            continue
        try:
            text = path.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return None
        for raw_line in text.splitlines():
            line = raw_line.strip().lstrip("#").strip()
            if len(line) > _DESCRIPTION_MIN_CHARS:
                return line[:_DESCRIPTION_MAX_CHARS]
        return None
    return None
