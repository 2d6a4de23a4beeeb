"""ScmProvider protocol.

Every hosting-platform adapter (generic git, GitHub, GitLab, Bitbucket)
conforms to this interface. The registry selects among them by hostname
and ``can_handle``; callers interact only with this interface.
"""

from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

from runner.scm.types import (
    ChangeSummary,
    CloneOptions,
    ProviderHealthStatus,
    RepositoryMetadata,
    RepositoryReference,
)


@runtime_checkable
class ScmProvider(Protocol):
    """Protocol for source-control hosting adapters.

    Attributes:
        name: Unique registry key (e.g. "github").
        platform: Platform identifier (see runner.scm.types.PLATFORM_*).
        hostnames: Hostnames this provider is registered under. May be
            empty for a wildcard provider that relies on ``can_handle``.
    """

    name: str
    platform: str
    hostnames: tuple[str, ...]

    def can_handle(self, repo_url: str) -> bool:
        """Return True if this provider can operate on the URL."""
        ...

    def parse_repository_url(self, repo_url: str) -> RepositoryReference:
        """Parse the URL into a RepositoryReference.

        Raises:
            ValueError: If the URL is not a repository URL this provider understands.
        """
        ...

    async def clone(
        self,
        repo_url: str,
        target_dir: Path,
        options: Optional[CloneOptions] = None,
    ) -> str:
        """Clone the repository into target_dir and return the checked-out commit SHA.

        Raises:
            ScmProviderError: On any clone failure.
        """
        ...

    async def fetch_metadata(
        self,
        repo_url: str,
        working_copy: Optional[Path] = None,
    ) -> RepositoryMetadata:
        """Return a metadata snapshot. working_copy, when given, is an existing clone."""
        ...

    async def get_latest_revision(self, repo_url: str) -> str:
        """Return the latest commit SHA of the default branch."""
        ...

    async def change_summary(self, repo_url: str, since_revision: str) -> ChangeSummary:
        """Summarize changes between since_revision and the latest revision.

        Raises:
            RevisionNotFound: If since_revision is not in the repository history.
            ScmProviderError: On any other failure.
        """
        ...

    async def health_check(self) -> ProviderHealthStatus:
        """Probe the provider's backing service."""
        ...


class ScmProviderError(Exception):
    """Raised by provider implementations on failure.

    Carries the provider name and original error for upstream logging.
    """

    def __init__(self, provider: str, message: str, cause: Optional[Exception] = None):
        self.provider = provider
        self.cause = cause
        super().__init__(f"[{provider}] {message}")


class RevisionNotFound(ScmProviderError):
    """The requested revision does not exist in the repository history."""
