"""Types shared by SCM providers, the registry and the change detector.

All of these are snapshots: providers build them once and nothing mutates
them afterwards, so they are frozen dataclasses. ``to_dict`` emits the
camelCase wire shape used by the API and by persisted scan records;
``from_dict`` is its inverse and raises ``KeyError``/``TypeError``/
``ValueError`` on malformed input so the store can flag corruption.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

# Platform identifiers reported by RepositoryReference.platform
PLATFORM_GITHUB = "github"
PLATFORM_GITLAB = "gitlab"
PLATFORM_BITBUCKET = "bitbucket"
PLATFORM_AZURE_DEVOPS = "azure-devops"
PLATFORM_GITEA = "gitea"
PLATFORM_FORGEJO = "forgejo"
PLATFORM_CODEBERG = "codeberg"
PLATFORM_GENERIC = "generic"

# Sentinel for "no revision known"; forces a rescan in the change detector.
UNKNOWN_REVISION = "unknown"


@dataclass(frozen=True)
class RepositoryReference:
    """A repository URL parsed into its identifying parts.

    owner may contain slashes for nested groups (GitLab subgroups).
    """

    platform: str
    hostname: str
    owner: str
    name: str
    full_name: str
    original_url: str

    def to_dict(self) -> dict:
        return {
            "platform": self.platform,
            "hostname": self.hostname,
            "owner": self.owner,
            "name": self.name,
            "fullName": self.full_name,
            "originalUrl": self.original_url,
        }


@dataclass(frozen=True)
class LastCommit:
    hash: str
    timestamp: Optional[str] = None
    author: Optional[str] = None
    message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "hash": self.hash,
            "timestamp": self.timestamp,
            "author": self.author,
            "message": self.message,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "LastCommit":
        return cls(
            hash=str(data["hash"]),
            timestamp=data.get("timestamp"),
            author=data.get("author"),
            message=data.get("message"),
        )


@dataclass(frozen=True)
class RepositoryMetadata:
    """Descriptive snapshot of a repository at one point in time.

    platform_specific holds fields only one platform exposes (stars,
    visibility, mainbranch links...). common holds fields every provider
    can fill in (clone URL, platform, hostname).
    """

    name: str
    description: Optional[str]
    default_branch: Optional[str]
    last_commit: LastCommit
    platform_specific: dict[str, Any] = field(default_factory=dict)
    common: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "description": self.description,
            "defaultBranch": self.default_branch,
            "lastCommit": self.last_commit.to_dict(),
            "platformSpecific": dict(self.platform_specific),
            "common": dict(self.common),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "RepositoryMetadata":
        return cls(
            name=str(data["name"]),
            description=data.get("description"),
            default_branch=data.get("defaultBranch"),
            last_commit=LastCommit.from_dict(data["lastCommit"]),
            platform_specific=dict(data.get("platformSpecific") or {}),
            common=dict(data.get("common") or {}),
        )


@dataclass(frozen=True)
class ChangeSummary:
    files_changed: int = 0
    additions: int = 0
    deletions: int = 0
    commits: int = 0
    commit_range: Optional[str] = None

    @classmethod
    def zero(cls) -> "ChangeSummary":
        return cls()

    def to_dict(self) -> dict:
        return {
            "filesChanged": self.files_changed,
            "additions": self.additions,
            "deletions": self.deletions,
            "commits": self.commits,
            "commitRange": self.commit_range,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeSummary":
        return cls(
            files_changed=int(data["filesChanged"]),
            additions=int(data["additions"]),
            deletions=int(data["deletions"]),
            commits=int(data["commits"]),
            commit_range=data.get("commitRange"),
        )


@dataclass(frozen=True)
class ChangeDetectionResult:
    """Outcome of one revision probe. Computed fresh, never cached."""

    has_changes: bool
    last_commit_hash: str
    change_summary: Optional[ChangeSummary] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "hasChanges": self.has_changes,
            "lastCommitHash": self.last_commit_hash,
            "changeSummary": self.change_summary.to_dict() if self.change_summary else None,
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "ChangeDetectionResult":
        summary = data.get("changeSummary")
        has_changes = data["hasChanges"]
        if not isinstance(has_changes, bool):
            raise TypeError(f"hasChanges must be a bool, got {type(has_changes).__name__}")
        return cls(
            has_changes=has_changes,
            last_commit_hash=str(data["lastCommitHash"]),
            change_summary=ChangeSummary.from_dict(summary) if summary else None,
            error=data.get("error"),
        )


@dataclass(frozen=True)
class ProviderHealthStatus:
    """Result of a provider health check. response_time is in milliseconds."""

    is_healthy: bool
    response_time: float
    last_checked: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    api_available: Optional[bool] = None
    authentication_valid: Optional[bool] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "isHealthy": self.is_healthy,
            "responseTime": round(self.response_time, 1),
            "lastChecked": self.last_checked.isoformat(),
            "apiAvailable": self.api_available,
            "authenticationValid": self.authentication_valid,
            "error": self.error,
        }


@dataclass(frozen=True)
class CloneOptions:
    """git clone knobs. depth=None means a full clone."""

    depth: Optional[int] = 1
    branch: Optional[str] = None
    single_branch: bool = True
    recursive: bool = False
