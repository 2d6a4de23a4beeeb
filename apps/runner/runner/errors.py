"""Error taxonomy for scan orchestration.

Every orchestration-fatal error carries the normalized repository URL and
the stage the orchestrator had reached, so the API layer can report
enough context for the caller to retry.

    ScanError
    ├── ProviderUnavailable       no registered provider handles the URL
    ├── CloneFailure              working copy could not be acquired
    ├── ScannerFailure            a scanner crashed, timed out or emitted garbage
    ├── ScanInProgress            duplicate request rejected by the gate
    ├── ChangeDetectionAmbiguous  revision probe inconclusive (never raised to callers)
    └── CacheCorruption           stored record failed validation (treated as a miss)
"""

from typing import Optional


class ScanError(Exception):
    """Base class for errors raised while orchestrating a scan."""

    default_stage = ""

    def __init__(
        self,
        message: str,
        repo_url: str = "",
        stage: Optional[str] = None,
    ):
        self.message = message
        self.repo_url = repo_url
        self.stage = stage if stage is not None else self.default_stage
        super().__init__(message)

    def to_dict(self) -> dict:
        return {
            "detail": self.message,
            "repoUrl": self.repo_url,
            "stage": self.stage,
        }


class ProviderUnavailable(ScanError):
    default_stage = "resolving"


class CloneFailure(ScanError):
    default_stage = "acquiring"


class ScannerFailure(ScanError):
    default_stage = "scanning"


class ScanInProgress(ScanError):
    default_stage = "idle"


class ChangeDetectionAmbiguous(ScanError):
    default_stage = "deciding"


class CacheCorruption(ScanError):
    default_stage = "deciding"
