"""Explicit configuration for the scan core.

The API process builds one ScanConfig at startup (see
app.core.config.Settings.to_scan_config) and hands it to the registry
factory and the orchestrator. Nothing inside the runner package reads
environment variables for behaviour; only subprocess rlimits do.
"""

from dataclasses import dataclass, field
from typing import Optional

DEFAULT_SCANNERS = ("semgrep", "gitleaks")


@dataclass(frozen=True)
class ScanConfig:
    """Settings consumed by providers, scanners and the orchestrator.

    github_token / gitlab_token / bitbucket_token: optional access tokens
        injected into clone URLs and API requests for that platform.
    gitlab_host: the GitLab instance trusted with gitlab_token; other
        gitlab.* hosts are queried anonymously behind the SSRF guard.
    scanners: names of the scanner adapters to run on every scan.
    scanner_timeout_seconds: wall-clock cap per scanner invocation.
    clone_timeout_seconds: wall-clock cap per git subprocess.
    health_check_timeout_seconds: per-provider cap in the registry fan-out.
    best_effort_scanning: keep partial results when a scanner fails.
    allow_private_networks: skip the SSRF guard (self-hosted git on a LAN).
    max_history_per_repo: records retained per repository, current one
        included; must be at least 1.
    reject_duplicate_scans: answer a duplicate in-flight request with
        ScanInProgress instead of joining the running scan.
    workspace_root: parent directory for ephemeral working copies.
    """

    github_token: str = ""
    gitlab_token: str = ""
    gitlab_host: str = "gitlab.com"
    bitbucket_token: str = ""
    scanners: tuple[str, ...] = field(default=DEFAULT_SCANNERS)
    scanner_timeout_seconds: float = 300.0
    clone_timeout_seconds: float = 300.0
    health_check_timeout_seconds: float = 10.0
    best_effort_scanning: bool = False
    allow_private_networks: bool = False
    max_history_per_repo: int = 20
    reject_duplicate_scans: bool = False
    workspace_root: Optional[str] = None

    def __post_init__(self):
        if self.max_history_per_repo < 1:
            raise ValueError(
                f"max_history_per_repo must be at least 1, got {self.max_history_per_repo}"
            )
