"""Source-control providers, registry and change detection.

Public API:
    ProviderRegistry, build_default_registry(config)
    ChangeDetector.has_changes_since(repo_url, known_revision)
    normalize_repo_url(url)
"""

from runner.scm.changes import ChangeDetector
from runner.scm.factory import build_default_registry
from runner.scm.provider import RevisionNotFound, ScmProvider, ScmProviderError
from runner.scm.registry import ProviderRegistry
from runner.scm.types import UNKNOWN_REVISION, ChangeDetectionResult, ChangeSummary
from runner.scm.urls import normalize_repo_url

__all__ = [
    "ChangeDetector",
    "build_default_registry",
    "RevisionNotFound",
    "ScmProvider",
    "ScmProviderError",
    "ProviderRegistry",
    "UNKNOWN_REVISION",
    "ChangeDetectionResult",
    "ChangeSummary",
    "normalize_repo_url",
]
