"""Change detection: has a repository moved since the last scanned revision?

Decision table:

  known revision        current revision        result
  --------------------  ----------------------  -------------------------------------
  any                   indeterminate/failure   hasChanges=True, error set
  "unknown" / empty     X                       hasChanges=True, no summary
  X                     X                       hasChanges=False, no summary
  X                     Y                       hasChanges=True, summary for X..Y
  X (not in history)    Y                       hasChanges=True, zeroed summary
  X                     Y, summary failed       hasChanges=True, error set

Every ambiguous branch resolves towards rescanning. The detector never
reports "no changes" unless the current revision was positively
determined and equals the known one.
"""

import logging
from typing import Optional

from runner.errors import ChangeDetectionAmbiguous, ProviderUnavailable
from runner.scm.provider import RevisionNotFound, ScmProvider
from runner.scm.registry import ProviderRegistry
from runner.scm.types import UNKNOWN_REVISION, ChangeDetectionResult, ChangeSummary
from runner.scm.urls import normalize_repo_url

logger = logging.getLogger(__name__)


class ChangeDetector:
    def __init__(self, registry: ProviderRegistry):
        self.registry = registry

    async def _current_revision(self, provider: ScmProvider, repo_url: str) -> str:
        try:
            revision = await provider.get_latest_revision(repo_url)
        except Exception as exc:
            raise ChangeDetectionAmbiguous(
                f"could not determine latest revision via {provider.name}: {exc}",
                repo_url=repo_url,
            ) from exc
        if not revision or revision == UNKNOWN_REVISION:
            raise ChangeDetectionAmbiguous(
                f"{provider.name} reported no revision", repo_url=repo_url
            )
        return revision

    async def has_changes_since(
        self,
        repo_url: str,
        known_revision: Optional[str],
        provider: Optional[ScmProvider] = None,
    ) -> ChangeDetectionResult:
        """Compare known_revision with the provider's latest revision.

        Raises:
            ProviderUnavailable: If no provider is given and none resolves.
        """
        repo_url = normalize_repo_url(repo_url)
        provider = provider or self.registry.resolve(repo_url)
        if provider is None:
            raise ProviderUnavailable(f"No provider can handle {repo_url}", repo_url=repo_url)

        try:
            current = await self._current_revision(provider, repo_url)
        except ChangeDetectionAmbiguous as exc:
            logger.warning("Change detection ambiguous for %s: %s", repo_url, exc.message)
            return ChangeDetectionResult(
                has_changes=True,
                last_commit_hash=UNKNOWN_REVISION,
                error=exc.message,
            )

        if not known_revision or known_revision == UNKNOWN_REVISION:
            logger.info("No known revision for %s; treating as changed", repo_url)
            return ChangeDetectionResult(has_changes=True, last_commit_hash=current)

        if current == known_revision:
            logger.info("No changes for %s since %s", repo_url, known_revision[:12])
            return ChangeDetectionResult(has_changes=False, last_commit_hash=current)

        try:
            summary = await provider.change_summary(repo_url, known_revision)
        except RevisionNotFound as exc:
            logger.warning(
                "Known revision %s missing from %s history (%s); reporting zeroed summary",
                known_revision[:12], repo_url, exc,
            )
            return ChangeDetectionResult(
                has_changes=True,
                last_commit_hash=current,
                change_summary=ChangeSummary.zero(),
            )
        except Exception as exc:
            logger.warning("Change summary failed for %s: %s", repo_url, exc)
            return ChangeDetectionResult(
                has_changes=True,
                last_commit_hash=current,
                error=f"change summary unavailable: {exc}",
            )

        logger.info(
            "Changes for %s: %d commit(s), %d file(s) in %s",
            repo_url, summary.commits, summary.files_changed, summary.commit_range,
        )
        return ChangeDetectionResult(
            has_changes=True,
            last_commit_hash=current,
            change_summary=summary,
        )
