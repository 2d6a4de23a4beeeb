"""Default provider set.

Registration order matters only for the can_handle fallback stage of
ProviderRegistry.resolve(): platform providers come first and the
generic git provider last, so it only catches hosts nobody else claims.
"""

import logging
from typing import Optional

from runner.config import ScanConfig
from runner.scm.bitbucket import BitbucketProvider
from runner.scm.generic import GenericGitProvider
from runner.scm.git import GitClient
from runner.scm.github import GitHubProvider
from runner.scm.gitlab import GitLabProvider
from runner.scm.registry import ProviderRegistry

logger = logging.getLogger(__name__)


def build_default_registry(
    config: ScanConfig,
    git: Optional[GitClient] = None,
) -> ProviderRegistry:
    """Return a registry with GitHub, GitLab, Bitbucket and generic git registered."""
    git = git or GitClient(
        timeout=config.clone_timeout_seconds,
        allow_private_networks=config.allow_private_networks,
        workspace_root=config.workspace_root,
    )

    registry = ProviderRegistry(health_check_timeout=config.health_check_timeout_seconds)
    registry.register(GitHubProvider(token=config.github_token, git=git))
    registry.register(
        GitLabProvider(
            token=config.gitlab_token,
            git=git,
            default_host=config.gitlab_host,
            allow_private_networks=config.allow_private_networks,
        )
    )
    registry.register(BitbucketProvider(token=config.bitbucket_token, git=git))
    registry.register(GenericGitProvider(git=git))

    logger.info(
        "Provider registry ready: %s",
        ", ".join(p.name for p in registry.all_providers()),
    )
    return registry
