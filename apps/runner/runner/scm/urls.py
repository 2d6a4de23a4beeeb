"""Repository URL normalization and parsing.

The normalized URL is the identity key of a repository everywhere in the
service: the scan store, the per-repository gate and the change detector
all key on it. Normalization:

  - SSH shorthand ``git@host:owner/repo.git`` and ``ssh://git@host/...``
    are rewritten to ``https://host/owner/repo``
  - scheme and hostname are lower-cased
  - embedded credentials, query strings and fragments are dropped
  - trailing slashes and a trailing ``.git`` are removed

Path case is preserved; only some hosts treat it case-insensitively.
"""

import re
from urllib.parse import urlparse

from runner.scm.types import (
    PLATFORM_AZURE_DEVOPS,
    PLATFORM_BITBUCKET,
    PLATFORM_CODEBERG,
    PLATFORM_FORGEJO,
    PLATFORM_GENERIC,
    PLATFORM_GITEA,
    PLATFORM_GITHUB,
    PLATFORM_GITLAB,
)

# git@github.com:owner/repo.git (scp-like syntax, no scheme)
_SCP_LIKE = re.compile(r"^(?:[A-Za-z0-9._-]+@)?(?P<host>[A-Za-z0-9.-]+):(?!//)(?P<path>[^\s]+)$")

_ALLOWED_SCHEMES = {"https", "http", "ssh", "git"}


def normalize_repo_url(url: str) -> str:
    """Return the canonical ``https://host/owner/repo`` form of a repo URL.

    Raises:
        ValueError: If the URL is empty, uses an unsupported scheme or has
            fewer than two path segments.
    """
    if not url or not url.strip():
        raise ValueError("Repository URL must not be empty")

    raw = url.strip()
    match = _SCP_LIKE.match(raw)
    if match and "://" not in raw:
        host = match.group("host").lower()
        path = match.group("path")
    else:
        parsed = urlparse(raw)
        scheme = parsed.scheme.lower()
        if scheme not in _ALLOWED_SCHEMES:
            raise ValueError(f"Unsupported repository URL scheme '{parsed.scheme}': {url}")
        if not parsed.hostname:
            raise ValueError(f"Repository URL has no hostname: {url}")
        host = parsed.hostname.lower()
        if parsed.port and scheme in {"https", "http"}:
            host = f"{host}:{parsed.port}"
        path = parsed.path

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[: -len(".git")]
    path = path.rstrip("/")

    segments = [s for s in path.split("/") if s]
    if len(segments) < 2:
        raise ValueError(f"Repository URL must include owner and repository name: {url}")

    return f"https://{host}/{'/'.join(segments)}"


def split_repo_url(url: str) -> tuple[str, str, str]:
    """Return (hostname, owner, name) for a repository URL.

    owner is every path segment except the last, joined with ``/``.
    """
    normalized = normalize_repo_url(url)
    parsed = urlparse(normalized)
    segments = parsed.path.strip("/").split("/")
    return parsed.hostname or "", "/".join(segments[:-1]), segments[-1]


def hostname_of(url: str) -> str:
    """Return the lower-cased hostname of a repo URL, or '' if unparseable."""
    try:
        return split_repo_url(url)[0]
    except ValueError:
        return ""


def determine_platform(hostname: str) -> str:
    """Classify a hostname into one of the known hosting platforms."""
    host = hostname.lower()
    if host in {"github.com", "www.github.com"}:
        return PLATFORM_GITHUB
    if host in {"gitlab.com", "www.gitlab.com"} or host.startswith("gitlab."):
        return PLATFORM_GITLAB
    if host in {"bitbucket.org", "www.bitbucket.org"}:
        return PLATFORM_BITBUCKET
    if host == "dev.azure.com" or host.endswith(".visualstudio.com"):
        return PLATFORM_AZURE_DEVOPS
    if host == "codeberg.org":
        return PLATFORM_CODEBERG
    if "gitea" in host:
        return PLATFORM_GITEA
    if "forgejo" in host:
        return PLATFORM_FORGEJO
    return PLATFORM_GENERIC


def repository_display_name(url: str) -> str:
    """Return ``owner/repo`` for notifications, or the raw URL if unparseable."""
    try:
        _host, owner, name = split_repo_url(url)
    except ValueError:
        return url
    return f"{owner}/{name}"
