"""Subprocess resource limits for git and scanner child processes.

Provides a `preexec_fn`-compatible function that sets hard resource
limits on child processes before exec. The wall-clock timeout in
run_command() is the primary guard; rlimits cap CPU time and address
space for a process that evades it (e.g. a scanner stuck in a tight
loop on a pathological file).

Platform notes:
  - Linux / macOS: `resource` module is available and rlimits are enforced.
  - Windows: `resource` module is unavailable. `apply_resource_limits()`
    is a no-op on Windows so tests and development there are unaffected.

Memory policy:
  - 8 GB virtual-address-space cap (`RLIMIT_AS`) by default. Semgrep
    loads its rule set and per-language parsers into one process and
    needs more headroom than git.

Environment overrides:
  - SCANNER_RLIMIT_AS_BYTES: integer bytes; 0 or negative disables the cap
  - SCANNER_RLIMIT_CPU_SECONDS: integer seconds for the CPU limit
"""

import os
import sys
from typing import Optional

_DEFAULT_MEM_LIMIT_BYTES = 8 * 1024 * 1024 * 1024  # 8 GB
_DEFAULT_CPU_LIMIT_SECONDS = 600

_MEM_LIMIT_ENV = "SCANNER_RLIMIT_AS_BYTES"
_CPU_LIMIT_ENV = "SCANNER_RLIMIT_CPU_SECONDS"


def _parse_optional_int(raw: Optional[str]) -> Optional[int]:
    if raw is None or not raw.strip():
        return None
    return int(raw.strip())


def resolve_memory_limit_bytes() -> int:
    """Return the RLIMIT_AS cap in bytes; 0 means no cap."""
    override = _parse_optional_int(os.environ.get(_MEM_LIMIT_ENV))
    if override is None:
        return _DEFAULT_MEM_LIMIT_BYTES
    return max(override, 0)


def resolve_cpu_limit_seconds() -> int:
    override = _parse_optional_int(os.environ.get(_CPU_LIMIT_ENV))
    if override is None or override <= 0:
        return _DEFAULT_CPU_LIMIT_SECONDS
    return override


def apply_resource_limits() -> None:
    """Set per-process resource limits before exec. No-op on Windows.

    Designed to be passed as `preexec_fn` to
    `asyncio.create_subprocess_exec()`. Executes in the child process
    after `fork()` but before `exec()`.
    """
    if sys.platform == "win32":
        return

    try:
        import resource

        mem_limit = resolve_memory_limit_bytes()
        if mem_limit > 0:
            resource.setrlimit(resource.RLIMIT_AS, (mem_limit, resource.RLIM_INFINITY))

        cpu_limit = resolve_cpu_limit_seconds()
        resource.setrlimit(resource.RLIMIT_CPU, (cpu_limit, resource.RLIM_INFINITY))

    except (ImportError, ValueError, OSError) as exc:
        import logging
        logging.getLogger(__name__).warning(
            "Failed to apply resource limits: %s", exc
        )
