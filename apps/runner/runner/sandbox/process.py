"""Async subprocess execution with a wall-clock timeout.

All git and scanner invocations go through run_command(). On timeout or
on cancellation of the awaiting task, the child is sent SIGTERM, given a
short grace period, then SIGKILLed, so no subprocess outlives the scan
that started it.
"""

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from runner.sandbox.limits import apply_resource_limits

logger = logging.getLogger(__name__)

# Seconds between SIGTERM and SIGKILL
TERMINATE_GRACE_SECONDS = 5.0


@dataclass
class CommandResult:
    returncode: int
    stdout: str
    stderr: str


class CommandTimeout(Exception):
    """Raised when a subprocess exceeds its wall-clock timeout."""

    def __init__(self, cmd: list[str], timeout: float):
        self.cmd = cmd
        self.timeout = timeout
        super().__init__(f"'{cmd[0]}' timed out after {timeout:.0f}s")


async def run_command(
    cmd: list[str],
    cwd: Optional[Path] = None,
    timeout: float = 300.0,
    env: Optional[dict[str, str]] = None,
) -> CommandResult:
    """Run cmd without a shell and capture its output.

    Args:
        cmd: argv list; never interpreted by a shell.
        cwd: Working directory for the child.
        timeout: Wall-clock limit in seconds.
        env: Extra environment variables merged over os.environ.

    Raises:
        CommandTimeout: If the process exceeds timeout (it is terminated first).
        FileNotFoundError: If the executable does not exist.
    """
    child_env = {**os.environ, **env} if env else None

    proc = await asyncio.create_subprocess_exec(
        *cmd,
        cwd=str(cwd) if cwd else None,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        env=child_env,
        preexec_fn=apply_resource_limits,
    )

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Command %s timed out after %.0fs; terminating", cmd[0], timeout)
        await terminate_process(proc)
        raise CommandTimeout(cmd, timeout)
    except asyncio.CancelledError:
        logger.info("Command %s cancelled; terminating", cmd[0])
        await terminate_process(proc)
        raise

    return CommandResult(
        returncode=proc.returncode if proc.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def terminate_process(proc: asyncio.subprocess.Process) -> None:
    """SIGTERM, wait up to TERMINATE_GRACE_SECONDS, then SIGKILL."""
    if proc.returncode is not None:
        return
    try:
        proc.terminate()
    except ProcessLookupError:
        return
    try:
        await asyncio.wait_for(proc.wait(), timeout=TERMINATE_GRACE_SECONDS)
    except asyncio.TimeoutError:
        try:
            proc.kill()
        except ProcessLookupError:
            return
        await proc.wait()
