"""Sandbox module for isolated repo checkout and subprocess execution."""

from runner.sandbox.checkout import SandboxError, redact_repo_url, validate_repo_url
from runner.sandbox.process import CommandResult, CommandTimeout, run_command
from runner.sandbox.workspace import scan_workspace

__all__ = [
    "SandboxError",
    "redact_repo_url",
    "validate_repo_url",
    "CommandResult",
    "CommandTimeout",
    "run_command",
    "scan_workspace",
]
