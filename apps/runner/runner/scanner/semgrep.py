"""Semgrep scanner adapter.

Runs ``semgrep --config=auto --json --quiet <path>`` and maps each entry
of the JSON ``results`` array onto a Finding:

    check_id        -> rule_id
    extra.message   -> message
    path            -> file_path (relative to the scanned root)
    start.line      -> line
    extra.severity  -> severity (INFO when absent)

Exit codes 0 and 1 are success (1 means findings were reported with
--error); anything else is a tool failure.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Optional

from runner.sandbox.process import CommandTimeout, run_command
from runner.scanner.context import DEFAULT_CONTEXT_LINES, extract_code_context
from runner.scanner.paths import ScanPathError, relative_to_root, validate_scan_path
from runner.scanner.types import CodeContext, Finding, ScannerError

logger = logging.getLogger(__name__)

_OK_EXIT_CODES = {0, 1}
_VERSION_TIMEOUT = 30.0


class SemgrepScanner:
    name = "semgrep"

    def __init__(
        self,
        timeout: float = 300.0,
        config: str = "auto",
        binary: str = "semgrep",
        context_lines: Optional[int] = DEFAULT_CONTEXT_LINES,
    ):
        self.timeout = timeout
        self.config = config
        self.binary = binary
        self.context_lines = context_lines
        self._version: Optional[str] = None

    async def version(self) -> str:
        if self._version is None:
            try:
                result = await run_command([self.binary, "--version"], timeout=_VERSION_TIMEOUT)
            except (FileNotFoundError, CommandTimeout) as exc:
                raise ScannerError(self.name, f"cannot run {self.binary}: {exc}", exc) from exc
            if result.returncode != 0:
                raise ScannerError(self.name, f"--version exited {result.returncode}")
            self._version = result.stdout.strip().splitlines()[0] if result.stdout.strip() else "unknown"
        return self._version

    async def scan(self, path: Path) -> list[Finding]:
        root = validate_scan_path(path)
        cmd = [
            self.binary,
            f"--config={self.config}",
            "--json",
            "--quiet",
            "--disable-version-check",
            str(root),
        ]
        logger.info("Running semgrep on %s", root)
        try:
            result = await run_command(cmd, cwd=root, timeout=self.timeout)
        except (FileNotFoundError, CommandTimeout) as exc:
            raise ScannerError(self.name, str(exc), exc) from exc

        if result.returncode not in _OK_EXIT_CODES:
            raise ScannerError(
                self.name,
                f"exited {result.returncode}: {result.stderr.strip()[:500]}",
            )

        # Reads source files for code context.
        findings = await asyncio.to_thread(self.parse_output, result.stdout, root)
        logger.info("semgrep reported %d finding(s) in %s", len(findings), root)
        return findings

    def parse_output(self, stdout: str, root: Path) -> list[Finding]:
        try:
            payload = json.loads(stdout or "{}")
        except json.JSONDecodeError as exc:
            raise ScannerError(self.name, f"unparseable JSON output: {exc}", exc) from exc
        if not isinstance(payload, dict):
            raise ScannerError(self.name, "JSON output is not an object")

        for error in payload.get("errors") or []:
            logger.warning("semgrep reported an error: %s", error.get("message", error))

        findings: list[Finding] = []
        for item in payload.get("results") or []:
            try:
                file_path = relative_to_root(root, item["path"])
                line = int(item.get("start", {}).get("line", 0))
                extra = item.get("extra") or {}
                findings.append(
                    Finding(
                        rule_id=item["check_id"],
                        message=extra.get("message", ""),
                        file_path=file_path,
                        line=line,
                        severity=extra.get("severity") or "INFO",
                        code_context=self._context(root, file_path, line),
                    )
                )
            except (KeyError, TypeError, ValueError) as exc:
                raise ScannerError(self.name, f"malformed result entry: {exc}", exc) from exc
        return findings

    def _context(self, root: Path, file_path: str, line: int) -> Optional[CodeContext]:
        if not self.context_lines or line < 1:
            return None
        try:
            return extract_code_context(root, file_path, line, self.context_lines)
        except (ScanPathError, ValueError, OSError) as exc:
            logger.debug("No code context for %s:%d: %s", file_path, line, exc)
            return None
