"""Gitleaks scanner adapter (hard-coded secrets).

Runs ``gitleaks detect`` with a JSON report written into a scoped
temporary directory. Exit code 1 means leaks were found and is treated
as success. Secret values are never copied into findings; only the rule
and location are kept.
"""

import json
import logging
from pathlib import Path
from typing import Optional

from runner.sandbox.process import CommandTimeout, run_command
from runner.sandbox.workspace import scan_workspace
from runner.scanner.paths import relative_to_root, validate_scan_path
from runner.scanner.types import Finding, ScannerError

logger = logging.getLogger(__name__)

_OK_EXIT_CODES = {0, 1}
_VERSION_TIMEOUT = 30.0

_HIGH_SEVERITY_MARKERS = ("aws", "private-key", "api-key", "password", "token", "secret")
_MEDIUM_SEVERITY_MARKERS = ("email", "url", "ip-address", "credit-card")


def gitleaks_severity(rule_id: str) -> str:
    """Classify a gitleaks rule by the kind of secret it detects."""
    rule = (rule_id or "").lower()
    if any(marker in rule for marker in _HIGH_SEVERITY_MARKERS):
        return "high"
    if any(marker in rule for marker in _MEDIUM_SEVERITY_MARKERS):
        return "medium"
    return "low"


class GitleaksScanner:
    name = "gitleaks"

    def __init__(
        self,
        timeout: float = 300.0,
        binary: str = "gitleaks",
        workspace_root: Optional[str] = None,
    ):
        self.timeout = timeout
        self.binary = binary
        self.workspace_root = workspace_root
        self._version: Optional[str] = None

    async def version(self) -> str:
        if self._version is None:
            try:
                result = await run_command([self.binary, "version"], timeout=_VERSION_TIMEOUT)
            except (FileNotFoundError, CommandTimeout) as exc:
                raise ScannerError(self.name, f"cannot run {self.binary}: {exc}", exc) from exc
            if result.returncode != 0:
                raise ScannerError(self.name, f"version exited {result.returncode}")
            self._version = result.stdout.strip() or "unknown"
        return self._version

    async def scan(self, path: Path) -> list[Finding]:
        root = validate_scan_path(path)
        async with scan_workspace(prefix="gitleaks-", root=self.workspace_root) as tmp:
            report = tmp / "report.json"
            cmd = [
                self.binary,
                "detect",
                "--source", str(root),
                "--report-format", "json",
                "--report-path", str(report),
                "--no-banner",
            ]
            logger.info("Running gitleaks on %s", root)
            try:
                result = await run_command(cmd, cwd=root, timeout=self.timeout)
            except (FileNotFoundError, CommandTimeout) as exc:
                raise ScannerError(self.name, str(exc), exc) from exc

            if result.returncode not in _OK_EXIT_CODES:
                raise ScannerError(
                    self.name,
                    f"exited {result.returncode}: {result.stderr.strip()[:500]}",
                )
            raw = report.read_text(encoding="utf-8") if report.exists() else "[]"

        findings = self.parse_report(raw, root)
        logger.info("gitleaks reported %d finding(s) in %s", len(findings), root)
        return findings

    def parse_report(self, raw: str, root: Path) -> list[Finding]:
        try:
            entries = json.loads(raw or "[]")
        except json.JSONDecodeError as exc:
            raise ScannerError(self.name, f"unparseable JSON report: {exc}", exc) from exc
        if not isinstance(entries, list):
            raise ScannerError(self.name, "JSON report is not a list")

        findings: list[Finding] = []
        for entry in entries:
            if not isinstance(entry, dict):
                raise ScannerError(self.name, "malformed report entry")
            rule = entry.get("RuleID") or "unknown"
            findings.append(
                Finding(
                    rule_id=f"gitleaks.{rule}",
                    message=entry.get("Description") or "Secret detected",
                    file_path=relative_to_root(root, entry.get("File") or "unknown"),
                    line=int(entry.get("StartLine") or 0),
                    severity=gitleaks_severity(rule),
                )
            )
        return findings
