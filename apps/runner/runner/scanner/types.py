"""Types for the scanner module.

A Finding is one issue reported by a scanner, in a scanner-agnostic
shape. Every adapter maps its tool's native output onto it; the
orchestrator concatenates findings from all scanners verbatim.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Protocol, runtime_checkable

# Normalized severity vocabulary used by statistics.
SEVERITY_LEVELS = ("critical", "high", "medium", "low", "info")

# Tool-specific severities folded into SEVERITY_LEVELS
_SEVERITY_ALIASES = {
    "error": "high",
    "warning": "medium",
    "warn": "medium",
    "note": "info",
    "informational": "info",
}


def normalize_severity(severity: Optional[str]) -> str:
    """Map a scanner's severity string onto SEVERITY_LEVELS (unknown -> info)."""
    value = (severity or "").strip().lower()
    if value in SEVERITY_LEVELS:
        return value
    return _SEVERITY_ALIASES.get(value, "info")


@dataclass(frozen=True)
class CodeLine:
    line_number: int
    content: str
    is_target_line: bool

    def to_dict(self) -> dict:
        return {
            "lineNumber": self.line_number,
            "content": self.content,
            "isTargetLine": self.is_target_line,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CodeLine":
        return cls(
            line_number=int(data["lineNumber"]),
            content=str(data["content"]),
            is_target_line=bool(data["isTargetLine"]),
        )


@dataclass(frozen=True)
class CodeContext:
    """A window of source lines around a finding."""

    file_path: str
    line: int
    start_line: int
    end_line: int
    lines: tuple[CodeLine, ...] = ()

    def to_dict(self) -> dict:
        return {
            "filePath": self.file_path,
            "line": self.line,
            "startLine": self.start_line,
            "endLine": self.end_line,
            "context": [line.to_dict() for line in self.lines],
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CodeContext":
        return cls(
            file_path=str(data["filePath"]),
            line=int(data["line"]),
            start_line=int(data["startLine"]),
            end_line=int(data["endLine"]),
            lines=tuple(CodeLine.from_dict(item) for item in data["context"]),
        )


@dataclass(frozen=True)
class Finding:
    """A single reported issue.

    rule_id: Scanner rule identifier (gitleaks rules are prefixed "gitleaks.").
    file_path: Path relative to the repository root.
    severity: The scanner's own severity string, kept verbatim.
    """

    rule_id: str
    message: str
    file_path: str
    line: int
    severity: str
    code_context: Optional[CodeContext] = None

    def to_dict(self) -> dict:
        return {
            "ruleId": self.rule_id,
            "message": self.message,
            "filePath": self.file_path,
            "line": self.line,
            "severity": self.severity,
            "codeContext": self.code_context.to_dict() if self.code_context else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Finding":
        context = data.get("codeContext")
        return cls(
            rule_id=str(data["ruleId"]),
            message=str(data["message"]),
            file_path=str(data["filePath"]),
            line=int(data["line"]),
            severity=str(data["severity"]),
            code_context=CodeContext.from_dict(context) if context else None,
        )


@dataclass(frozen=True)
class ScannerIdentity:
    name: str
    version: str

    def to_dict(self) -> dict:
        return {"name": self.name, "version": self.version}

    @classmethod
    def from_dict(cls, data: dict) -> "ScannerIdentity":
        return cls(name=str(data["name"]), version=str(data["version"]))


@dataclass
class ScannerResult:
    """Output of one scanner over one working copy."""

    identity: ScannerIdentity
    findings: list[Finding] = field(default_factory=list)
    duration_seconds: float = 0.0


@runtime_checkable
class Scanner(Protocol):
    """Protocol for scanner adapters.

    Implementations must reject unsafe paths (see validate_scan_path)
    before spawning anything, and raise ScannerError on tool failure.
    """

    name: str

    async def version(self) -> str:
        ...

    async def scan(self, path: Path) -> list[Finding]:
        ...


class ScannerError(Exception):
    """Raised by scanner adapters when the tool fails or emits unparseable output."""

    def __init__(self, scanner: str, message: str, cause: Optional[Exception] = None):
        self.scanner = scanner
        self.cause = cause
        super().__init__(f"[{scanner}] {message}")
