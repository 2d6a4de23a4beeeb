"""Scan path validation.

Scanners receive a working-copy path and pass it to external tools as an
argv element. Paths are still validated strictly: anything that looks
like shell syntax or traversal is rejected with a descriptive error
before a subprocess is spawned.
"""

import re
from pathlib import Path
from typing import Union

MAX_PATH_LENGTH = 4096

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")
_SHELL_METACHARACTERS = set(";&|`$(){}[]<>*?!\"'\\")


class ScanPathError(ValueError):
    """Raised when a scan target path is invalid or unsafe."""


def validate_scan_path(path: Union[str, Path]) -> Path:
    """Return the resolved directory path, or raise ScanPathError.

    Rejects: empty or over-long paths, control characters, shell
    metacharacters, whitespace, ``..`` segments, non-existent paths and
    non-directories.
    """
    raw = str(path) if path is not None else ""
    if not raw:
        raise ScanPathError("Scan path must not be empty")
    if len(raw) > MAX_PATH_LENGTH:
        raise ScanPathError(f"Scan path exceeds {MAX_PATH_LENGTH} characters")
    if _CONTROL_CHARS.search(raw):
        raise ScanPathError("Scan path contains control characters")

    bad = sorted(set(raw) & _SHELL_METACHARACTERS)
    if bad:
        raise ScanPathError(f"Scan path contains shell metacharacters: {''.join(bad)}")
    if any(ch.isspace() for ch in raw):
        raise ScanPathError("Scan path contains whitespace")
    if ".." in Path(raw).parts:
        raise ScanPathError("Scan path must not contain '..' segments")

    resolved = Path(raw).resolve()
    if not resolved.exists():
        raise ScanPathError(f"Scan path does not exist: {raw}")
    if not resolved.is_dir():
        raise ScanPathError(f"Scan path is not a directory: {raw}")
    return resolved


def relative_to_root(root: Path, reported: str) -> str:
    """Express a tool-reported file path relative to the scanned root."""
    candidate = Path(reported)
    if candidate.is_absolute():
        try:
            return candidate.resolve().relative_to(root.resolve()).as_posix()
        except ValueError:
            return candidate.as_posix()
    return candidate.as_posix()
