"""Source-line windows around a finding."""

from pathlib import Path

from runner.scanner.paths import ScanPathError
from runner.scanner.types import CodeContext, CodeLine

MIN_CONTEXT_LINES = 1
MAX_CONTEXT_LINES = 20
DEFAULT_CONTEXT_LINES = 3

# Files larger than this are not read for context
MAX_CONTEXT_FILE_SIZE = 2 * 1024 * 1024


def resolve_inside(root: Path, file_path: str) -> Path:
    """Resolve file_path relative to root, refusing anything that escapes it."""
    root = root.resolve()
    candidate = (root / file_path.lstrip("/")).resolve()
    if candidate != root and root not in candidate.parents:
        raise ScanPathError(f"File path escapes the repository: {file_path}")
    if not candidate.is_file():
        raise ScanPathError(f"File not found in repository: {file_path}")
    return candidate


def extract_code_context(
    root: Path,
    file_path: str,
    line: int,
    context: int = DEFAULT_CONTEXT_LINES,
) -> CodeContext:
    """Return ``context`` lines either side of ``line`` (1-based) in file_path.

    Raises:
        ScanPathError: If the file is missing, too large or outside root.
        ValueError: If line or context is out of range.
    """
    if line < 1:
        raise ValueError("line must be >= 1")
    if not MIN_CONTEXT_LINES <= context <= MAX_CONTEXT_LINES:
        raise ValueError(
            f"context must be between {MIN_CONTEXT_LINES} and {MAX_CONTEXT_LINES}"
        )

    path = resolve_inside(root, file_path)
    if path.stat().st_size > MAX_CONTEXT_FILE_SIZE:
        raise ScanPathError(f"File too large for context extraction: {file_path}")

    source_lines = path.read_text(encoding="utf-8", errors="replace").splitlines()
    if line > len(source_lines):
        raise ValueError(f"line {line} is beyond end of file ({len(source_lines)} lines)")

    start = max(1, line - context)
    end = min(len(source_lines), line + context)
    return CodeContext(
        file_path=file_path,
        line=line,
        start_line=start,
        end_line=end,
        lines=tuple(
            CodeLine(line_number=n, content=source_lines[n - 1], is_target_line=n == line)
            for n in range(start, end + 1)
        ),
    )
