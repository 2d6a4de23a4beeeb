"""Tests for scan path validation and code-context extraction."""

from pathlib import Path

import pytest

from runner.scanner.context import extract_code_context, resolve_inside
from runner.scanner.paths import ScanPathError, relative_to_root, validate_scan_path


class TestValidateScanPath:
    def test_accepts_existing_directory(self, tmp_path: Path) -> None:
        assert validate_scan_path(tmp_path) == tmp_path.resolve()

    @pytest.mark.parametrize(
        "suffix,message",
        [
            ("a;b", "shell metacharacters"),
            ("$(whoami)", "shell metacharacters"),
            ("a`b`", "shell metacharacters"),
            ("a b", "whitespace"),
            ("../etc", "'..'"),
            ("a\x00b", "control characters"),
        ],
    )
    def test_rejects_unsafe_paths(self, tmp_path: Path, suffix: str, message: str) -> None:
        with pytest.raises(ScanPathError, match=message.replace("(", r"\(")):
            validate_scan_path(f"{tmp_path}/{suffix}")

    def test_rejects_empty(self) -> None:
        with pytest.raises(ScanPathError, match="empty"):
            validate_scan_path("")

    def test_rejects_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ScanPathError, match="does not exist"):
            validate_scan_path(tmp_path / "nope")

    def test_rejects_file(self, tmp_path: Path) -> None:
        target = tmp_path / "file.txt"
        target.write_text("x")
        with pytest.raises(ScanPathError, match="not a directory"):
            validate_scan_path(target)

    def test_rejects_overlong(self) -> None:
        with pytest.raises(ScanPathError, match="exceeds"):
            validate_scan_path("/" + "a" * 5000)


class TestRelativeToRoot:
    def test_absolute_inside_root(self, tmp_path: Path) -> None:
        assert relative_to_root(tmp_path, str(tmp_path / "src" / "a.py")) == "src/a.py"

    def test_relative_is_kept(self, tmp_path: Path) -> None:
        assert relative_to_root(tmp_path, "src/a.py") == "src/a.py"

    def test_absolute_outside_root(self, tmp_path: Path) -> None:
        assert relative_to_root(tmp_path / "repo", "/etc/passwd") == "/etc/passwd"


@pytest.fixture
def source(tmp_path: Path) -> Path:
    (tmp_path / "pkg").mkdir()
    (tmp_path / "pkg" / "mod.py").write_text("\n".join(f"line {n}" for n in range(1, 11)) + "\n")
    return tmp_path


class TestExtractCodeContext:
    def test_window_around_line(self, source: Path) -> None:
        ctx = extract_code_context(source, "pkg/mod.py", 5, context=2)
        assert (ctx.start_line, ctx.end_line) == (3, 7)
        assert [l.content for l in ctx.lines] == ["line 3", "line 4", "line 5", "line 6", "line 7"]
        assert [l.line_number for l in ctx.lines if l.is_target_line] == [5]

    def test_window_clamped_at_file_edges(self, source: Path) -> None:
        start = extract_code_context(source, "pkg/mod.py", 1, context=3)
        assert (start.start_line, start.end_line) == (1, 4)
        end = extract_code_context(source, "pkg/mod.py", 10, context=3)
        assert (end.start_line, end.end_line) == (7, 10)

    def test_to_dict_shape(self, source: Path) -> None:
        data = extract_code_context(source, "pkg/mod.py", 2, context=1).to_dict()
        assert data["filePath"] == "pkg/mod.py"
        assert data["context"][1] == {"lineNumber": 2, "content": "line 2", "isTargetLine": True}

    @pytest.mark.parametrize("line,context", [(0, 3), (5, 0), (5, 21), (11, 3)])
    def test_out_of_range(self, source: Path, line: int, context: int) -> None:
        with pytest.raises(ValueError):
            extract_code_context(source, "pkg/mod.py", line, context)

    def test_traversal_rejected(self, source: Path) -> None:
        (source / "secret.txt").write_text("top secret")
        with pytest.raises(ScanPathError, match="escapes"):
            resolve_inside(source / "pkg", "../secret.txt")

    def test_symlink_escape_rejected(self, source: Path, tmp_path_factory) -> None:
        outside = tmp_path_factory.mktemp("outside") / "passwd"
        outside.write_text("root:x:0:0")
        (source / "link").symlink_to(outside)
        with pytest.raises(ScanPathError, match="escapes"):
            extract_code_context(source, "link", 1)

    def test_missing_file(self, source: Path) -> None:
        with pytest.raises(ScanPathError, match="not found"):
            extract_code_context(source, "pkg/absent.py", 1)
