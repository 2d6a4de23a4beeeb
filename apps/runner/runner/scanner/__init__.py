"""Scanner adapters and fan-out.

Public API:
    run_scanners(scanners, path, timeout, best_effort) -> ScanRun
    build_scanners(config) -> list[Scanner]
"""

from runner.scanner.factory import build_scanners
from runner.scanner.orchestrator import ScanRun, run_scanners
from runner.scanner.paths import ScanPathError, validate_scan_path
from runner.scanner.types import Finding, Scanner, ScannerError, ScannerIdentity

__all__ = [
    "build_scanners",
    "ScanRun",
    "run_scanners",
    "ScanPathError",
    "validate_scan_path",
    "Finding",
    "Scanner",
    "ScannerError",
    "ScannerIdentity",
]
