"""Scanner factory.

Returns scanner adapters for the names in ScanConfig.scanners. Names are
validated eagerly so a typo in configuration fails at startup rather
than on the first scan.
"""

from runner.config import ScanConfig
from runner.scanner.gitleaks import GitleaksScanner
from runner.scanner.semgrep import SemgrepScanner
from runner.scanner.types import Scanner

_SCANNER_NAMES = ("semgrep", "gitleaks")


def build_scanners(config: ScanConfig) -> list[Scanner]:
    """Instantiate the configured scanners, in configuration order.

    Raises:
        ValueError: If a scanner name is not recognised.
    """
    scanners: list[Scanner] = []
    for raw_name in config.scanners:
        name = raw_name.strip().lower()
        if name == "semgrep":
            scanners.append(SemgrepScanner(timeout=config.scanner_timeout_seconds))
        elif name == "gitleaks":
            scanners.append(
                GitleaksScanner(
                    timeout=config.scanner_timeout_seconds,
                    workspace_root=config.workspace_root,
                )
            )
        else:
            valid = ", ".join(_SCANNER_NAMES)
            raise ValueError(f"Unknown scanner '{raw_name}'. Valid options: {valid}")
    return scanners
