"""Tests for notification payload construction."""

from runner.engine.notify import EVENT_SCAN_COMPLETED, EVENT_SCAN_FAILED, build_notification
from runner.scanner.types import Finding, ScannerIdentity, ScannerResult

REPO = "https://gitlab.com/group/sub/project"


def test_completed_payload_counts_per_scanner() -> None:
    results = [
        ScannerResult(ScannerIdentity("semgrep", "1"), [Finding("r", "m", "a.py", 1, "high")] * 2),
        ScannerResult(ScannerIdentity("gitleaks", "8"), []),
    ]
    payload = build_notification(EVENT_SCAN_COMPLETED, "scan_1", REPO, branch="main", results=results, duration=1.23456)
    assert payload["status"] == "success"
    assert payload["repository"]["name"] == "group/sub/project"
    assert payload["summary"] == {
        "totalIssues": 2,
        "duration": 1.235,
        "perScanner": [
            {"name": "semgrep", "issuesFound": 2},
            {"name": "gitleaks", "issuesFound": 0},
        ],
    }
    assert payload["error"] is None


def test_failed_payload() -> None:
    payload = build_notification(EVENT_SCAN_FAILED, "scan_2", REPO, error="clone failed")
    assert payload["event"] == "scan.failed"
    assert payload["status"] == "failure"
    assert payload["error"] == "clone failed"
    assert payload["summary"]["duration"] is None
    assert payload["summary"]["totalIssues"] == 0
