"""Scan notification payloads and the Notifier protocol.

The orchestrator hands one payload to the configured notifier after each
scan that ran (cache hits are not announced). Delivery is fire-and-forget:
a notifier failure is logged and never changes the scan's own outcome.

Payload shape:
    {
      "event": "scan.completed" | "scan.failed",
      "timestamp": ISO-8601,
      "scanId": str,
      "repository": {"name": "owner/repo", "url": str, "branch": str | None},
      "summary": {"totalIssues": int, "duration": float | None,
                  "perScanner": [{"name": str, "issuesFound": int}]},
      "status": "success" | "failure",
      "error": str | None,
    }
"""

from typing import Optional, Protocol, Sequence, runtime_checkable

from runner.scanner.types import ScannerResult
from runner.scm.urls import repository_display_name
from runner.store.records import utcnow

EVENT_SCAN_COMPLETED = "scan.completed"
EVENT_SCAN_FAILED = "scan.failed"


@runtime_checkable
class Notifier(Protocol):
    async def notify(self, payload: dict) -> None:
        ...


def build_notification(
    event: str,
    scan_id: str,
    repo_url: str,
    *,
    branch: Optional[str] = None,
    results: Sequence[ScannerResult] = (),
    duration: Optional[float] = None,
    error: Optional[str] = None,
) -> dict:
    per_scanner = [
        {"name": r.identity.name, "issuesFound": len(r.findings)} for r in results
    ]
    return {
        "event": event,
        "timestamp": utcnow().isoformat(),
        "scanId": scan_id,
        "repository": {
            "name": repository_display_name(repo_url),
            "url": repo_url,
            "branch": branch,
        },
        "summary": {
            "totalIssues": sum(item["issuesFound"] for item in per_scanner),
            "duration": round(duration, 3) if duration is not None else None,
            "perScanner": per_scanner,
        },
        "status": "success" if event == EVENT_SCAN_COMPLETED else "failure",
        "error": error,
    }
