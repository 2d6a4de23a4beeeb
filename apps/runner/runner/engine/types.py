"""Orchestration state machine and outcome types.

State machine:
    idle -> resolving -> deciding -> acquiring -> scanning -> aggregating -> persisting -> done
               \\            \\  \\-> done (skipped)   \\            \\             \\
                \\------------\\----------------------\\------------\\-------------\\-> error
"""

from contextvars import ContextVar
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from runner.scm.types import ChangeDetectionResult
from runner.store.records import ScanRecord


class ScanStage(str, Enum):
    IDLE = "idle"
    RESOLVING = "resolving"
    DECIDING = "deciding"
    ACQUIRING = "acquiring"
    SCANNING = "scanning"
    AGGREGATING = "aggregating"
    PERSISTING = "persisting"
    DONE = "done"
    ERROR = "error"


VALID_TRANSITIONS: dict[ScanStage, set[ScanStage]] = {
    ScanStage.IDLE: {ScanStage.RESOLVING, ScanStage.ERROR},
    ScanStage.RESOLVING: {ScanStage.DECIDING, ScanStage.ERROR},
    ScanStage.DECIDING: {ScanStage.ACQUIRING, ScanStage.DONE, ScanStage.ERROR},
    ScanStage.ACQUIRING: {ScanStage.SCANNING, ScanStage.ERROR},
    ScanStage.SCANNING: {ScanStage.AGGREGATING, ScanStage.ERROR},
    ScanStage.AGGREGATING: {ScanStage.PERSISTING, ScanStage.ERROR},
    ScanStage.PERSISTING: {ScanStage.DONE, ScanStage.ERROR},
}


def validate_transition(current: ScanStage, target: ScanStage) -> None:
    """Enforce the orchestration state machine.

    Raises ValueError if the transition is not allowed.
    """
    allowed = VALID_TRANSITIONS.get(current, set())
    if target not in allowed:
        raise ValueError(
            f"Invalid scan stage transition: {current.value} -> {target.value}. "
            f"Allowed from '{current.value}': "
            f"{sorted(s.value for s in allowed) or 'none (terminal state)'}"
        )


# Scan ID of the orchestration running in the current task, for log injection
_scan_id_var: ContextVar[str] = ContextVar("scan_id", default="")


def get_scan_id() -> str:
    """Return the current scan ID, or empty string outside an orchestration."""
    return _scan_id_var.get()


@dataclass(frozen=True)
class ScanOutcome:
    """What a scan request returns: a record plus whether it was served from cache."""

    record: ScanRecord
    scan_skipped: bool = False
    reason: Optional[str] = None
    change_detection: Optional[ChangeDetectionResult] = None

    def to_dict(self) -> dict:
        payload = self.record.to_dict()
        payload["scanSkipped"] = self.scan_skipped
        payload["reason"] = self.reason
        if self.scan_skipped and self.change_detection is not None:
            payload["currentChangeDetection"] = self.change_detection.to_dict()
        return payload
