"""BGP Sync Agent - Sync Cycle Outcome"""
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from state.snapshot import Snapshot


class CycleStatus(Enum):
    COMPLETED = "completed"
    ABORTED = "aborted"
    FATAL = "fatal"


@dataclass
class CycleOutcome:
    """Result of one poll/diff/apply pass.

    `baseline` is what the next cycle must diff against: the fetched snapshot
    after a completed cycle, the unchanged old baseline otherwise.
    """
    status: CycleStatus
    baseline: Optional[Snapshot]
    reason: str = ""
    changes: int = 0

    @classmethod
    def completed(cls, baseline: Snapshot, changes: int = 0) -> "CycleOutcome":
        return cls(CycleStatus.COMPLETED, baseline, changes=changes)

    @classmethod
    def aborted(cls, baseline: Optional[Snapshot], reason: str) -> "CycleOutcome":
        return cls(CycleStatus.ABORTED, baseline, reason=reason)

    @classmethod
    def fatal(cls, baseline: Optional[Snapshot], reason: str) -> "CycleOutcome":
        return cls(CycleStatus.FATAL, baseline, reason=reason)

    def to_dict(self) -> dict:
        return {"status": self.status.value, "reason": self.reason, "changes": self.changes}
