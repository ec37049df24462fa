from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from services.shared.errors import IngestError


class RunStatus(str, Enum):
    RUNNING = "running"
    LOADED = "loaded"
    PUBLISHED = "published"
    FAILED = "failed"


_TRANSITIONS = {
    None: {RunStatus.RUNNING},
    RunStatus.RUNNING: {RunStatus.LOADED, RunStatus.FAILED},
    RunStatus.LOADED: {RunStatus.PUBLISHED, RunStatus.FAILED},
    RunStatus.PUBLISHED: set(),
    RunStatus.FAILED: set(),
}


@dataclass
class RunState:
    """
    Counters and lifecycle of one ingest run.

    Created by the orchestrator per invocation and handed to every stage;
    nothing outlives the run except what is written to ingest_runs.
    """

    run_id: Optional[int] = None
    status: Optional[RunStatus] = None
    rows_seen: int = 0
    rows_loaded: int = 0
    rows_rejected: int = 0
    rejection_reasons: Counter = field(default_factory=Counter)
    error: Optional[str] = None
    publish_mode: Optional[str] = None

    @property
    def terminal(self) -> bool:
        return self.status in (RunStatus.PUBLISHED, RunStatus.FAILED)

    def transition(self, status: RunStatus) -> None:
        status = RunStatus(status)
        if status not in _TRANSITIONS[self.status]:
            current = self.status.value if self.status else "none"
            raise IngestError(f"Invalid run transition {current} -> {status.value}")
        self.status = status

    def reject(self, reason: str) -> None:
        self.rows_rejected += 1
        self.rejection_reasons[reason] += 1

    def rejection_summary(self) -> Optional[str]:
        if not self.rejection_reasons:
            return None
        return ", ".join(f"{reason}:{count}" for reason, count in self.rejection_reasons.items())

    def counters(self) -> Dict[str, Any]:
        return {
            "rows_seen": self.rows_seen,
            "rows_loaded": self.rows_loaded,
            "rows_rejected": self.rows_rejected,
        }
