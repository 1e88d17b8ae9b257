"""Submission outcome models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..exceptions import LineError, ScrobblerError
from .record import LogRecord


class OutcomeStatus(str, Enum):
    """Per-record verdict."""

    ACCEPTED = "accepted"
    IGNORED = "ignored"
    FAILED = "failed"


class RunState(str, Enum):
    """Coordinator state machine."""

    IDLE = "idle"
    PARSED = "parsed"
    NORMALIZED = "normalized"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"


@dataclass(frozen=True)
class RecordOutcome:
    """What happened to a single record."""

    record: LogRecord
    status: OutcomeStatus
    reason: Optional[str] = None

    @classmethod
    def accepted(cls, record: LogRecord) -> "RecordOutcome":
        return cls(record, OutcomeStatus.ACCEPTED)

    @classmethod
    def ignored(cls, record: LogRecord, reason: str) -> "RecordOutcome":
        return cls(record, OutcomeStatus.IGNORED, reason)

    @classmethod
    def failed(cls, record: LogRecord, reason: str) -> "RecordOutcome":
        return cls(record, OutcomeStatus.FAILED, reason)


@dataclass
class RunSummary:
    """Result of a whole coordinator run."""

    state: RunState = RunState.IDLE
    outcomes: List[RecordOutcome] = field(default_factory=list)
    diagnostics: List[LineError] = field(default_factory=list)
    error: Optional[ScrobblerError] = None
    cancelled: bool = False

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status is status)

    @property
    def accepted(self) -> int:
        return self._count(OutcomeStatus.ACCEPTED)

    @property
    def ignored(self) -> int:
        return self._count(OutcomeStatus.IGNORED)

    @property
    def failed(self) -> int:
        return self._count(OutcomeStatus.FAILED)

    @property
    def succeeded(self) -> List[LogRecord]:
        """Records the service accepted."""
        return [o.record for o in self.outcomes if o.status is OutcomeStatus.ACCEPTED]

    @property
    def exit_code(self) -> int:
        """0 when nothing failed and no fatal error occurred, 1 otherwise."""
        if self.error is not None or self.failed or self.state is not RunState.DONE:
            return 1
        return 0

    def counts(self) -> dict[str, int]:
        return {
            'accepted': self.accepted,
            'ignored': self.ignored,
            'failed': self.failed,
        }
