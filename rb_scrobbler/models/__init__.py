"""Data models for rb-scrobbler."""

from .outcome import OutcomeStatus, RecordOutcome, RunState, RunSummary
from .record import LogFile, LogRecord, Rating, Source
from .session import Credentials, Session

__all__ = [
    "Credentials",
    "LogFile",
    "LogRecord",
    "OutcomeStatus",
    "Rating",
    "RecordOutcome",
    "RunState",
    "RunSummary",
    "Session",
    "Source",
]
