"""Parse, normalize and submit a scrobbler log."""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from ..exceptions import (
    AuthError,
    NoRecordsError,
    ParseError,
    ScrobblerError,
    SubmitError,
    SubmitProtocolError,
)
from ..models.outcome import RecordOutcome, RunState, RunSummary
from ..models.record import LogFile, LogRecord
from ..models.session import Credentials
from .client import MAX_BATCH_SIZE, ScrobbleClient
from .normalizer import normalize_log
from .parser import LogParser

T = TypeVar("T")

SKIPPED_REASON = "skipped on device"
CANCELLED_REASON = "cancelled before submission"
INTERRUPTED_REASON = "interrupted"


def make_batches(items: Sequence[T], size: int) -> List[List[T]]:
    """Split items into contiguous chunks of at most `size`, keeping order."""
    if size < 1:
        raise ValueError("batch size must be at least 1")
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


class SubmissionCoordinator:
    """Runs a log through parse -> normalize -> batch -> submit.

    State machine: IDLE -> PARSED -> NORMALIZED -> SUBMITTING -> DONE | FAILED.
    Every run returns a RunSummary, whatever the outcome.
    """

    def __init__(
        self,
        client: ScrobbleClient,
        credentials: Credentials,
        logger: Optional[logging.Logger] = None,
        parser: Optional[LogParser] = None,
        batch_size: int = MAX_BATCH_SIZE,
        abort_on_malformed: bool = False,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize coordinator.

        Args:
            client: Scrobbling service client
            credentials: Credentials passed to the client's handshake
            logger: Logger instance
            parser: Log parser (a lenient one if omitted)
            batch_size: Records per submission, capped at the client's limit
            abort_on_malformed: Fail the run if any line was rejected
            clock: Current epoch time, used to date records without a clock
        """
        self.client = client
        self.credentials = credentials
        self.logger = logger or logging.getLogger(__name__)
        self.parser = parser or LogParser(logger=self.logger)
        self.batch_size = min(batch_size, client.max_batch_size)
        self.abort_on_malformed = abort_on_malformed
        self.clock = clock

        self.state = RunState.IDLE
        self._cancel_event = threading.Event()

    def cancel(self) -> None:
        """Stop before the next batch. The in-flight request is allowed to finish."""
        if not self._cancel_event.is_set():
            self.logger.warning("Cancellation requested, stopping after the current batch")
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def run_file(self, path: Path, offset_hours: float = 0.0) -> RunSummary:
        """Run the pipeline on a log file.

        Raises:
            OSError: If the file cannot be read
        """
        return self._run(lambda: self.parser.parse_file(path), offset_hours)

    def run(self, raw_text: str, offset_hours: float = 0.0) -> RunSummary:
        """Run the pipeline on log text."""
        return self._run(lambda: self.parser.parse(raw_text), offset_hours)

    def _set_state(self, summary: RunSummary, state: RunState) -> None:
        self.logger.debug(f"State {self.state.value} -> {state.value}")
        self.state = state
        summary.state = state

    def _fail(self, summary: RunSummary, error: ScrobblerError) -> RunSummary:
        self.logger.error(f"Run failed: {error}")
        summary.error = error
        self._set_state(summary, RunState.FAILED)
        return summary

    def _run(self, parse: Callable[[], LogFile], offset_hours: float) -> RunSummary:
        summary = RunSummary()
        self.state = RunState.IDLE

        # Idle -> Parsed
        try:
            log = parse()
        except ParseError as e:
            return self._fail(summary, e)

        summary.diagnostics = list(log.diagnostics)
        if not log.records:
            return self._fail(summary, NoRecordsError("No valid records in log"))
        if self.abort_on_malformed and log.diagnostics:
            return self._fail(summary, log.diagnostics[0])
        self._set_state(summary, RunState.PARSED)

        # Parsed -> Normalized
        records = self.normalize_all(log, offset_hours)
        self._set_state(summary, RunState.NORMALIZED)

        # Normalized -> Submitting
        self._set_state(summary, RunState.SUBMITTING)
        error = self._submit_all(records, summary)

        if error is not None:
            return self._fail(summary, error)
        if summary.cancelled:
            self._set_state(summary, RunState.FAILED)
            return summary

        self._set_state(summary, RunState.DONE)
        self.logger.info(
            f"Finished: {summary.accepted} accepted, {summary.ignored} ignored, "
            f"{summary.failed} failed"
        )
        return summary

    def normalize_all(self, log: LogFile, offset_hours: float) -> List[LogRecord]:
        """Convert every record of a parsed log to UTC, once each."""
        return normalize_log(log, offset_hours, clock=self.clock, logger=self.logger)

    def _submit_all(
        self,
        records: List[LogRecord],
        summary: RunSummary
    ) -> Optional[ScrobblerError]:
        """Authenticate, then submit listened records batch by batch.

        Fills summary.outcomes in file order and returns the fatal error, if any.
        """
        results: Dict[int, RecordOutcome] = {}
        pending: List[int] = []
        for index, record in enumerate(records):
            if record.listened:
                pending.append(index)
            else:
                results[index] = RecordOutcome.ignored(record, SKIPPED_REASON)

        def fail_from(position: int, reason: str) -> None:
            for index in pending[position:]:
                results[index] = RecordOutcome.failed(records[index], reason)

        def collect() -> None:
            summary.outcomes = [results[index] for index in range(len(records))]

        if not pending:
            self.logger.info("No listened records to submit")
            collect()
            return None

        try:
            self.client.authenticate(self.credentials)
        except AuthError as e:
            fail_from(0, str(e))
            collect()
            return e
        except KeyboardInterrupt:
            self.logger.warning("Interrupted while authenticating")
            self._cancel_event.set()
            summary.cancelled = True
            fail_from(0, INTERRUPTED_REASON)
            collect()
            return None

        batches = make_batches(pending, self.batch_size)
        total = len(pending)
        error: Optional[ScrobblerError] = None
        position = 0

        for batch in batches:
            if self.cancelled:
                summary.cancelled = True
                fail_from(position, CANCELLED_REASON)
                break

            self.logger.info(
                f"Submitting scrobbles {position + 1}-{position + len(batch)} of {total}..."
            )
            try:
                outcomes = self.client.submit([records[index] for index in batch])
            except (AuthError, SubmitError) as e:
                error = e
                fail_from(position, str(e))
                break
            except KeyboardInterrupt:
                # Forced stop mid-request; the batch may or may not have been recorded
                self.logger.warning("Interrupted while submitting, reporting partial results")
                self._cancel_event.set()
                summary.cancelled = True
                fail_from(position, INTERRUPTED_REASON)
                break

            if len(outcomes) != len(batch):
                error = SubmitProtocolError(
                    f"Got {len(outcomes)} outcome(s) for a batch of {len(batch)}"
                )
                fail_from(position, str(error))
                break

            for index, outcome in zip(batch, outcomes):
                results[index] = outcome
            position += len(batch)

        collect()
        return error
