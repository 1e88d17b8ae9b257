"""Wires settings, logging and the pipeline together for one run."""

import signal
from pathlib import Path
from typing import Optional

from .config.settings import RunOptions, Settings
from .core.client import LastFmClient, ScrobbleClient
from .core.coordinator import SubmissionCoordinator
from .core.parser import LogParser
from .models.outcome import RunSummary
from .utils.logger import setup_logger
from .utils.platform import is_windows


class ScrobblerService:
    """Runs a scrobbler log through the submission pipeline."""

    def __init__(
        self,
        config_path: Optional[Path] = None,
        settings: Optional[Settings] = None,
        client: Optional[ScrobbleClient] = None,
        console: bool = True
    ):
        """Initialize the service.

        Args:
            config_path: Path to configuration file (optional)
            settings: Preloaded settings, takes precedence over config_path
            client: Scrobbling client (a LastFmClient built from settings if omitted)
            console: Whether to log to the console
        """
        self.settings = settings or Settings.from_file_or_default(config_path)

        self.logger = setup_logger(
            log_file=self.settings.logging.path,
            level=self.settings.logging.level,
            max_size_mb=self.settings.logging.max_size_mb,
            backup_count=self.settings.logging.backup_count,
            console=console
        )

        submission = self.settings.submission
        self.client = client or LastFmClient(
            logger=self.logger,
            api_root=self.settings.lastfm.api_root,
            timeout=submission.timeout,
            max_attempts=submission.max_attempts,
            backoff_base=submission.backoff_base,
            backoff_max=submission.backoff_max
        )
        self.coordinator: Optional[SubmissionCoordinator] = None

    def close(self) -> None:
        """Release the client's network resources."""
        self.client.close()

    def __enter__(self) -> "ScrobblerService":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def setup_signal_handlers(self) -> dict:
        """Route interrupts to the coordinator for a graceful stop.

        The first signal stops after the current batch; a second one aborts.

        Returns:
            Previous handlers, for restore_signal_handlers
        """

        def signal_handler(signum, frame):
            if self.coordinator is None or self.coordinator.cancelled:
                raise KeyboardInterrupt
            self.logger.info(f"Received signal {signum}, finishing current batch...")
            self.coordinator.cancel()

        previous = {signal.SIGINT: signal.signal(signal.SIGINT, signal_handler)}

        # Windows uses SIGBREAK, Linux/macOS use SIGTERM
        if is_windows():
            previous[signal.SIGBREAK] = signal.signal(signal.SIGBREAK, signal_handler)
        else:
            previous[signal.SIGTERM] = signal.signal(signal.SIGTERM, signal_handler)

        return previous

    @staticmethod
    def restore_signal_handlers(previous: dict) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    def run(self, options: RunOptions, password: Optional[str] = None) -> RunSummary:
        """Parse, normalize and submit the log named in options.

        Args:
            options: Per-run options
            password: Last.fm password, overriding the configured one

        Returns:
            Run summary

        Raises:
            ValueError: If API credentials are not configured
            OSError: If the log file cannot be read
        """
        credentials = self.settings.lastfm.credentials(password)

        self.coordinator = SubmissionCoordinator(
            client=self.client,
            credentials=credentials,
            logger=self.logger,
            parser=LogParser(logger=self.logger, strict=options.strict),
            batch_size=self.settings.submission.batch_size,
            abort_on_malformed=self.settings.submission.abort_on_malformed
        )

        self.logger.info(
            f"Scrobbling {options.log_path} with UTC offset {options.offset_hours:g}h"
        )

        previous = self.setup_signal_handlers()
        try:
            return self.coordinator.run_file(options.log_path, options.offset_hours)
        finally:
            self.restore_signal_handlers(previous)
