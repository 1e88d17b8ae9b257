"""Configuration management for rb-scrobbler."""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from ..core.client import LASTFM_API_ROOT, MAX_BATCH_SIZE
from ..core.normalizer import validate_offset
from ..models.session import Credentials
from ..utils.platform import get_config_dir


@dataclass
class LastFmConfig:
    """Last.fm API and account configuration."""

    api_key: str = ""
    api_secret: str = ""
    username: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)
    session_key: Optional[str] = field(default=None, repr=False)
    api_root: str = LASTFM_API_ROOT

    def credentials(self, password: Optional[str] = None) -> Credentials:
        """Build handshake credentials.

        Args:
            password: Overrides the configured password (e.g. typed at a prompt)

        Raises:
            ValueError: If the API key or secret is missing
        """
        if not self.api_key or not self.api_secret:
            raise ValueError("lastfm.api_key and lastfm.api_secret must be configured")

        return Credentials(
            api_key=self.api_key,
            api_secret=self.api_secret,
            username=self.username,
            password=password or self.password,
            session_key=self.session_key,
        )


@dataclass
class SubmissionConfig:
    """Batching and retry configuration."""

    batch_size: int = MAX_BATCH_SIZE
    max_attempts: int = 5
    backoff_base: float = 2.0
    backoff_max: float = 300.0
    timeout: float = 30.0
    abort_on_malformed: bool = False

    def __post_init__(self):
        """Validate configuration."""
        if not (1 <= self.batch_size <= MAX_BATCH_SIZE):
            raise ValueError(f"batch_size must be between 1 and {MAX_BATCH_SIZE}")

        if not (1 <= self.max_attempts <= 10):
            raise ValueError("max_attempts must be between 1 and 10")

        if self.backoff_base < 0 or self.backoff_max < self.backoff_base:
            raise ValueError("backoff_base must be >= 0 and <= backoff_max")

        if self.timeout <= 0:
            raise ValueError("timeout must be > 0 seconds")


@dataclass
class LoggingConfig:
    """Logging configuration."""

    path: Optional[Path] = None
    level: str = "INFO"
    max_size_mb: int = 10
    backup_count: int = 5

    def __post_init__(self):
        """Validate configuration and set defaults."""
        if self.path is None:
            self.path = get_config_dir() / 'rb-scrobbler.log'
        elif isinstance(self.path, str):
            self.path = Path(self.path).expanduser()

        # Validate log level
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.level.upper() not in valid_levels:
            raise ValueError(f"level must be one of {valid_levels}")


@dataclass
class Settings:
    """Main settings container."""

    lastfm: LastFmConfig = field(default_factory=LastFmConfig)
    submission: SubmissionConfig = field(default_factory=SubmissionConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, config_path: Path) -> 'Settings':
        """Load settings from YAML file.

        Args:
            config_path: Path to configuration file

        Returns:
            Settings instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with open(config_path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        if not isinstance(data, dict):
            raise ValueError(f"Configuration must be a mapping: {config_path}")

        try:
            return cls(
                lastfm=LastFmConfig(**(data.get('lastfm') or {})),
                submission=SubmissionConfig(**(data.get('submission') or {})),
                logging=LoggingConfig(**(data.get('logging') or {})),
            )
        except TypeError as e:
            # Unknown keys in a section
            raise ValueError(f"Invalid configuration in {config_path}: {e}") from e

    @classmethod
    def from_file_or_default(cls, config_path: Optional[Path] = None) -> 'Settings':
        """Load settings from file or return defaults.

        An explicitly given file that is broken is an error; only the
        default location falls back silently.

        Args:
            config_path: Path to configuration file (optional)

        Returns:
            Settings instance
        """
        if config_path is not None:
            return cls.from_file(config_path)

        config_path = get_config_dir() / 'config.yaml'
        if config_path.exists():
            try:
                return cls.from_file(config_path)
            except (OSError, ValueError, yaml.YAMLError) as e:
                logging.warning(f"Failed to load config from {config_path}: {e}")
                logging.warning("Using default configuration")
                return cls()
        else:
            logging.info(f"Config file not found at {config_path}, using defaults")
            return cls()

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save settings to YAML file.

        Args:
            config_path: Path to save configuration (default: config.yaml in config dir)
        """
        if config_path is None:
            config_path = get_config_dir() / 'config.yaml'

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            'lastfm': {
                'api_key': self.lastfm.api_key,
                'api_secret': self.lastfm.api_secret,
                'username': self.lastfm.username,
                'password': self.lastfm.password,
                'session_key': self.lastfm.session_key,
                'api_root': self.lastfm.api_root
            },
            'submission': {
                'batch_size': self.submission.batch_size,
                'max_attempts': self.submission.max_attempts,
                'backoff_base': self.submission.backoff_base,
                'backoff_max': self.submission.backoff_max,
                'timeout': self.submission.timeout,
                'abort_on_malformed': self.submission.abort_on_malformed
            },
            'logging': {
                'path': str(self.logging.path) if self.logging.path else None,
                'level': self.logging.level,
                'max_size_mb': self.logging.max_size_mb,
                'backup_count': self.logging.backup_count
            }
        }

        with open(config_path, 'w', encoding='utf-8') as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False, indent=2)


@dataclass(frozen=True)
class RunOptions:
    """Options for a single scrobble run, built once from the command line."""

    log_path: Path
    offset_hours: float = 0.0
    strict: bool = False

    def __post_init__(self):
        validate_offset(self.offset_hours)
