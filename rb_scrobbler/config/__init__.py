"""Configuration module for rb-scrobbler."""

from .settings import LastFmConfig, LoggingConfig, RunOptions, Settings, SubmissionConfig

__all__ = ["LastFmConfig", "LoggingConfig", "RunOptions", "Settings", "SubmissionConfig"]
