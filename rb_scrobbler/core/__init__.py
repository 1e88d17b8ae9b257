"""Core pipeline for rb-scrobbler."""

from .client import LastFmClient, ScrobbleClient
from .coordinator import SubmissionCoordinator, make_batches
from .normalizer import normalize, offset_seconds
from .parser import LogParser

__all__ = [
    "LastFmClient",
    "LogParser",
    "ScrobbleClient",
    "SubmissionCoordinator",
    "make_batches",
    "normalize",
    "offset_seconds",
]
