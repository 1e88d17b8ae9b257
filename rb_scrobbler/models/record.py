"""Log record data models."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..exceptions import LineError


class Rating(str, Enum):
    """Rating code written by the player for each play."""

    LISTENED = "L"
    SKIPPED = "S"


class Source(str, Enum):
    """Where the played track came from."""

    RADIO = "R"
    ALBUM = "A"
    BROADCAST = "B"
    FILE_SYSTEM = "F"
    UNKNOWN = "U"

    @property
    def chosen_by_user(self) -> bool:
        """Whether the listener picked the track themselves."""
        return self not in (Source.RADIO, Source.BROADCAST)


@dataclass(frozen=True)
class LogRecord:
    """One listening event from a .scrobbler.log file."""

    artist: str
    title: str
    duration_seconds: int
    rating: Rating
    timestamp: int  # Epoch seconds; local time until normalized
    album: str = ""
    track_number: Optional[int] = None
    source: Source = Source.FILE_SYSTEM
    music_brainz_id: Optional[str] = None
    line_number: int = 0

    @property
    def listened(self) -> bool:
        return self.rating is Rating.LISTENED

    def __str__(self) -> str:
        return f"{self.artist} - {self.title}"


@dataclass
class LogFile:
    """Parsed log: header metadata, records in file order and line diagnostics."""

    version: str
    timezone: str = "UNKNOWN"
    client: Optional[str] = None
    records: List[LogRecord] = field(default_factory=list)
    diagnostics: List[LineError] = field(default_factory=list)

    @property
    def is_utc(self) -> bool:
        """True when the device declared its clock as UTC (#TZ/UTC)."""
        return self.timezone.upper() == "UTC"

    @property
    def client_name(self) -> Optional[str]:
        parts = self._client_parts()
        return parts[0] if parts else None

    @property
    def client_version(self) -> Optional[str]:
        parts = self._client_parts()
        return parts[-1] if len(parts) > 1 else None

    @property
    def device(self) -> Optional[str]:
        """Device model, e.g. 'sansae200' in '#CLIENT/Rockbox sansae200 $Revision$'."""
        parts = self._client_parts()
        return " ".join(parts[1:-1]) if len(parts) > 2 else None

    def _client_parts(self) -> List[str]:
        return self.client.split() if self.client else []
