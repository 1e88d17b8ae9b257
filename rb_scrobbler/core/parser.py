"""Parser for Audioscrobbler .scrobbler.log files."""

import logging
import re
from pathlib import Path
from typing import Optional

from ..exceptions import (
    LineError,
    MalformedLineError,
    ParseError,
    UnsupportedVersionError,
    ValidationError,
)
from ..models.record import LogFile, LogRecord, Rating, Source

HEADER_PREFIX = "#AUDIOSCROBBLER/"
TIMEZONE_PREFIX = "#TZ/"
CLIENT_PREFIX = "#CLIENT/"
SEPARATOR = "\t"

# Number of tab-separated fields per record line, by format version.
# 1.1 added the trailing MusicBrainz track id.
FIELD_COUNTS = {
    "1.0": 7,
    "1.1": 8,
}

INT64_MIN = -(2 ** 63)
INT64_MAX = 2 ** 63 - 1
INTEGER_PATTERN = re.compile(r"-?[0-9]+")


class LogParser:
    """Turns raw .scrobbler.log text into a LogFile."""

    def __init__(self, logger: Optional[logging.Logger] = None, strict: bool = False):
        """Initialize parser.

        Args:
            logger: Logger instance
            strict: Raise the first line error instead of collecting it
        """
        self.logger = logger or logging.getLogger(__name__)
        self.strict = strict

    def parse_file(self, path: Path) -> LogFile:
        """Read and parse a log file from disk.

        Raises:
            OSError: If the file cannot be read
            ParseError: If the content is not a supported log
        """
        self.logger.debug(f"Reading log file {path}")
        return self.parse_bytes(Path(path).read_bytes())

    def parse_bytes(self, raw: bytes) -> LogFile:
        """Decode UTF-8 content (a leading BOM is tolerated) and parse it."""
        try:
            text = raw.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"Log file is not valid UTF-8: {e}") from e
        return self.parse(text)

    def parse(self, raw_text: str) -> LogFile:
        """Parse log text.

        Args:
            raw_text: Whole file content

        Returns:
            LogFile with records in file order and collected line errors

        Raises:
            UnsupportedVersionError: If the header is missing or unsupported
            LineError: On the first bad line, only when strict
        """
        lines = raw_text.split("\n")
        version = self._parse_header(lines[0])
        log = LogFile(version=version)
        expected_fields = FIELD_COUNTS[version]

        for index, line in enumerate(lines[1:], start=2):
            line = line.rstrip("\r")
            if not line.strip():
                continue

            if line.startswith("#"):
                self._parse_metadata(log, line)
                continue

            try:
                record = self.parse_line(line, index, expected_fields)
            except LineError as e:
                if self.strict:
                    raise
                self.logger.warning(f"Skipping {e}")
                log.diagnostics.append(e)
                continue

            log.records.append(record)

        self.logger.info(
            f"Parsed {len(log.records)} record(s) from log version {version}, "
            f"{len(log.diagnostics)} line(s) rejected"
        )
        return log

    def _parse_header(self, first_line: str) -> str:
        first_line = first_line.strip()
        if not first_line.startswith(HEADER_PREFIX):
            raise UnsupportedVersionError()

        version = first_line[len(HEADER_PREFIX):].strip()
        if version not in FIELD_COUNTS:
            raise UnsupportedVersionError(version)
        return version

    def _parse_metadata(self, log: LogFile, line: str) -> None:
        if line.startswith(TIMEZONE_PREFIX):
            log.timezone = line[len(TIMEZONE_PREFIX):].strip() or "UNKNOWN"
        elif line.startswith(CLIENT_PREFIX):
            log.client = line[len(CLIENT_PREFIX):].strip() or None
        else:
            self.logger.debug(f"Ignoring unknown header line: {line}")

    def parse_line(self, line: str, line_number: int, expected_fields: int = 8) -> LogRecord:
        """Convert one record line into a LogRecord.

        Raises:
            MalformedLineError: If the field count is wrong
            ValidationError: If a field value is invalid
        """
        fields = line.split(SEPARATOR)
        if len(fields) != expected_fields:
            raise MalformedLineError(line_number, expected_fields, len(fields))

        artist, album, title, track_number, duration, rating, timestamp = fields[:7]
        mbid = fields[7] if expected_fields > 7 else ""

        if not artist.strip():
            raise ValidationError(line_number, "artist", "must not be empty")
        if not title.strip():
            raise ValidationError(line_number, "title", "must not be empty")

        duration_seconds = _parse_int(duration, line_number, "duration")
        if duration_seconds <= 0:
            raise ValidationError(line_number, "duration", "must be greater than zero")

        track = None
        if track_number.strip():
            track = _parse_int(track_number, line_number, "track number")
            if track < 0:
                raise ValidationError(line_number, "track number", "must not be negative")

        try:
            rating_code = Rating(rating.strip())
        except ValueError:
            raise ValidationError(line_number, "rating", f"unknown code {rating!r}") from None

        ts = _parse_int(timestamp, line_number, "timestamp")
        if not INT64_MIN <= ts <= INT64_MAX:
            raise ValidationError(line_number, "timestamp", "out of range")

        return LogRecord(
            artist=artist.strip(),
            album=album.strip(),
            title=title.strip(),
            track_number=track,
            duration_seconds=duration_seconds,
            rating=rating_code,
            timestamp=ts,
            source=Source.FILE_SYSTEM,
            music_brainz_id=mbid.strip() or None,
            line_number=line_number,
        )


def _parse_int(value: str, line_number: int, field: str) -> int:
    value = value.strip()
    if not INTEGER_PATTERN.fullmatch(value):
        raise ValidationError(line_number, field, f"not an integer: {value!r}")
    return int(value)


def parse(raw_text: str, strict: bool = False) -> LogFile:
    """Parse log text with a default parser."""
    return LogParser(strict=strict).parse(raw_text)
