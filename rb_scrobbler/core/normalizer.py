"""Local time to UTC conversion for log timestamps."""

import logging
import time
from dataclasses import replace
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, List, Optional

from ..models.record import LogFile, LogRecord

SECONDS_PER_HOUR = 3600

# Real-world UTC offsets range from UTC-12 to UTC+14.
MAX_OFFSET_HOURS = 14


def validate_offset(offset_hours: float) -> float:
    """Check that an offset is a plausible UTC offset.

    Raises:
        ValueError: If the offset is not finite or outside [-14, +14] hours
    """
    if offset_hours != offset_hours or abs(offset_hours) > MAX_OFFSET_HOURS:
        raise ValueError(
            f"offset must be between -{MAX_OFFSET_HOURS} and +{MAX_OFFSET_HOURS} hours, "
            f"got {offset_hours}"
        )
    return offset_hours


def offset_seconds(offset_hours: float) -> int:
    """Convert an hour offset to whole seconds.

    Rounds to the nearest second with ties away from zero. The offset is
    taken at its shortest decimal rendering, so 5.5 is exactly 19800.
    """
    seconds = Decimal(repr(float(offset_hours))) * SECONDS_PER_HOUR
    return int(seconds.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def normalize(record: LogRecord, offset_hours: float) -> LogRecord:
    """Rewrite a record's local timestamp to UTC.

    Stateless: calling it twice shifts twice. A zero offset returns the
    record unchanged.
    """
    shift = offset_seconds(offset_hours)
    if shift == 0:
        return record
    return replace(record, timestamp=record.timestamp - shift)


def normalize_log(
    log: LogFile,
    offset_hours: float,
    clock: Callable[[], float] = time.time,
    logger: Optional[logging.Logger] = None,
) -> List[LogRecord]:
    """Convert every record of a parsed log to UTC, once each.

    A log that declares #TZ/UTC is never shifted. Records with timestamp 0
    come from players without a real-time clock and are dated with the
    current local time before the shift.

    Args:
        log: Parsed log
        offset_hours: Player's local time minus UTC, in hours
        clock: Current epoch time
        logger: Logger instance

    Returns:
        Normalized records in file order
    """
    logger = logger or logging.getLogger(__name__)

    if log.is_utc and offset_hours:
        logger.warning(f"Log declares UTC timestamps, ignoring offset of {offset_hours:g}h")
        offset_hours = 0.0

    local_now = int(clock()) + offset_seconds(offset_hours)
    undated = 0
    records = []
    for record in log.records:
        if record.timestamp == 0:
            record = replace(record, timestamp=local_now)
            undated += 1
        records.append(normalize(record, offset_hours))

    if undated:
        logger.warning(f"{undated} record(s) had no timestamp, dated with current time")
    return records
