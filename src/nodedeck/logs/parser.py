"""Container log line parsing."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum

_TIMESTAMP_PREFIX = re.compile(
    r"^(?P<stamp>\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2})(?P<fraction>\.\d+)?(?P<zone>Z|[+-]\d{2}:?\d{2})?\s*(?P<message>.*)$",
    re.DOTALL,
)


class LogStream(str, Enum):
    STDOUT = "stdout"
    STDERR = "stderr"


@dataclass(frozen=True)
class LogEntry:
    timestamp: datetime
    message: str
    stream: LogStream = LogStream.STDOUT


Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def parse_timestamp(stamp: str, fraction: str = "", zone: str = "") -> datetime | None:
    # Runtime timestamps carry nanoseconds; datetime stops at microseconds.
    digits = fraction.lstrip(".")[:6].ljust(6, "0") if fraction else "000000"
    offset = "+00:00" if not zone or zone == "Z" else zone
    if len(offset) == 5:
        offset = f"{offset[:3]}:{offset[3:]}"
    try:
        return datetime.fromisoformat(f"{stamp}.{digits}{offset}")
    except ValueError:
        return None


def parse_log_line(line: str, *, received_at: datetime) -> LogEntry:
    match = _TIMESTAMP_PREFIX.match(line)
    if match:
        parsed = parse_timestamp(match["stamp"], match["fraction"] or "", match["zone"] or "")
        if parsed is not None:
            return LogEntry(timestamp=parsed, message=match["message"])
    return LogEntry(timestamp=received_at, message=line)


def parse_log_chunk(data: str, *, clock: Clock = utc_now) -> list[LogEntry]:
    """Split a raw chunk into entries, skipping blank lines."""
    lines = [line.rstrip("\r") for line in data.split("\n")]
    lines = [line for line in lines if line.strip()]
    if not lines:
        return []
    received_at = clock()
    return [parse_log_line(line, received_at=received_at) for line in lines]
