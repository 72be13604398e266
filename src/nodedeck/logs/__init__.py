"""Log tail package."""

from .buffer import LogBuffer
from .parser import LogEntry, LogStream, parse_log_chunk, parse_log_line
from .session import LogTailSession

__all__ = [
    "LogBuffer",
    "LogEntry",
    "LogStream",
    "LogTailSession",
    "parse_log_chunk",
    "parse_log_line",
]
