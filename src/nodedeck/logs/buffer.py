"""Bounded, append-ordered log entry buffer."""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Iterator

from nodedeck.errors import ExitCode, NodeDeckError
from nodedeck.logs.parser import LogEntry

DEFAULT_CAPACITY = 1000


class LogBuffer:
    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 1:
            raise NodeDeckError(
                f"Invalid log buffer capacity: {capacity}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use a capacity of at least 1 entry.",
            )
        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self.evicted = 0

    def append(self, entry: LogEntry) -> None:
        if len(self._entries) == self.capacity:
            self.evicted += 1
        self._entries.append(entry)

    def extend(self, entries: Iterable[LogEntry]) -> None:
        for entry in entries:
            self.append(entry)

    def clear(self) -> None:
        self._entries.clear()

    def snapshot(self) -> list[LogEntry]:
        return list(self._entries)

    def latest(self) -> LogEntry | None:
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[LogEntry]:
        return iter(self.snapshot())
