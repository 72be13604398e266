"""Live log tail session over a logs-mode stream."""

from __future__ import annotations

import logging as py_logging
from collections import deque
from collections.abc import Callable
from typing import Literal

from nodedeck.logs.buffer import DEFAULT_CAPACITY, LogBuffer
from nodedeck.logs.parser import Clock, LogEntry, LogStream, parse_log_chunk, utc_now
from nodedeck.stream.messages import LogChunk, OutputChunk, RawText, StreamMode
from nodedeck.stream.session import SessionState, StreamSession
from nodedeck.stream.transport import Transport

logger = py_logging.getLogger(__name__)

PausePolicy = Literal["drop", "buffer"]
AppendListener = Callable[[list[LogEntry]], None]


class LogTailSession(StreamSession):
    """Tails one container's log stream into a bounded buffer.

    While paused, data messages follow ``pause_policy``: ``drop`` discards
    them, ``buffer`` holds up to ``capacity`` of the newest entries and
    appends them on resume. End and error messages are applied either way.
    """

    mode = StreamMode.LOGS

    def __init__(
        self,
        transport: Transport,
        *,
        capacity: int = DEFAULT_CAPACITY,
        pause_policy: PausePolicy = "drop",
        clock: Clock = utc_now,
    ) -> None:
        super().__init__(transport)
        self.buffer = LogBuffer(capacity)
        self.pause_policy = pause_policy
        self._clock = clock
        self._paused = False
        self._held: deque[LogEntry] = deque(maxlen=capacity)
        self._append_listeners: list[AppendListener] = []
        self.dropped_while_paused = 0

    @property
    def state(self) -> SessionState:
        if self._paused and self._phase == SessionState.CONNECTED:
            return SessionState.PAUSED
        return self._phase

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def follow_tail(self) -> bool:
        """Whether a view should keep the newest entry visible."""
        return not self._paused

    def entries(self) -> list[LogEntry]:
        return self.buffer.snapshot()

    def add_append_listener(self, callback: AppendListener) -> None:
        self._append_listeners.append(callback)

    def pause(self) -> None:
        if self._paused:
            return
        self._paused = True
        logger.info("session-event mode=logs step=pause container=%s", self.container)
        self._notify()

    def resume(self) -> None:
        if not self._paused:
            return
        self._paused = False
        logger.info(
            "session-event mode=logs step=resume container=%s flushed=%s dropped=%s",
            self.container,
            len(self._held),
            self.dropped_while_paused,
        )
        self._flush_held()
        self._notify()

    def toggle_pause(self) -> bool:
        if self._paused:
            self.resume()
        else:
            self.pause()
        return self._paused

    def clear(self) -> None:
        self.buffer.clear()
        self._notify()

    def _reset_view(self) -> None:
        self.buffer.clear()
        self._held.clear()
        self.dropped_while_paused = 0

    def _on_connected(self) -> None:
        logger.info("session-event mode=logs step=connected container=%s", self.container)

    def _on_data(self, message: LogChunk | OutputChunk | RawText) -> None:
        entries = parse_log_chunk(message.data, clock=self._clock)
        if not entries:
            return
        if self._paused:
            if self.pause_policy == "buffer":
                self._held.extend(entries)
            else:
                self.dropped_while_paused += len(entries)
            return
        self._append(entries)

    def _render_failure(self, line: str) -> None:
        self._flush_held()
        self._append([self._synthetic(line)])

    def _render_closed(self) -> None:
        self._flush_held()
        self._append([self._synthetic("Log stream ended")])

    def _flush_held(self) -> None:
        # Held entries were received before anything rendered after them.
        if not self._held:
            return
        held = list(self._held)
        self._held.clear()
        self._append(held)

    def _synthetic(self, message: str) -> LogEntry:
        return LogEntry(timestamp=self._clock(), message=message, stream=LogStream.STDERR)

    def _append(self, entries: list[LogEntry]) -> None:
        self.buffer.extend(entries)
        for callback in list(self._append_listeners):
            callback(entries)
