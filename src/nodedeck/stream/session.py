"""Shared lifecycle for sessions that own one stream transport handle."""

from __future__ import annotations

import logging as py_logging
from collections.abc import Callable
from enum import Enum
from functools import partial

from typing_extensions import assert_never

from nodedeck.errors import (
    ExitCode,
    NodeDeckError,
    RemoteError,
    TransportError,
    TransportOpenFailure,
)
from nodedeck.stream.messages import (
    Closed,
    Connected,
    EndOfStream,
    LogChunk,
    MessageReceived,
    OutputChunk,
    RawText,
    RemoteFailure,
    StreamMode,
    TransportEvent,
    TransportFault,
)
from nodedeck.stream.transport import Transport, TransportHandle

logger = py_logging.getLogger(__name__)

DataMessage = LogChunk | OutputChunk | RawText


class SessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    PAUSED = "paused"
    CLOSED = "closed"
    ERROR = "error"


_LIVE_PHASES = {SessionState.CONNECTING, SessionState.CONNECTED}


class StreamSession:
    """Owns at most one transport handle and applies its events in order.

    Starting or releasing bumps the session generation; events carrying an
    older generation are ignored, so output from a released handle never
    reaches the view of the next one.
    """

    mode: StreamMode

    def __init__(self, transport: Transport) -> None:
        self._transport = transport
        self._handle: TransportHandle | None = None
        self._generation = 0
        self._phase = SessionState.IDLE
        self._change_listeners: list[Callable[[], None]] = []
        self.container = ""
        self.error: NodeDeckError | None = None

    @property
    def state(self) -> SessionState:
        return self._phase

    @property
    def handle(self) -> TransportHandle | None:
        return self._handle

    @property
    def is_connected(self) -> bool:
        return self._phase == SessionState.CONNECTED and self._handle is not None

    def add_change_listener(self, callback: Callable[[], None]) -> None:
        self._change_listeners.append(callback)

    def start(self, container: str) -> None:
        name = container.strip()
        if not name:
            raise NodeDeckError(
                "Container name is required.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Select a container before starting a session.",
            )
        self._release()
        self.container = name
        self.error = None
        self._reset_view()
        self._phase = SessionState.CONNECTING
        self._generation += 1
        generation = self._generation
        logger.info("session-event mode=%s step=start container=%s", self.mode.value, name)
        try:
            handle = self._transport.open(name, self.mode, partial(self._dispatch, generation))
        except NodeDeckError as exc:
            self._fail(TransportOpenFailure(exc.message, hint=exc.hint), f"Connection error: {exc.message}")
            self._notify()
            return
        if generation == self._generation and self._phase in _LIVE_PHASES:
            self._handle = handle
        else:
            # Terminal event was delivered while opening.
            self._transport.close(handle)
        self._notify()

    def reconnect(self) -> None:
        if not self.container:
            raise NodeDeckError(
                "No container selected.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Select a container before reconnecting.",
            )
        self.start(self.container)

    def stop(self) -> None:
        self._release()
        if self._phase in _LIVE_PHASES:
            self._phase = SessionState.CLOSED
        logger.info("session-event mode=%s step=stop container=%s", self.mode.value, self.container)
        self._notify()

    def _dispatch(self, generation: int, event: TransportEvent) -> None:
        if generation != self._generation:
            logger.debug(
                "session-event mode=%s step=stale-drop generation=%s current=%s",
                self.mode.value,
                generation,
                self._generation,
            )
            return
        if isinstance(event, Connected):
            self._phase = SessionState.CONNECTED
            self._on_connected()
        elif isinstance(event, MessageReceived):
            self._handle_message(event.message)
        elif isinstance(event, Closed):
            self._release()
            self._phase = SessionState.CLOSED
            self._render_closed()
        elif isinstance(event, TransportFault):
            if event.during_open or self._phase == SessionState.CONNECTING:
                error: NodeDeckError = TransportOpenFailure(
                    f"Could not connect to {self.container}: {event.detail}",
                    hint="Check that the container exists and reconnect.",
                )
            else:
                error = TransportError(
                    f"Stream to {self.container} failed: {event.detail}",
                    hint="Reconnect to resume the session.",
                )
            self._fail(error, f"Connection error: {event.detail}")
        else:
            assert_never(event)
        self._notify()

    def _handle_message(self, message: LogChunk | OutputChunk | RemoteFailure | EndOfStream | RawText) -> None:
        if isinstance(message, RemoteFailure):
            text = message.message or "Remote end reported an error"
            self._fail(
                RemoteError(text, hint="Reconnect once the container is healthy."),
                f"Error: {text}",
            )
        elif isinstance(message, EndOfStream):
            self._release()
            self._phase = SessionState.CLOSED
            self._render_closed()
        elif isinstance(message, (LogChunk, OutputChunk, RawText)):
            self._on_data(message)
        else:
            assert_never(message)

    def _fail(self, error: NodeDeckError, line: str) -> None:
        logger.warning(
            "session-event mode=%s step=error container=%s message=%s",
            self.mode.value,
            self.container,
            error.message,
        )
        self._release()
        self.error = error
        self._phase = SessionState.ERROR
        self._render_failure(line)

    def _release(self) -> None:
        handle = self._handle
        self._handle = None
        self._generation += 1
        if handle is not None:
            self._transport.close(handle)

    def _notify(self) -> None:
        for callback in list(self._change_listeners):
            callback()

    def _reset_view(self) -> None:
        raise NotImplementedError

    def _on_connected(self) -> None:
        raise NotImplementedError

    def _on_data(self, message: DataMessage) -> None:
        raise NotImplementedError

    def _render_failure(self, line: str) -> None:
        raise NotImplementedError

    def _render_closed(self) -> None:
        raise NotImplementedError
