"""Interactive exec session rendered into a terminal surface."""

from __future__ import annotations

import logging as py_logging

from nodedeck.errors import ExitCode, NodeDeckError, NotConnected
from nodedeck.terminal.surface import GREEN, RED, YELLOW, TerminalSurface, colored
from nodedeck.stream.messages import InputMessage, LogChunk, OutputChunk, RawText, ResizeMessage, StreamMode
from nodedeck.stream.session import SessionState, StreamSession
from nodedeck.stream.transport import Transport

logger = py_logging.getLogger(__name__)


class ExecSession(StreamSession):
    mode = StreamMode.EXEC

    def __init__(self, transport: Transport, surface: TerminalSurface) -> None:
        super().__init__(transport)
        self.surface = surface
        self.rejected_inputs = 0
        surface.on_input(self._handle_input)
        surface.on_resize(self._handle_resize)

    def reconnect(self) -> None:
        self.surface.clear()
        super().reconnect()

    def send_input(self, data: str) -> None:
        handle = self.handle
        if handle is None or self.state != SessionState.CONNECTED:
            raise NotConnected(
                "Terminal session is not connected.",
                hint="Reconnect before typing into the terminal.",
            )
        self._transport.send(handle, InputMessage(data=data))

    def send_resize(self, cols: int, rows: int) -> None:
        if cols <= 0 or rows <= 0:
            raise NodeDeckError(
                f"Invalid terminal size: {cols}x{rows}",
                code=ExitCode.VALIDATION_ERROR,
                hint="Use positive terminal row/column values.",
            )
        handle = self.handle
        if handle is None or self.state != SessionState.CONNECTED:
            raise NotConnected(
                "Terminal session is not connected.",
                hint="The size is sent again on the next connect.",
            )
        self._transport.send(handle, ResizeMessage(cols=cols, rows=rows))

    def _handle_input(self, data: str) -> None:
        try:
            self.send_input(data)
        except NotConnected:
            self.rejected_inputs += 1
            logger.warning(
                "session-event mode=exec step=input-rejected container=%s state=%s",
                self.container,
                self.state.value,
            )

    def _handle_resize(self, cols: int, rows: int) -> None:
        if not self.is_connected:
            logger.debug("session-event mode=exec step=resize-deferred cols=%s rows=%s", cols, rows)
            return
        try:
            self.send_resize(cols, rows)
        except NotConnected:
            logger.warning(
                "session-event mode=exec step=resize-rejected container=%s cols=%s rows=%s",
                self.container,
                cols,
                rows,
            )

    def _reset_view(self) -> None:
        self.surface.clear()
        self.surface.writeln(colored(f"Connecting to {self.container}...", YELLOW))

    def _on_connected(self) -> None:
        logger.info("session-event mode=exec step=connected container=%s", self.container)
        self.surface.clear()
        self.surface.writeln(colored(f"Connected to {self.container}", GREEN))
        self.surface.writeln("")
        self.surface.focus()
        if self.is_connected:
            self.send_resize(self.surface.cols, self.surface.rows)

    def _on_data(self, message: LogChunk | OutputChunk | RawText) -> None:
        self.surface.write(message.data)

    def _render_failure(self, line: str) -> None:
        self.surface.writeln(colored(line, RED))

    def _render_closed(self) -> None:
        self.surface.writeln("")
        self.surface.writeln(colored("Connection closed", YELLOW))
