"""Terminal surfaces that exec sessions render into."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol, TextIO

from nodedeck.errors import ExitCode, NodeDeckError

InputCallback = Callable[[str], None]
ResizeCallback = Callable[[int, int], None]

RESET = "\x1b[0m"
RED = "\x1b[31m"
GREEN = "\x1b[32m"
YELLOW = "\x1b[33m"


def colored(text: str, color: str) -> str:
    return f"{color}{text}{RESET}"


class TerminalSurface(Protocol):
    cols: int
    rows: int

    def write(self, data: str) -> None: ...

    def writeln(self, line: str) -> None: ...

    def clear(self) -> None: ...

    def focus(self) -> None: ...

    def on_input(self, callback: InputCallback) -> None: ...

    def on_resize(self, callback: ResizeCallback) -> None: ...


def _validate_size(cols: int, rows: int) -> None:
    if cols <= 0 or rows <= 0:
        raise NodeDeckError(
            f"Invalid terminal size: {cols}x{rows}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Use positive terminal row/column values.",
        )


class _CallbackSurface:
    def __init__(self, *, cols: int = 80, rows: int = 24) -> None:
        _validate_size(cols, rows)
        self.cols = cols
        self.rows = rows
        self._input_callbacks: list[InputCallback] = []
        self._resize_callbacks: list[ResizeCallback] = []

    def on_input(self, callback: InputCallback) -> None:
        self._input_callbacks.append(callback)

    def on_resize(self, callback: ResizeCallback) -> None:
        self._resize_callbacks.append(callback)

    def feed_input(self, data: str) -> None:
        """Emit one input event, as a keystroke or paste would."""
        if not data:
            return
        for callback in list(self._input_callbacks):
            callback(data)

    def resize(self, cols: int, rows: int) -> None:
        _validate_size(cols, rows)
        if (cols, rows) == (self.cols, self.rows):
            return
        self.cols = cols
        self.rows = rows
        for callback in list(self._resize_callbacks):
            callback(cols, rows)


class MemoryTerminal(_CallbackSurface):
    """Keeps everything written since the last clear."""

    def __init__(self, *, cols: int = 80, rows: int = 24) -> None:
        super().__init__(cols=cols, rows=rows)
        self._chunks: list[str] = []
        self.focused = False
        self.clear_count = 0

    def write(self, data: str) -> None:
        self._chunks.append(data)

    def writeln(self, line: str) -> None:
        self._chunks.append(f"{line}\r\n")

    def clear(self) -> None:
        self._chunks.clear()
        self.clear_count += 1

    def focus(self) -> None:
        self.focused = True

    @property
    def text(self) -> str:
        return "".join(self._chunks)

    def lines(self) -> list[str]:
        return self.text.replace("\r\n", "\n").split("\n")


class StreamTerminal(_CallbackSurface):
    """Writes straight through to a text stream, e.g. the controlling tty."""

    def __init__(self, stream: TextIO, *, cols: int = 80, rows: int = 24) -> None:
        super().__init__(cols=cols, rows=rows)
        self._stream = stream

    def write(self, data: str) -> None:
        self._stream.write(data)
        self._stream.flush()

    def writeln(self, line: str) -> None:
        self.write(f"{line}\r\n")

    def clear(self) -> None:
        # Clear screen and home the cursor.
        self.write("\x1b[2J\x1b[H")

    def focus(self) -> None:
        return None
