"""Exec session and terminal surfaces."""

from .session import ExecSession
from .surface import MemoryTerminal, StreamTerminal, TerminalSurface

__all__ = [
    "ExecSession",
    "MemoryTerminal",
    "StreamTerminal",
    "TerminalSurface",
]
