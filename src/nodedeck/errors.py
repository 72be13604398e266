"""Deterministic error model and exit code contract."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    INVALID_ARGS = 2
    CONFIG_ERROR = 3
    RUNTIME_ERROR = 4
    TRANSPORT_ERROR = 5
    REMOTE_ERROR = 6
    VALIDATION_ERROR = 7
    DIRECTORY_ERROR = 8


@dataclass
class NodeDeckError(Exception):
    message: str
    code: ExitCode = ExitCode.RUNTIME_ERROR
    hint: str = ""

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} Hint: {self.hint}"
        return self.message


@dataclass
class TransportOpenFailure(NodeDeckError):
    """The stream connection could not be established."""

    code: ExitCode = ExitCode.TRANSPORT_ERROR


@dataclass
class TransportError(NodeDeckError):
    """The stream connection failed after it was established."""

    code: ExitCode = ExitCode.TRANSPORT_ERROR


@dataclass
class RemoteError(NodeDeckError):
    """The remote end reported an application-level error."""

    code: ExitCode = ExitCode.REMOTE_ERROR


@dataclass
class NotConnected(NodeDeckError):
    code: ExitCode = ExitCode.TRANSPORT_ERROR


@dataclass
class DirectoryError(NodeDeckError):
    code: ExitCode = ExitCode.DIRECTORY_ERROR


@dataclass
class EmptyDirectory(NodeDeckError):
    code: ExitCode = ExitCode.DIRECTORY_ERROR


def user_facing_error(message: str, *, hint: str = "") -> str:
    message = message.rstrip(".")
    if hint:
        return f"Error: {message}. Next step: {hint}"
    return f"Error: {message}."
