"""Wire messages exchanged over container stream endpoints."""

from __future__ import annotations

import json
import logging as py_logging
from dataclasses import dataclass
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

logger = py_logging.getLogger(__name__)


class StreamMode(str, Enum):
    LOGS = "logs"
    EXEC = "exec"


class TransportState(str, Enum):
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSED = "closed"
    FAILED = "failed"


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")


class LogChunk(_WireModel):
    type: Literal["log"] = "log"
    data: str = ""


class OutputChunk(_WireModel):
    type: Literal["output"] = "output"
    data: str = ""


class RemoteFailure(_WireModel):
    type: Literal["error"] = "error"
    message: str = ""


class EndOfStream(_WireModel):
    type: Literal["end"] = "end"


class RawText(_WireModel):
    """Frame that was not a JSON object; carried through verbatim."""

    type: Literal["raw"] = "raw"
    data: str = ""


class InputMessage(_WireModel):
    type: Literal["input"] = "input"
    data: str


class ResizeMessage(_WireModel):
    type: Literal["resize"] = "resize"
    cols: int = Field(gt=0)
    rows: int = Field(gt=0)


InboundMessage = Annotated[
    Union[LogChunk, OutputChunk, RemoteFailure, EndOfStream],
    Field(discriminator="type"),
]
OutboundMessage = Union[InputMessage, ResizeMessage]

_INBOUND = TypeAdapter(InboundMessage)


@dataclass(frozen=True)
class Connected:
    pass


@dataclass(frozen=True)
class MessageReceived:
    message: LogChunk | OutputChunk | RemoteFailure | EndOfStream | RawText


@dataclass(frozen=True)
class Closed:
    reason: str = ""


@dataclass(frozen=True)
class TransportFault:
    detail: str
    during_open: bool = False


TransportEvent = Union[Connected, MessageReceived, Closed, TransportFault]


def decode_inbound(frame: str | bytes) -> LogChunk | OutputChunk | RemoteFailure | EndOfStream | RawText | None:
    """Decode one inbound frame.

    Non-JSON frames come back as ``RawText``. JSON objects with an unknown
    ``type`` tag return ``None`` and are meant to be dropped by the caller.
    """
    text = frame.decode("utf-8", errors="replace") if isinstance(frame, bytes) else frame
    try:
        payload = json.loads(text)
    except json.JSONDecodeError:
        return RawText(data=text)
    if not isinstance(payload, dict):
        return RawText(data=text)
    try:
        return _INBOUND.validate_python(payload)
    except ValidationError:
        logger.debug("stream-frame dropped type=%r", payload.get("type"))
        return None


def encode_outbound(message: OutboundMessage) -> str:
    return message.model_dump_json()
