"""Container stream transport package."""

from .messages import (
    Closed,
    Connected,
    EndOfStream,
    InputMessage,
    LogChunk,
    MessageReceived,
    OutputChunk,
    RawText,
    RemoteFailure,
    ResizeMessage,
    StreamMode,
    TransportEvent,
    TransportFault,
    TransportState,
    decode_inbound,
    encode_outbound,
)
from .session import SessionState, StreamSession
from .transport import StreamTransport, Transport, TransportHandle
from .urls import stream_url

__all__ = [
    "Closed",
    "Connected",
    "decode_inbound",
    "encode_outbound",
    "EndOfStream",
    "InputMessage",
    "LogChunk",
    "MessageReceived",
    "OutputChunk",
    "RawText",
    "RemoteFailure",
    "ResizeMessage",
    "SessionState",
    "StreamMode",
    "StreamSession",
    "stream_url",
    "StreamTransport",
    "Transport",
    "TransportEvent",
    "TransportFault",
    "TransportHandle",
    "TransportState",
]
