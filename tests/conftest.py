from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from pathlib import Path

import pytest

from nodedeck.errors import NotConnected
from nodedeck.stream import (
    Closed,
    Connected,
    EndOfStream,
    LogChunk,
    MessageReceived,
    OutputChunk,
    RemoteFailure,
    StreamMode,
    TransportFault,
    TransportHandle,
    TransportState,
)

_SECURITY_TEST_FILES = {
    "test_directory.py",
    "test_stream_urls.py",
}


@pytest.hookimpl(trylast=True)
def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    del config
    for item in items:
        path = Path(str(getattr(item, "path", item.fspath)))
        name = path.name

        if "integration" in path.parts:
            item.add_marker(pytest.mark.integration)
            item.add_marker(pytest.mark.slow)

        if name in _SECURITY_TEST_FILES:
            item.add_marker(pytest.mark.security)


@dataclass
class _FakeChannel:
    handle: TransportHandle
    listener: object
    state: TransportState = TransportState.CONNECTING


@dataclass
class FakeTransport:
    """Synchronous transport double; tests push events by hand.

    Events pushed to a closed handle still reach its listener, so the
    session's own stale-event guard is what keeps them out.
    """

    opened: list[TransportHandle] = field(default_factory=list)
    closed: list[TransportHandle] = field(default_factory=list)
    sent: list[tuple[TransportHandle, object]] = field(default_factory=list)
    fail_open: Exception | None = None
    _channels: dict[int, _FakeChannel] = field(default_factory=dict)
    _ids: itertools.count = field(default_factory=lambda: itertools.count(1))

    def open(self, container: str, mode: StreamMode, listener) -> TransportHandle:
        if self.fail_open is not None:
            raise self.fail_open
        generation = next(self._ids)
        handle = TransportHandle(
            generation=generation,
            container=container,
            mode=mode,
            url=f"ws://fake/ws/docker/{mode.value}/{container}",
        )
        self._channels[generation] = _FakeChannel(handle=handle, listener=listener)
        self.opened.append(handle)
        return handle

    def send(self, handle: TransportHandle, message: object) -> None:
        if self.state(handle) != TransportState.CONNECTED:
            raise NotConnected(f"Stream to {handle.container} is not connected.")
        self.sent.append((handle, message))

    def close(self, handle: TransportHandle) -> None:
        channel = self._channels.get(handle.generation)
        if channel is None or channel.state == TransportState.CLOSED:
            return
        channel.state = TransportState.CLOSED
        self.closed.append(handle)

    def state(self, handle: TransportHandle) -> TransportState:
        channel = self._channels.get(handle.generation)
        if channel is None:
            return TransportState.CLOSED
        return channel.state

    @property
    def latest(self) -> TransportHandle:
        return self.opened[-1]

    def emit(self, handle: TransportHandle, event: object) -> None:
        self._channels[handle.generation].listener(event)

    def connect(self, handle: TransportHandle | None = None) -> None:
        target = handle or self.latest
        self._channels[target.generation].state = TransportState.CONNECTED
        self.emit(target, Connected())

    def log(self, data: str, handle: TransportHandle | None = None) -> None:
        self.emit(handle or self.latest, MessageReceived(LogChunk(data=data)))

    def output(self, data: str, handle: TransportHandle | None = None) -> None:
        self.emit(handle or self.latest, MessageReceived(OutputChunk(data=data)))

    def remote_error(self, message: str, handle: TransportHandle | None = None) -> None:
        self.emit(handle or self.latest, MessageReceived(RemoteFailure(message=message)))

    def end(self, handle: TransportHandle | None = None) -> None:
        self.emit(handle or self.latest, MessageReceived(EndOfStream()))

    def sever(self, handle: TransportHandle | None = None) -> None:
        """Mark the socket gone before its close event reaches the listener."""
        target = handle or self.latest
        self._channels[target.generation].state = TransportState.CLOSED

    def drop(self, reason: str = "", handle: TransportHandle | None = None) -> None:
        target = handle or self.latest
        self._channels[target.generation].state = TransportState.CLOSED
        self.emit(target, Closed(reason=reason))

    def fault(self, detail: str, *, during_open: bool = False, handle: TransportHandle | None = None) -> None:
        target = handle or self.latest
        self._channels[target.generation].state = TransportState.FAILED
        self.emit(target, TransportFault(detail=detail, during_open=during_open))


@pytest.fixture
def transport() -> FakeTransport:
    return FakeTransport()
