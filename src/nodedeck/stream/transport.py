"""Websocket-backed stream transport for container log and exec endpoints."""

from __future__ import annotations

import asyncio
import itertools
import logging as py_logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass, field
from typing import Protocol

from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed, ConnectionClosedError

from nodedeck.errors import ExitCode, NodeDeckError, NotConnected
from nodedeck.stream.messages import (
    Closed,
    Connected,
    MessageReceived,
    OutboundMessage,
    StreamMode,
    TransportEvent,
    TransportFault,
    TransportState,
    decode_inbound,
    encode_outbound,
)
from nodedeck.stream.urls import stream_url

logger = py_logging.getLogger(__name__)

Listener = Callable[[TransportEvent], None]


class StreamConnection(Protocol):
    async def send(self, message: str) -> None: ...

    async def close(self) -> None: ...

    def __aiter__(self) -> AsyncIterator[str | bytes]: ...


Connector = Callable[[str, dict[str, str]], Awaitable[StreamConnection]]


async def _connect_with_websockets(url: str, headers: dict[str, str]) -> StreamConnection:
    # No open timeout and no keepalive pings: a hung stream is resolved by reconnect.
    return await connect(
        url,
        additional_headers=headers or None,
        open_timeout=None,
        ping_interval=None,
    )


@dataclass(frozen=True)
class TransportHandle:
    generation: int
    container: str
    mode: StreamMode
    url: str


@dataclass
class _Channel:
    handle: TransportHandle
    listener: Listener
    state: TransportState = TransportState.CONNECTING
    outbox: asyncio.Queue[str] = field(default_factory=asyncio.Queue)
    task: asyncio.Task[None] | None = None


class Transport(Protocol):
    def open(self, container: str, mode: StreamMode, listener: Listener) -> TransportHandle: ...

    def send(self, handle: TransportHandle, message: OutboundMessage) -> None: ...

    def close(self, handle: TransportHandle) -> None: ...

    def state(self, handle: TransportHandle) -> TransportState: ...


class StreamTransport:
    def __init__(
        self,
        base_url: str,
        *,
        session_token: str = "",
        connector: Connector | None = None,
    ) -> None:
        self.base_url = base_url
        self._headers = {"Cookie": f"session={session_token.strip()}"} if session_token.strip() else {}
        self._connector = connector or _connect_with_websockets
        self._generations = itertools.count(1)
        self._channels: dict[int, _Channel] = {}
        self._ended: dict[int, TransportState] = {}

    def open(self, container: str, mode: StreamMode, listener: Listener) -> TransportHandle:
        url = stream_url(self.base_url, mode, container)
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise NodeDeckError(
                "No running event loop for stream transport.",
                code=ExitCode.RUNTIME_ERROR,
                hint="Open streams from code running inside the asyncio event loop.",
            ) from exc

        handle = TransportHandle(
            generation=next(self._generations),
            container=container.strip(),
            mode=StreamMode(mode),
            url=url,
        )
        channel = _Channel(handle=handle, listener=listener)
        self._channels[handle.generation] = channel
        channel.task = loop.create_task(self._run(channel), name=f"nodedeck-stream-{handle.generation}")
        channel.task.add_done_callback(self._report_task_failure)
        logger.info(
            "stream-event handle=%s step=open mode=%s container=%s",
            handle.generation,
            handle.mode.value,
            handle.container,
        )
        return handle

    def send(self, handle: TransportHandle, message: OutboundMessage) -> None:
        if handle.mode != StreamMode.EXEC:
            raise NodeDeckError(
                "Log streams do not accept outbound messages.",
                code=ExitCode.VALIDATION_ERROR,
                hint="Only exec sessions can send input.",
            )
        channel = self._channels.get(handle.generation)
        if channel is None or channel.state != TransportState.CONNECTED:
            logger.warning("stream-event handle=%s step=send-rejected state=%s", handle.generation, self.state(handle).value)
            raise NotConnected(
                f"Stream to {handle.container} is not connected.",
                hint="Reconnect the session before sending input.",
            )
        channel.outbox.put_nowait(encode_outbound(message))

    def close(self, handle: TransportHandle) -> None:
        self._ended.pop(handle.generation, None)
        channel = self._channels.pop(handle.generation, None)
        if channel is None:
            return
        channel.state = TransportState.CLOSED
        task = channel.task
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        logger.info("stream-event handle=%s step=close container=%s", handle.generation, handle.container)

    def close_all(self) -> None:
        for channel in list(self._channels.values()):
            self.close(channel.handle)

    def state(self, handle: TransportHandle) -> TransportState:
        channel = self._channels.get(handle.generation)
        if channel is None:
            return self._ended.get(handle.generation, TransportState.CLOSED)
        return channel.state

    def live_handles(self) -> list[TransportHandle]:
        return [self._channels[key].handle for key in sorted(self._channels)]

    async def _run(self, channel: _Channel) -> None:
        handle = channel.handle
        try:
            try:
                connection = await self._connector(handle.url, dict(self._headers))
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                logger.warning("stream-event handle=%s step=open-failed detail=%s", handle.generation, exc)
                self._finish(channel, TransportFault(detail=str(exc) or type(exc).__name__, during_open=True))
                return

            if not self._is_live(channel):
                await connection.close()
                return

            channel.state = TransportState.CONNECTED
            outcome = await self._pump(channel, connection)
            if outcome is not None:
                self._finish(channel, outcome)
        finally:
            self._retire(channel)

    async def _pump(self, channel: _Channel, connection: StreamConnection) -> TransportEvent | None:
        """Deliver frames until the socket ends, the handle closes or a listener fails."""
        writer = asyncio.get_running_loop().create_task(self._drain(channel, connection))
        frames = aiter(connection)
        try:
            self._deliver(channel, Connected())
            while self._is_live(channel):
                try:
                    frame = await anext(frames)
                except StopAsyncIteration:
                    return Closed(reason=str(getattr(connection, "close_reason", "") or ""))
                except (ConnectionClosedError, OSError) as exc:
                    return TransportFault(detail=str(exc) or type(exc).__name__)
                message = decode_inbound(frame)
                if message is not None:
                    self._deliver(channel, MessageReceived(message))
            return None
        except Exception as exc:
            logger.error(
                "stream-event handle=%s step=listener-failed detail=%s",
                channel.handle.generation,
                exc,
                exc_info=exc,
            )
            return TransportFault(detail=f"listener failed: {exc}")
        finally:
            writer.cancel()
            await connection.close()

    def _finish(self, channel: _Channel, event: Closed | TransportFault) -> None:
        if not self._is_live(channel):
            return
        channel.state = TransportState.FAILED if isinstance(event, TransportFault) else TransportState.CLOSED
        try:
            self._deliver(channel, event)
        except Exception:
            logger.exception(
                "stream-event handle=%s step=listener-failed event=%s",
                channel.handle.generation,
                type(event).__name__,
            )

    def _retire(self, channel: _Channel) -> None:
        # Ended streams leave the live set; their final state stays queryable until close().
        if self._is_live(channel):
            del self._channels[channel.handle.generation]
            self._ended[channel.handle.generation] = channel.state

    async def _drain(self, channel: _Channel, connection: StreamConnection) -> None:
        while True:
            payload = await channel.outbox.get()
            try:
                await connection.send(payload)
            except (ConnectionClosed, OSError) as exc:
                logger.warning("stream-event handle=%s step=send-failed detail=%s", channel.handle.generation, exc)
                return

    def _is_live(self, channel: _Channel) -> bool:
        return self._channels.get(channel.handle.generation) is channel

    def _deliver(self, channel: _Channel, event: TransportEvent) -> None:
        if not self._is_live(channel):
            logger.debug("stream-event handle=%s step=stale-drop event=%s", channel.handle.generation, type(event).__name__)
            return
        channel.listener(event)

    @staticmethod
    def _report_task_failure(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("stream task failed", exc_info=exc)


def _current_task() -> asyncio.Task[object] | None:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None
