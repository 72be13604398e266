from __future__ import annotations

import json

from nodedeck.directory import ContainerDirectory
from nodedeck.stream import InputMessage, ResizeMessage, StreamMode, decode_inbound, encode_outbound, stream_url


def test_container_listing_sends_required_headers() -> None:
    captured: dict[str, object] = {}

    def requester(url: str, headers: dict[str, str], timeout: float) -> tuple[int, str]:
        captured.update(url=url, headers=dict(headers), timeout=timeout)
        return 200, "[]"

    ContainerDirectory("http://node:4001", session_token="cookie-value", timeout=7.5, requester=requester).list()

    assert captured["url"] == "http://node:4001/api/docker/containers"
    assert captured["headers"] == {
        "Accept": "application/json",
        "User-Agent": "nodedeck",
        "Cookie": "session=cookie-value",
    }
    assert captured["timeout"] == 7.5


def test_stream_endpoints_follow_backend_routes() -> None:
    assert stream_url("http://node:4001", StreamMode.LOGS, "lnd").endswith("/ws/docker/logs/lnd")
    assert stream_url("http://node:4001", StreamMode.EXEC, "lnd").endswith("/ws/docker/exec/lnd")


def test_outbound_frames_match_exec_protocol() -> None:
    assert json.loads(encode_outbound(InputMessage(data="\x03"))) == {"type": "input", "data": "\x03"}
    assert json.loads(encode_outbound(ResizeMessage(cols=1, rows=1))) == {"type": "resize", "cols": 1, "rows": 1}


def test_inbound_frames_cover_every_backend_message_type() -> None:
    for frame in (
        {"type": "log", "data": "x"},
        {"type": "output", "data": "x"},
        {"type": "error", "message": "x"},
        {"type": "end"},
    ):
        decoded = decode_inbound(json.dumps(frame))
        assert decoded is not None
        assert decoded.type == frame["type"]
