"""Stream endpoint URL derivation."""

from __future__ import annotations

from urllib.parse import quote, urlsplit, urlunsplit

from nodedeck.errors import ExitCode, NodeDeckError
from nodedeck.stream.messages import StreamMode

_SCHEME_MAP = {"http": "ws", "https": "wss", "ws": "ws", "wss": "wss"}
_MODE_PATHS = {StreamMode.LOGS: "logs", StreamMode.EXEC: "exec"}


def stream_url(base_url: str, mode: StreamMode, container: str) -> str:
    name = container.strip()
    if not name:
        raise NodeDeckError(
            "Container name is required.",
            code=ExitCode.VALIDATION_ERROR,
            hint="Select a container before opening a stream.",
        )
    parts = urlsplit(base_url.strip())
    scheme = _SCHEME_MAP.get(parts.scheme.lower())
    if scheme is None or not parts.netloc:
        raise NodeDeckError(
            f"Invalid stream base url: {base_url}",
            code=ExitCode.CONFIG_ERROR,
            hint="Use an http(s):// or ws(s):// address for the dashboard backend.",
        )
    prefix = parts.path.rstrip("/")
    path = f"{prefix}/ws/docker/{_MODE_PATHS[StreamMode(mode)]}/{quote(name, safe='')}"
    return urlunsplit((scheme, parts.netloc, path, "", ""))
