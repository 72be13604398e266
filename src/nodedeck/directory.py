"""Container directory fetched from the dashboard backend."""

from __future__ import annotations

import json
import logging as py_logging
from dataclasses import dataclass
from enum import Enum
from typing import Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import urlparse
from urllib.request import Request, urlopen

from nodedeck.errors import DirectoryError, ExitCode, NodeDeckError

logger = py_logging.getLogger(__name__)

CONTAINERS_PATH = "/api/docker/containers"


class ContainerState(str, Enum):
    RUNNING = "running"
    EXITED = "exited"
    CREATED = "created"
    RESTARTING = "restarting"
    PAUSED = "paused"
    REMOVING = "removing"
    DEAD = "dead"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: object) -> ContainerState:
        normalized = str(value or "").strip().lower()
        for member in cls:
            if member.value == normalized:
                return member
        return cls.UNKNOWN


@dataclass(frozen=True)
class Container:
    id: str
    name: str
    state: ContainerState
    image: str = ""
    status: str = ""
    created: int = 0

    @property
    def display_name(self) -> str:
        return self.name

    @property
    def is_running(self) -> bool:
        return self.state == ContainerState.RUNNING


HttpResponse = tuple[int, str]


class HttpRequester(Protocol):
    def __call__(self, url: str, headers: dict[str, str], timeout: float) -> HttpResponse: ...


def _default_requester(url: str, headers: dict[str, str], timeout: float) -> HttpResponse:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise NodeDeckError(
            f"Invalid API url: {url}",
            code=ExitCode.CONFIG_ERROR,
            hint="Use an http(s):// address for the dashboard backend.",
        )
    request = Request(url, headers=headers, method="GET")
    try:
        with urlopen(request, timeout=timeout) as response:  # nosec B310
            status = int(getattr(response, "status", response.getcode()))
            return status, response.read().decode("utf-8")
    except HTTPError as exc:
        payload = ""
        if exc.fp is not None:
            payload = exc.read().decode("utf-8", errors="replace")
        return exc.code, payload
    except (URLError, OSError) as exc:
        reason = getattr(exc, "reason", exc)
        raise DirectoryError(
            "Could not reach the dashboard backend.",
            hint=str(reason) or "Check the API url and network connection.",
        ) from exc


def _extract_error(payload: str) -> str:
    try:
        parsed = json.loads(payload)
    except json.JSONDecodeError:
        return ""
    if isinstance(parsed, dict):
        message = parsed.get("error")
        if isinstance(message, str):
            return message
    return ""


def _parse_container(entry: object) -> Container | None:
    if not isinstance(entry, dict):
        return None
    name = entry.get("name")
    if not isinstance(name, str) or not name.strip():
        return None
    created = entry.get("created", 0)
    return Container(
        id=str(entry.get("id", "") or ""),
        name=name.strip(),
        state=ContainerState.parse(entry.get("state")),
        image=str(entry.get("image", "") or ""),
        status=str(entry.get("status", "") or ""),
        created=created if isinstance(created, int) and not isinstance(created, bool) else 0,
    )


def select_default(containers: list[Container]) -> Container | None:
    """Prefer the first running container, else the first one listed."""
    for container in containers:
        if container.is_running:
            return container
    return containers[0] if containers else None


class ContainerDirectory:
    def __init__(
        self,
        api_url: str,
        *,
        session_token: str = "",
        timeout: float = 20.0,
        requester: HttpRequester | None = None,
    ) -> None:
        self.api_url = api_url.strip().rstrip("/")
        self.session_token = session_token.strip()
        self.timeout = timeout
        self._requester = requester or _default_requester

    def list(self, *, running_only: bool = False) -> list[Container]:
        headers = {"Accept": "application/json", "User-Agent": "nodedeck"}
        if self.session_token:
            headers["Cookie"] = f"session={self.session_token}"
        url = f"{self.api_url}{CONTAINERS_PATH}"
        status, payload = self._requester(url, headers, self.timeout)

        if status == 401:
            raise DirectoryError(
                "Dashboard session is missing or expired.",
                hint=_extract_error(payload) or "Log in again or set the session token.",
            )
        if status != 200:
            raise DirectoryError(
                f"Failed to load containers (HTTP {status}).",
                hint=_extract_error(payload) or "Inspect the dashboard backend logs.",
            )
        try:
            entries = json.loads(payload)
        except json.JSONDecodeError as exc:
            logger.error("Container directory payload was not valid JSON")
            raise DirectoryError(
                "Container list could not be read.",
                hint="The backend returned malformed JSON.",
            ) from exc
        if not isinstance(entries, list):
            raise DirectoryError(
                "Backend returned an unexpected container list.",
                hint="Check that the API url points at the dashboard backend.",
            )

        containers: list[Container] = []
        for entry in entries:
            container = _parse_container(entry)
            if container is None:
                logger.debug("Skipping malformed container entry: %r", entry)
                continue
            containers.append(container)
        if running_only:
            containers = [item for item in containers if item.is_running]
        logger.debug("Container directory loaded count=%s running_only=%s", len(containers), running_only)
        return containers
