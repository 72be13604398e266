"""Per-tab orchestration of directory fetch, target selection and sessions."""

from __future__ import annotations

import logging as py_logging
from typing import Protocol

from nodedeck.directory import Container, ContainerDirectory, select_default
from nodedeck.errors import EmptyDirectory, ExitCode, NodeDeckError
from nodedeck.stream.messages import StreamMode
from nodedeck.stream.session import StreamSession

logger = py_logging.getLogger(__name__)


class DirectorySource(Protocol):
    def list(self, *, running_only: bool = False) -> list[Container]: ...


class SessionController:
    """Drives one session kind for one tab.

    Exec tabs only offer running containers; log tabs offer every known
    container so stopped ones can still be inspected.
    """

    def __init__(self, directory: DirectorySource | ContainerDirectory, session: StreamSession) -> None:
        self.directory = directory
        self.session = session
        self.running_only = session.mode == StreamMode.EXEC
        self.containers: list[Container] = []
        self.selected = ""
        self.error: NodeDeckError | None = None
        self.mounted = False

    @property
    def is_empty(self) -> bool:
        return isinstance(self.error, EmptyDirectory)

    def mount(self, preferred: str = "") -> Container | None:
        """Load the directory and open ``preferred``, or the default target."""
        self.mounted = True
        if not self._load():
            return None
        target = self._find(preferred) if preferred.strip() else select_default(self.containers)
        if target is None:
            return None
        self._open(target.name)
        return target

    def refresh(self) -> list[Container]:
        self._load()
        return list(self.containers)

    def select(self, name: str) -> None:
        self._open(self._find(name).name)

    def reconnect(self) -> None:
        self.session.reconnect()

    def unmount(self) -> None:
        self.mounted = False
        self.session.stop()
        logger.info("controller-event mode=%s step=unmount", self.session.mode.value)

    def _load(self) -> bool:
        try:
            containers = self.directory.list(running_only=self.running_only)
        except NodeDeckError as exc:
            logger.warning("controller-event mode=%s step=directory-failed message=%s", self.session.mode.value, exc.message)
            self.containers = []
            self.error = exc
            return False
        self.containers = containers
        if not containers:
            self.error = EmptyDirectory(
                "No containers available.",
                hint="Start the node services and refresh the list.",
            )
            logger.info("controller-event mode=%s step=empty-directory", self.session.mode.value)
            return False
        self.error = None
        return True

    def _find(self, name: str) -> Container:
        target = name.strip()
        for item in self.containers:
            if item.name == target:
                return item
        raise NodeDeckError(
            f"Container not available: {name}",
            code=ExitCode.VALIDATION_ERROR,
            hint="Select a container from the current list.",
        )

    def _open(self, name: str) -> None:
        self.selected = name
        logger.info("controller-event mode=%s step=select container=%s", self.session.mode.value, name)
        self.session.start(name)
