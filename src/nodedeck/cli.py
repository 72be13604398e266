"""Public CLI contract and entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import codecs
import logging as py_logging
import os
import shutil
import signal
import sys
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import TextIO

from .config import AppConfig, load_config
from .controller import SessionController
from .directory import Container, ContainerDirectory
from .errors import ExitCode, NodeDeckError, user_facing_error
from .logging import configure_logging, default_log_path, level_value
from .logs import LogEntry, LogTailSession
from .stream import SessionState, StreamSession, StreamTransport
from .terminal import ExecSession, StreamTerminal

_VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARN", "ERROR")
_FINISHED_STATES = {SessionState.IDLE, SessionState.CLOSED, SessionState.ERROR}
_LIVE_COMMANDS = {"logs", "exec"}
_READ_SIZE = 1024

logger = py_logging.getLogger(__name__)


def _log_level_type(value: str) -> str:
    normalized = value.upper()
    if normalized == "WARNING":
        normalized = "WARN"
    if normalized not in _VALID_LOG_LEVELS:
        accepted = ", ".join(_VALID_LOG_LEVELS)
        raise argparse.ArgumentTypeError(f"--log-level must be one of: {accepted}")
    return normalized


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="nodedeck")
    parser.add_argument("--config", type=Path, default=None)
    parser.add_argument("--api-url", default=None, help="Dashboard backend address")
    parser.add_argument("--log-level", type=_log_level_type, default="INFO")
    parser.add_argument("--log-file", type=Path, default=None)

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("containers", help="List known containers and their state")
    logs = commands.add_parser("logs", help="Tail a container's log stream")
    logs.add_argument("--container", default="")
    shell = commands.add_parser("exec", help="Open an interactive shell in a running container")
    shell.add_argument("--container", default="")
    return parser


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def resolve_config(namespace: argparse.Namespace) -> AppConfig:
    config = load_config(namespace.config)
    if namespace.api_url:
        try:
            config.api_url = namespace.api_url
        except ValueError as exc:
            raise NodeDeckError(
                f"Invalid API url: {namespace.api_url}",
                code=ExitCode.INVALID_ARGS,
                hint="Use an http(s):// address for the dashboard backend.",
            ) from exc
    return config


def build_directory(config: AppConfig) -> ContainerDirectory:
    return ContainerDirectory(
        config.api_url,
        session_token=config.session_token,
        timeout=config.request_timeout_seconds,
    )


def build_transport(config: AppConfig) -> StreamTransport:
    return StreamTransport(config.stream_base_url, session_token=config.session_token)


def format_container(container: Container) -> str:
    return f"{container.name:<32} {container.state.value:<10} {container.status:<24} {container.image}"


def format_entry(entry: LogEntry) -> str:
    stamp = entry.timestamp.astimezone().strftime("%H:%M:%S")
    return f"{stamp} {entry.message}"


def run_containers(config: AppConfig, out: TextIO) -> int:
    containers = build_directory(config).list()
    if not containers:
        print("No containers available.", file=out)
        return int(ExitCode.SUCCESS)
    for container in containers:
        print(format_container(container), file=out)
    return int(ExitCode.SUCCESS)


def _open_target(controller: SessionController, container: str) -> None:
    controller.mount(container)
    if controller.error is not None:
        raise controller.error


def _session_exit_code(session: StreamSession) -> int:
    if session.error is not None:
        return int(session.error.code)
    return int(ExitCode.SUCCESS)


async def _wait_until_finished(session: StreamSession, *, controller: SessionController | None = None) -> None:
    """Return once the session has finished, or once ``controller`` is unmounted."""
    finished = asyncio.Event()

    def on_change() -> None:
        if controller is not None:
            done = not controller.mounted
        else:
            done = session.state in _FINISHED_STATES
        if done:
            finished.set()

    session.add_change_listener(on_change)
    on_change()
    await finished.wait()


def _stdin_fd() -> int | None:
    try:
        return sys.stdin.fileno()
    except (AttributeError, OSError, ValueError):
        return None


def _interactive_fd() -> int | None:
    fd = _stdin_fd()
    if fd is None or not os.isatty(fd):
        return None
    return fd


@contextmanager
def _raw_terminal(fd: int | None) -> Iterator[None]:
    """Pass keystrokes through unprocessed, including Ctrl-C, while a shell is open."""
    if fd is None or sys.platform == "win32" or not os.isatty(fd):
        yield
        return
    import termios
    import tty

    saved = termios.tcgetattr(fd)
    tty.setraw(fd)
    try:
        yield
    finally:
        termios.tcsetattr(fd, termios.TCSADRAIN, saved)


def _pump_fd(
    loop: asyncio.AbstractEventLoop,
    fd: int,
    on_data: Callable[[str], None],
    on_eof: Callable[[], None],
) -> None:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    # The loop may already be closed once the session has ended.
    with suppress(RuntimeError):
        while True:
            try:
                chunk = os.read(fd, _READ_SIZE)
            except OSError as exc:
                logger.debug("stdin-event step=read-failed detail=%s", exc)
                break
            if not chunk:
                break
            text = decoder.decode(chunk)
            if text:
                loop.call_soon_threadsafe(on_data, text)
        loop.call_soon_threadsafe(on_eof)


def _start_pump(
    loop: asyncio.AbstractEventLoop,
    fd: int,
    on_data: Callable[[str], None],
    on_eof: Callable[[], None],
) -> None:
    threading.Thread(
        target=_pump_fd,
        args=(loop, fd, on_data, on_eof),
        name="nodedeck-stdin",
        daemon=True,
    ).start()


class LogCommands:
    """Single-letter commands typed, one per line, while a log tail runs."""

    HELP = "Commands: p pause/resume, c clear, r reconnect, q quit"

    def __init__(self, controller: SessionController, session: LogTailSession, out: TextIO) -> None:
        self.controller = controller
        self.session = session
        self.out = out
        self._pending = ""

    def feed(self, text: str) -> None:
        self._pending += text
        while "\n" in self._pending:
            line, self._pending = self._pending.split("\n", 1)
            self.apply(line)

    def apply(self, command: str) -> None:
        key = command.strip().lower()
        if not key:
            return
        if key == "p":
            paused = self.session.toggle_pause()
            self._notice("paused" if paused else "resumed")
        elif key == "c":
            self.session.clear()
            self._notice("cleared")
        elif key == "r":
            try:
                self.controller.reconnect()
            except NodeDeckError as exc:
                self._notice(exc.message)
            else:
                self._notice(f"reconnecting to {self.session.container}")
        elif key == "q":
            self.controller.unmount()
        else:
            print(self.HELP, file=self.out, flush=True)

    def _notice(self, text: str) -> None:
        print(f"-- {text} --", file=self.out, flush=True)


async def follow_logs(config: AppConfig, container: str, out: TextIO, *, commands_fd: int | None = None) -> int:
    transport = build_transport(config)
    session = LogTailSession(
        transport,
        capacity=config.log_buffer_limit,
        pause_policy=config.pause_policy,
    )

    def print_entries(entries: list[LogEntry]) -> None:
        for entry in entries:
            print(format_entry(entry), file=out, flush=True)

    session.add_append_listener(print_entries)
    controller = SessionController(build_directory(config), session)
    try:
        _open_target(controller, container)
        if commands_fd is None:
            await _wait_until_finished(session)
        else:
            commands = LogCommands(controller, session, out)
            print(LogCommands.HELP, file=out, flush=True)
            _start_pump(asyncio.get_running_loop(), commands_fd, commands.feed, controller.unmount)
            await _wait_until_finished(session, controller=controller)
    finally:
        controller.unmount()
        transport.close_all()
    return _session_exit_code(session)


async def run_shell(config: AppConfig, container: str, out: TextIO, *, stdin_fd: int | None = None) -> int:
    loop = asyncio.get_running_loop()
    cols, rows = shutil.get_terminal_size((config.terminal_cols, config.terminal_rows))
    surface = StreamTerminal(out, cols=cols, rows=rows)
    transport = build_transport(config)
    session = ExecSession(transport, surface)
    controller = SessionController(build_directory(config), session)

    def on_window_change() -> None:
        size = shutil.get_terminal_size((surface.cols, surface.rows))
        surface.resize(size.columns, size.lines)

    if hasattr(signal, "SIGWINCH"):
        with suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signal.SIGWINCH, on_window_change)
    try:
        _open_target(controller, container)
        with _raw_terminal(stdin_fd):
            if stdin_fd is not None:
                _start_pump(loop, stdin_fd, surface.feed_input, controller.unmount)
            await _wait_until_finished(session)
    finally:
        if hasattr(signal, "SIGWINCH"):
            with suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(signal.SIGWINCH)
        controller.unmount()
        transport.close_all()
    return _session_exit_code(session)


def run_cli_flow(namespace: argparse.Namespace, *, out: TextIO | None = None) -> int:
    stream = out or sys.stdout
    config = resolve_config(namespace)
    if namespace.command == "containers":
        return run_containers(config, stream)
    try:
        if namespace.command == "logs":
            return asyncio.run(follow_logs(config, namespace.container, stream, commands_fd=_interactive_fd()))
        if namespace.command == "exec":
            return asyncio.run(run_shell(config, namespace.container, stream, stdin_fd=_stdin_fd()))
    except KeyboardInterrupt:
        logger.debug("Interrupted by user")
        return int(ExitCode.SUCCESS)
    raise NodeDeckError(
        f"Unknown command: {namespace.command}",
        code=ExitCode.INVALID_ARGS,
        hint="Use containers, logs or exec.",
    )


def main(argv: Sequence[str] | None = None, *, out: TextIO | None = None) -> int:
    log_path = default_log_path()
    logger = configure_logging(log_file=log_path)
    parser = build_parser()
    try:
        namespace = parser.parse_args(argv)
    except SystemExit as exc:
        if exc.code not in (None, 0):
            logger.warning("Argument parsing failed with exit code %s", exc.code)
        return int(exc.code or 0)

    if namespace.log_file is not None:
        log_path = namespace.log_file.expanduser()
    console_level = "ERROR" if namespace.command in _LIVE_COMMANDS else None
    logger = configure_logging(level=namespace.log_level, log_file=log_path, console_level=console_level)
    verbose = level_value(namespace.log_level) <= py_logging.DEBUG

    try:
        logger.debug("Starting %s flow", namespace.command)
        return run_cli_flow(namespace, out=out)
    except NodeDeckError as exc:
        logger.error(
            "Handled NodeDeckError (code=%s): %s",
            int(exc.code),
            exc.message,
            exc_info=verbose,
        )
        print(user_facing_error(exc.message, hint=exc.hint), file=sys.stderr)
        return int(exc.code)
    except Exception:
        logger.exception("Unhandled exception in CLI entrypoint")
        try:
            hint = f"Inspect logs: {log_path}"
            print(user_facing_error("Unexpected runtime failure", hint=hint), file=sys.stderr)
        except Exception:
            pass
        return int(ExitCode.RUNTIME_ERROR)


def run(argv: Sequence[str] | None = None) -> int:
    return main(argv)
