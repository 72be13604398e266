from __future__ import annotations

import asyncio
import io
import json
import os
import signal
import subprocess
import sys
from pathlib import Path

import pytest

from nodedeck import cli
from nodedeck.config import AppConfig
from nodedeck.directory import ContainerDirectory
from nodedeck.stream import StreamTransport


def _env_with_pythonpath() -> dict[str, str]:
    env = dict(os.environ)
    existing = env.get("PYTHONPATH", "")
    src_path = str(Path("src").resolve())
    env["PYTHONPATH"] = f"{src_path}{os.pathsep}{existing}" if existing else src_path
    return env


class _ScriptedConnection:
    def __init__(self, frames: list[str]) -> None:
        self.frames = frames
        self.sent: list[str] = []
        self.close_reason = ""

    async def send(self, message: str) -> None:
        self.sent.append(message)

    async def close(self) -> None:
        return None

    def __aiter__(self):
        return self._frames()

    async def _frames(self):
        for frame in self.frames:
            await asyncio.sleep(0)
            yield frame


def _patch_backend(monkeypatch, frames: list[str], *, make_connection=None) -> list[str]:
    urls: list[str] = []

    async def connector(url: str, headers: dict[str, str]):
        urls.append(url)
        if make_connection is not None:
            return make_connection(len(urls))
        return _ScriptedConnection(frames)

    def build_directory(config: AppConfig) -> ContainerDirectory:
        body = '[{"id":"1","name":"bitcoind","state":"running","status":"Up"}]'
        return ContainerDirectory(config.api_url, requester=lambda url, headers, timeout: (200, body))

    def build_transport(config: AppConfig) -> StreamTransport:
        return StreamTransport(config.stream_base_url, connector=connector)

    monkeypatch.setattr(cli, "build_directory", build_directory)
    monkeypatch.setattr(cli, "build_transport", build_transport)
    monkeypatch.setattr(cli, "_interactive_fd", lambda: None)
    return urls


def test_cli_module_reports_invalid_args_via_exit_code(tmp_path: Path) -> None:
    completed = subprocess.run(
        [sys.executable, "-m", "nodedeck", "--log-level", "loud", "--log-file", str(tmp_path / "nd.log"), "containers"],
        capture_output=True,
        text=True,
        check=False,
        env=_env_with_pythonpath(),
    )

    assert completed.returncode == 2
    assert "--log-level must be one of" in completed.stderr


def test_cli_module_reports_unreachable_backend(tmp_path: Path) -> None:
    completed = subprocess.run(
        [
            sys.executable,
            "-m",
            "nodedeck",
            "--config",
            str(tmp_path / "config.toml"),
            "--api-url",
            "http://127.0.0.1:9",
            "--log-file",
            str(tmp_path / "nd.log"),
            "containers",
        ],
        capture_output=True,
        text=True,
        check=False,
        env=_env_with_pythonpath(),
        timeout=60,
    )

    assert completed.returncode == 8
    assert "Could not reach the dashboard backend" in completed.stderr


def test_logs_command_follows_stream_until_end(tmp_path: Path, monkeypatch, capsys) -> None:
    urls = _patch_backend(
        monkeypatch,
        [
            '{"type":"log","data":"2024-01-15T10:30:00Z Bitcoin Core starting\\n"}',
            '{"type":"log","data":"UpdateTip: new best\\n"}',
            '{"type":"end"}',
        ],
    )
    out = io.StringIO()

    code = cli.main(
        ["--config", str(tmp_path / "config.toml"), "--log-file", str(tmp_path / "nd.log"), "logs"],
        out=out,
    )

    lines = out.getvalue().splitlines()
    assert code == 0
    assert urls == ["ws://localhost:4001/ws/docker/logs/bitcoind"]
    assert lines[0].endswith("Bitcoin Core starting")
    assert lines[1].endswith("UpdateTip: new best")
    assert lines[-1].endswith("Log stream ended")
    assert "stream-event" not in capsys.readouterr().err
    assert "stream-event handle=1 step=open" in (tmp_path / "nd.log").read_text(encoding="utf-8")


def test_logs_command_exits_with_remote_error_code(tmp_path: Path, monkeypatch) -> None:
    _patch_backend(monkeypatch, ['{"type":"error","message":"Container not found"}'])
    out = io.StringIO()

    code = cli.main(
        [
            "--config",
            str(tmp_path / "config.toml"),
            "--log-file",
            str(tmp_path / "nd.log"),
            "logs",
            "--container",
            "bitcoind",
        ],
        out=out,
    )

    assert code == 6
    assert out.getvalue().splitlines()[-1].endswith("Error: Container not found")


class _InteractiveConnection(_ScriptedConnection):
    """Runs ``script`` as the frame source; it may await what the client sends."""

    def __init__(self, script) -> None:
        super().__init__([])
        self.script = script
        self.inputs = asyncio.Queue()

    async def send(self, message: str) -> None:
        self.sent.append(message)
        await self.inputs.put(json.loads(message))

    def __aiter__(self):
        return self.script(self)


class _Pipe:
    def __init__(self, read_fd: int, write_fd: int) -> None:
        self.read_fd = read_fd
        self.write_fd = write_fd
        self._writer_open = True

    def close_writer(self) -> None:
        if self._writer_open:
            self._writer_open = False
            os.close(self.write_fd)


async def _next_sent(connection: _InteractiveConnection, kind: str) -> dict:
    while True:
        message = await connection.inputs.get()
        if message["type"] == kind:
            return message


@pytest.fixture
def stdin_pipe():
    pipe = _Pipe(*os.pipe())
    yield pipe
    # Writer first, so a pump thread still reading sees end of file.
    pipe.close_writer()
    os.close(pipe.read_fd)


@pytest.mark.skipif(not hasattr(signal, "SIGWINCH"), reason="needs SIGWINCH")
def test_exec_forwards_raw_stdin_chunks_and_window_changes(monkeypatch, stdin_pipe) -> None:
    read_fd = stdin_pipe.read_fd
    monkeypatch.setenv("COLUMNS", "100")
    monkeypatch.setenv("LINES", "30")
    connections: list[_InteractiveConnection] = []

    async def script(connection: _InteractiveConnection):
        assert await _next_sent(connection, "resize") == {"type": "resize", "cols": 100, "rows": 30}
        os.write(stdin_pipe.write_fd, b"ls\r")
        assert await _next_sent(connection, "input") == {"type": "input", "data": "ls\r"}
        monkeypatch.setenv("COLUMNS", "120")
        os.kill(os.getpid(), signal.SIGWINCH)
        assert await _next_sent(connection, "resize") == {"type": "resize", "cols": 120, "rows": 30}
        yield '{"type":"output","data":"bin  etc\\r\\n"}'
        yield '{"type":"end"}'

    def make_connection(index: int) -> _InteractiveConnection:
        connection = _InteractiveConnection(script)
        connections.append(connection)
        return connection

    urls = _patch_backend(monkeypatch, [], make_connection=make_connection)
    config = AppConfig()
    out = io.StringIO()

    code = asyncio.run(asyncio.wait_for(cli.run_shell(config, "", out, stdin_fd=read_fd), 10))

    assert code == 0
    assert urls == ["ws://localhost:4001/ws/docker/exec/bitcoind"]
    assert [json.loads(message) for message in connections[0].sent] == [
        {"type": "resize", "cols": 100, "rows": 30},
        {"type": "input", "data": "ls\r"},
        {"type": "resize", "cols": 120, "rows": 30},
    ]
    assert "bin  etc" in out.getvalue()


def test_exec_stdin_eof_unmounts_session(monkeypatch, stdin_pipe) -> None:
    read_fd = stdin_pipe.read_fd

    async def script(connection: _InteractiveConnection):
        stdin_pipe.close_writer()
        await asyncio.Event().wait()
        yield ""

    _patch_backend(monkeypatch, [], make_connection=lambda index: _InteractiveConnection(script))
    config = AppConfig()

    code = asyncio.run(asyncio.wait_for(cli.run_shell(config, "", io.StringIO(), stdin_fd=read_fd), 10))

    assert code == 0


def test_logs_commands_reconnect_then_quit(monkeypatch, stdin_pipe) -> None:
    read_fd = stdin_pipe.read_fd

    def make_connection(index: int) -> _InteractiveConnection:
        async def script(connection: _InteractiveConnection):
            yield json.dumps({"type": "log", "data": f"line from connection {index}\n"})
            os.write(stdin_pipe.write_fd, b"r\n" if index == 1 else b"q\n")
            await asyncio.Event().wait()

        return _InteractiveConnection(script)

    urls = _patch_backend(monkeypatch, [], make_connection=make_connection)
    config = AppConfig()
    out = io.StringIO()

    code = asyncio.run(asyncio.wait_for(cli.follow_logs(config, "bitcoind", out, commands_fd=read_fd), 10))

    lines = out.getvalue().splitlines()
    assert code == 0
    assert len(urls) == 2
    assert lines[0] == cli.LogCommands.HELP
    assert lines[1].endswith("line from connection 1")
    assert lines[2] == "-- reconnecting to bitcoind --"
    assert lines[3].endswith("line from connection 2")
