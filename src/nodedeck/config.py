"""XDG config loading/saving."""

from __future__ import annotations

import os
import sys
from contextlib import suppress
from pathlib import Path
from typing import Literal, cast

from pydantic import BaseModel, ConfigDict, Field, field_validator

if sys.version_info >= (3, 11):
    import tomllib
else:  # pragma: no cover
    import tomli as tomllib

DEFAULT_CONFIG_PATH = Path("~/.config/nodedeck/config.toml").expanduser()
DEFAULT_API_URL = "http://localhost:4001"
DEFAULT_LOG_BUFFER_LIMIT = 1000
DEFAULT_PAUSE_POLICY: Literal["drop", "buffer"] = "drop"
DEFAULT_TERMINAL_COLS = 80
DEFAULT_TERMINAL_ROWS = 24
DEFAULT_REQUEST_TIMEOUT = 20.0
SESSION_TOKEN_ENV = "NODEDECK_SESSION_TOKEN"

_VALID_PAUSE_POLICIES = {"drop", "buffer"}
_VALID_API_SCHEMES = ("http://", "https://")
_VALID_WS_SCHEMES = ("ws://", "wss://", "http://", "https://")


class AppConfig(BaseModel):
    model_config = ConfigDict(validate_assignment=True)

    api_url: str = DEFAULT_API_URL
    ws_url: str = ""
    session_token: str = ""
    log_buffer_limit: int = Field(default=DEFAULT_LOG_BUFFER_LIMIT, ge=1, le=100_000)
    pause_policy: Literal["drop", "buffer"] = DEFAULT_PAUSE_POLICY
    terminal_cols: int = Field(default=DEFAULT_TERMINAL_COLS, ge=1, le=1000)
    terminal_rows: int = Field(default=DEFAULT_TERMINAL_ROWS, ge=1, le=1000)
    request_timeout_seconds: float = Field(default=DEFAULT_REQUEST_TIMEOUT, gt=0, le=300)

    @field_validator("api_url")
    @classmethod
    def _validate_api_url(cls, value: str) -> str:
        cleaned = value.strip().rstrip("/")
        if not cleaned.startswith(_VALID_API_SCHEMES):
            raise ValueError(f"Invalid API url: {value}")
        return cleaned

    @field_validator("ws_url")
    @classmethod
    def _validate_ws_url(cls, value: str) -> str:
        cleaned = value.strip().rstrip("/")
        if cleaned and not cleaned.startswith(_VALID_WS_SCHEMES):
            raise ValueError(f"Invalid stream url: {value}")
        return cleaned

    @property
    def stream_base_url(self) -> str:
        return self.ws_url or self.api_url


def get_config_path(path: str | Path | None = None) -> Path:
    if path is None:
        return DEFAULT_CONFIG_PATH
    return Path(path).expanduser()


def _escape(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def _toml_scalar(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, str):
        return f'"{_escape(value)}"'
    raise TypeError(f"Unsupported TOML scalar type: {type(value)!r}")


def _url_value(value: object, schemes: tuple[str, ...]) -> str | None:
    if not isinstance(value, str):
        return None
    cleaned = value.strip().rstrip("/")
    if cleaned.startswith(schemes):
        return cleaned
    return None


def _sanitize(raw: dict[str, object]) -> AppConfig:
    cfg = AppConfig()

    api_url = _url_value(raw.get("api_url"), _VALID_API_SCHEMES)
    if api_url:
        cfg.api_url = api_url

    ws_url = _url_value(raw.get("ws_url"), _VALID_WS_SCHEMES)
    if ws_url:
        cfg.ws_url = ws_url

    session_token = raw.get("session_token", cfg.session_token)
    if isinstance(session_token, str):
        cfg.session_token = session_token.strip()

    log_buffer_limit = raw.get("log_buffer_limit", cfg.log_buffer_limit)
    if isinstance(log_buffer_limit, int) and not isinstance(log_buffer_limit, bool):
        if 1 <= log_buffer_limit <= 100_000:
            cfg.log_buffer_limit = log_buffer_limit

    pause_policy = raw.get("pause_policy", cfg.pause_policy)
    if isinstance(pause_policy, str) and pause_policy in _VALID_PAUSE_POLICIES:
        cfg.pause_policy = cast(Literal["drop", "buffer"], pause_policy)

    for key in ("terminal_cols", "terminal_rows"):
        value = raw.get(key)
        if isinstance(value, int) and not isinstance(value, bool) and 1 <= value <= 1000:
            setattr(cfg, key, value)

    timeout = raw.get("request_timeout_seconds", cfg.request_timeout_seconds)
    if isinstance(timeout, (int, float)) and not isinstance(timeout, bool) and 0 < timeout <= 300:
        cfg.request_timeout_seconds = float(timeout)

    return cfg


def _apply_env_token(cfg: AppConfig) -> AppConfig:
    env_token = os.getenv(SESSION_TOKEN_ENV, "").strip()
    if env_token:
        cfg.session_token = env_token
    return cfg


def _read_config(resolved: Path) -> AppConfig:
    if not resolved.exists():
        return AppConfig()
    try:
        with resolved.open("rb") as handle:
            raw = tomllib.load(handle)
    except (tomllib.TOMLDecodeError, OSError):
        return AppConfig()
    if not isinstance(raw, dict):
        return AppConfig()
    return _sanitize(raw)


def load_config(path: str | Path | None = None) -> AppConfig:
    return _apply_env_token(_read_config(get_config_path(path)))


def save_config(config: AppConfig, path: str | Path | None = None) -> Path:
    resolved = get_config_path(path)
    resolved.parent.mkdir(parents=True, exist_ok=True)

    lines = [
        f"api_url = {_toml_scalar(config.api_url)}",
        f"ws_url = {_toml_scalar(config.ws_url)}",
        f"log_buffer_limit = {_toml_scalar(config.log_buffer_limit)}",
        f"pause_policy = {_toml_scalar(config.pause_policy)}",
        f"terminal_cols = {_toml_scalar(config.terminal_cols)}",
        f"terminal_rows = {_toml_scalar(config.terminal_rows)}",
        f"request_timeout_seconds = {_toml_scalar(config.request_timeout_seconds)}",
    ]

    resolved.write_text("\n".join(lines) + "\n", encoding="utf-8")
    with suppress(OSError):
        resolved.chmod(0o600)
    return resolved
