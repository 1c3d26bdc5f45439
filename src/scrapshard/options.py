from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

import tomllib

_CONFIG_ENV = "SCRAPSHARD_CONFIG"
_SERVER_URL_ENV = "SCRAPSHARD_SERVER_URL"
_TIMEOUT_ENV = "SCRAPSHARD_TIMEOUT"
DEFAULT_TIMEOUT = 30.0


class OptionsError(ValueError):
    """Raised when the client options file or environment is invalid."""


@dataclass(slots=True)
class ClientOptions:
    server_url: str = ""
    timeout: float = DEFAULT_TIMEOUT
    debug: bool = False

    def has_server(self) -> bool:
        return bool(self.server_url.strip())


def default_options_path(environ: Mapping[str, str] | None = None) -> Path:
    env = os.environ if environ is None else environ
    env_path = env.get(_CONFIG_ENV)
    if env_path:
        return Path(env_path).expanduser()
    return Path.home() / ".config" / "scrapshard" / "config.toml"


def _read_toml(path: Path) -> dict[str, object]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as exc:
        raise OptionsError(f"Invalid options file {path}: {exc}") from exc


def _parse_timeout(value: object, source: str) -> float:
    try:
        timeout = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise OptionsError(f"Invalid timeout in {source}: {value!r}") from exc
    if timeout <= 0:
        raise OptionsError(f"Timeout must be positive in {source}: {value!r}")
    return timeout


def load_options(
    path: Path | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> ClientOptions:
    """
    Build client options from a TOML file, then apply environment overrides.

    An explicit ``path`` must exist; the default location is optional.
    """
    env = os.environ if environ is None else environ
    options = ClientOptions()

    if path is not None:
        if not path.is_file():
            raise OptionsError(f"Options file not found: {path}")
        data = _read_toml(path)
    else:
        default_path = default_options_path(env)
        data = _read_toml(default_path) if default_path.is_file() else {}

    server = data.get("server", {})
    if not isinstance(server, dict):
        raise OptionsError("The [server] section must be a table.")
    url = server.get("url")
    if url is not None:
        if not isinstance(url, str):
            raise OptionsError("server.url must be a string.")
        options.server_url = url
    if "timeout" in server:
        options.timeout = _parse_timeout(server["timeout"], "server.timeout")

    log = data.get("log", {})
    if not isinstance(log, dict):
        raise OptionsError("The [log] section must be a table.")
    if "debug" in log:
        options.debug = bool(log["debug"])

    env_url = env.get(_SERVER_URL_ENV)
    if env_url:
        options.server_url = env_url
    env_timeout = env.get(_TIMEOUT_ENV)
    if env_timeout:
        options.timeout = _parse_timeout(env_timeout, _TIMEOUT_ENV)
    return options


__all__ = [
    "ClientOptions",
    "DEFAULT_TIMEOUT",
    "OptionsError",
    "default_options_path",
    "load_options",
]
