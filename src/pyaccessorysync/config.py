"""Configuration for the accessory manager and the remote bridge."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
import os
from urllib.parse import urlsplit, urlunsplit

from .const import (
    DEFAULT_READ_TIMEOUT,
    DEFAULT_RECONNECT_DELAY,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_WRITE_TIMEOUT,
    ENV_BRIDGE_URL,
    ENV_DEDUPLICATE_WRITES,
    ENV_PUSH_URL,
    ENV_READ_TIMEOUT,
    ENV_RECONNECT_DELAY,
    ENV_REQUEST_TIMEOUT,
    ENV_TOKEN,
    ENV_WRITE_TIMEOUT,
    PUSH_WS_PATH,
)
from .exceptions import ConfigError

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        err_msg = f"{name} must be a number, got {raw!r}"
        raise ConfigError(err_msg) from None
    if value <= 0:
        err_msg = f"{name} must be positive, got {raw!r}"
        raise ConfigError(err_msg)
    return value


def _env_bool(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or raw == "":
        return default
    if raw.lower() in _TRUE_VALUES:
        return True
    if raw.lower() in _FALSE_VALUES:
        return False
    err_msg = f"{name} must be a boolean, got {raw!r}"
    raise ConfigError(err_msg)


def default_push_url(base_url: str) -> str:
    """Derive the WebSocket push URL from the bridge base URL."""
    parts = urlsplit(base_url)
    scheme = "wss" if parts.scheme == "https" else "ws"
    path = parts.path.rstrip("/") + PUSH_WS_PATH
    return urlunsplit((scheme, parts.netloc, path, "", ""))


@dataclass
class ManagerConfig:
    """Settings of the AccessoryManager."""

    read_timeout: float = DEFAULT_READ_TIMEOUT
    write_timeout: float = DEFAULT_WRITE_TIMEOUT
    deduplicate_writes: bool = True

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> ManagerConfig:
        env = os.environ if env is None else env
        return cls(
            read_timeout=_env_float(env, ENV_READ_TIMEOUT, DEFAULT_READ_TIMEOUT),
            write_timeout=_env_float(env, ENV_WRITE_TIMEOUT, DEFAULT_WRITE_TIMEOUT),
            deduplicate_writes=_env_bool(env, ENV_DEDUPLICATE_WRITES, True),
        )


@dataclass
class BridgeConfig:
    """Connection settings of a remote accessory bridge."""

    base_url: str
    token: str
    push_url: str | None = None
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT
    reconnect_delay: float = DEFAULT_RECONNECT_DELAY

    def __post_init__(self) -> None:
        if not self.base_url:
            err_msg = "Bridge base URL is required"
            raise ConfigError(err_msg)
        if urlsplit(self.base_url).scheme not in ("http", "https"):
            err_msg = f"Bridge base URL must be http(s), got {self.base_url!r}"
            raise ConfigError(err_msg)
        if not self.token:
            err_msg = "Bridge access token is required"
            raise ConfigError(err_msg)
        self.base_url = self.base_url.rstrip("/")
        if not self.push_url:
            self.push_url = default_push_url(self.base_url)

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> BridgeConfig:
        """Build the configuration from ACCESSORYSYNC_* environment variables.

        Raises:
            ConfigError: If the URL or token is missing, or a value is invalid.

        """
        env = os.environ if env is None else env
        return cls(
            base_url=env.get(ENV_BRIDGE_URL, ""),
            token=env.get(ENV_TOKEN, ""),
            push_url=env.get(ENV_PUSH_URL) or None,
            request_timeout=_env_float(
                env,
                ENV_REQUEST_TIMEOUT,
                DEFAULT_REQUEST_TIMEOUT,
            ),
            reconnect_delay=_env_float(
                env,
                ENV_RECONNECT_DELAY,
                DEFAULT_RECONNECT_DELAY,
            ),
        )
