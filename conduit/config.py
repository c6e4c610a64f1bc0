"""Application configuration."""

import os
from dataclasses import dataclass
from typing import Any, Literal, Mapping, Optional

from .exceptions import ConfigurationError

ConnectorKind = Literal["HTTP", "WS", "LOCAL"]
CONNECTORS = ("HTTP", "WS", "LOCAL")

DEFAULT_PUSH_TIMEOUT = 5.0
DEFAULT_SETTLE_DELAY = 0.1
DEFAULT_REQUEST_TIMEOUT = 30.0


@dataclass
class AppConfig:
    """Settings for one App.

    Example:
        AppConfig(server_url="https://db.example.com", connector="WS")
        AppConfig(connector="LOCAL", op_handlers=MemoryHandler())
        AppConfig.from_env()
    """

    server_url: Optional[str] = None
    api_key: Optional[str] = None
    connector: ConnectorKind = "HTTP"
    op_handlers: Any = None  # Handler object for the LOCAL connector
    push_timeout: float = DEFAULT_PUSH_TIMEOUT
    settle_delay: float = DEFAULT_SETTLE_DELAY
    request_timeout: float = DEFAULT_REQUEST_TIMEOUT

    def __post_init__(self):
        self.connector = str(self.connector).upper()
        if self.connector not in CONNECTORS:
            raise ConfigurationError(
                f"Unknown connector {self.connector!r}, expected one of {', '.join(CONNECTORS)}"
            )
        if self.connector == "LOCAL" and self.op_handlers is None:
            raise ConfigurationError("The LOCAL connector needs op_handlers")
        for name in ("push_timeout", "settle_delay", "request_timeout"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must not be negative")

    @property
    def websocket_url(self) -> Optional[str]:
        """The server URL with http(s) replaced by ws(s)."""
        if not self.server_url:
            return None
        return to_websocket_url(self.server_url)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides: Any) -> "AppConfig":
        """Build a config from ``CONDUIT_*`` environment variables.

        Reads CONDUIT_SERVER_URL, CONDUIT_API_KEY, CONDUIT_CONNECTOR and
        CONDUIT_PUSH_TIMEOUT. Keyword arguments take precedence.
        """
        env = os.environ if environ is None else environ
        values: dict = {
            "server_url": env.get("CONDUIT_SERVER_URL") or None,
            "api_key": env.get("CONDUIT_API_KEY") or None,
            "connector": env.get("CONDUIT_CONNECTOR", "HTTP"),
        }
        if env.get("CONDUIT_PUSH_TIMEOUT"):
            try:
                values["push_timeout"] = float(env["CONDUIT_PUSH_TIMEOUT"])
            except ValueError:
                raise ConfigurationError(
                    f"CONDUIT_PUSH_TIMEOUT is not a number: {env['CONDUIT_PUSH_TIMEOUT']!r}"
                )
        values.update(overrides)
        return cls(**values)


def to_websocket_url(url: str) -> str:
    if url.startswith("https://"):
        return "wss://" + url[len("https://"):]
    if url.startswith("http://"):
        return "ws://" + url[len("http://"):]
    return url
