"""Main application class wiring connectors, realtime and session together."""

import logging
from typing import Any, Optional

from .codec import Codec
from .collection import Collection, Database, Functions
from .config import AppConfig, to_websocket_url
from .connectors import Connector, HTTPConnector, LocalConnector, WSConnector
from .realtime import SubscriptionMultiplexer
from .session import Auth, CredentialStorage, RequestContext, SessionStore

logger = logging.getLogger(__name__)


class App:
    """
    Entry point: one configured connection to a document store.

    Example:
        from conduit import App, AppConfig, field

        async with App(AppConfig(server_url="https://db.example.com", connector="WS")) as app:
            await app.auth.sign_in({"email": "ann@example.com", "password": "..."})

            await app.db.users.ann.profile.name.set("Ann")
            print(await app.db.users.ann.profile.name.resolve())

            app.db.users.ann.profile.subscribe(print)

            adults = app.db.users.filter(field("age") >= 18).order_by("name")
            print(await adults.resolve())
    """

    def __init__(
        self,
        config: Optional[AppConfig] = None,
        storage: Optional[CredentialStorage] = None,
    ):
        """
        Args:
            config: Connection settings (defaults to HTTP with no server URL)
            storage: Where the session token survives between runs
                (defaults to process memory)
        """
        self.config = config or AppConfig()
        self.codec = Codec()
        self.session = SessionStore(storage)
        self._api_key = self.config.api_key

        self.multiplexer = SubscriptionMultiplexer(
            codec=self.codec,
            settle_delay=self.config.settle_delay,
            context_factory=self.context,
        )

        base_url = self.config.server_url or ""
        self.http: HTTPConnector
        self.connector: Connector
        if self.config.connector == "WS":
            self.http = WSConnector(
                self.multiplexer,
                base_url,
                codec=self.codec,
                request_timeout=self.config.request_timeout,
                push_timeout=self.config.push_timeout,
            )
            self.connector = self.http
        else:
            self.http = HTTPConnector(
                base_url, codec=self.codec, request_timeout=self.config.request_timeout
            )
            if self.config.connector == "LOCAL":
                self.connector = LocalConnector(self.config.op_handlers)
            else:
                self.connector = self.http

        self.auth = Auth(self.session, self._auth_request)
        self.db = Database(self)
        self.functions = Functions(self)

    # Credentials

    def context(self) -> RequestContext:
        """Credentials for a call made right now."""
        return self.session.context(self._api_key)

    def set_api_key(self, api_key: Optional[str]) -> None:
        self._api_key = api_key
        self.config.api_key = api_key

    async def _auth_request(self, path: str, data: dict) -> Any:
        return await self.http.request(path, data, self.context())

    # Server

    @property
    def uses_socket(self) -> bool:
        return self.config.connector != "LOCAL" and bool(self.config.server_url)

    async def start(self) -> None:
        """Open the realtime socket if a server URL is configured."""
        if self.uses_socket:
            await self.multiplexer.connect(to_websocket_url(self.config.server_url))

    async def set_server_url(self, server_url: str) -> None:
        """Point the app at another server, reopening the socket if the URL changed."""
        if server_url == self.config.server_url:
            return
        self.config.server_url = server_url
        self.http.base_url = server_url
        logger.info("Server URL set to %s", server_url)
        await self.start()

    async def call_function(self, name: str, data: Any) -> Any:
        """Call ``/functions/<name>`` on the server."""
        return await self.http.call_function(name, data, self.context())

    def collection(self, name: str) -> Collection:
        return self.db.collection(name)

    # Lifecycle

    async def close(self) -> None:
        await self.multiplexer.close()
        await self.connector.close()
        if self.http is not self.connector:
            await self.http.close()

    async def __aenter__(self) -> "App":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()


def init_app(config: Optional[AppConfig] = None, **kwargs: Any) -> App:
    """Create an App from a config or from AppConfig keyword arguments.

    Example:
        app = init_app(server_url="https://db.example.com", connector="WS")
        app = init_app(connector="LOCAL", op_handlers=MemoryHandler())
    """
    if config is None:
        config = AppConfig(**kwargs)
    elif kwargs:
        raise TypeError("Pass either a config or keyword arguments, not both")
    return App(config)
