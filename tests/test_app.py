"""Tests for App, AppConfig and the command line."""

import argparse
import asyncio
import json

import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from conduit import (
    App,
    AppConfig,
    AuthenticationError,
    ConfigurationError,
    HTTPConnector,
    LocalConnector,
    MemoryHandler,
    WSConnector,
    field,
    init_app,
)
from conduit.__main__ import main, run_command
from conduit.config import to_websocket_url


class TestAppConfig:
    """Tests for AppConfig."""

    def test_defaults(self):
        config = AppConfig()
        assert config.connector == "HTTP"
        assert config.push_timeout == 5.0
        assert config.websocket_url is None

    def test_connector_is_case_insensitive(self):
        assert AppConfig(connector="ws").connector == "WS"

    def test_unknown_connector(self):
        with pytest.raises(ConfigurationError):
            AppConfig(connector="CARRIER_PIGEON")

    def test_local_needs_handlers(self):
        with pytest.raises(ConfigurationError):
            AppConfig(connector="LOCAL")

    def test_negative_timeout(self):
        with pytest.raises(ConfigurationError):
            AppConfig(push_timeout=-1)

    def test_websocket_url(self):
        assert to_websocket_url("https://db.example.com") == "wss://db.example.com"
        assert to_websocket_url("http://localhost:8080") == "ws://localhost:8080"
        assert AppConfig(server_url="http://h").websocket_url == "ws://h"

    def test_from_env(self):
        config = AppConfig.from_env({
            "CONDUIT_SERVER_URL": "https://db.example.com",
            "CONDUIT_API_KEY": "k",
            "CONDUIT_CONNECTOR": "ws",
            "CONDUIT_PUSH_TIMEOUT": "2.5",
        })
        assert config.server_url == "https://db.example.com"
        assert config.api_key == "k"
        assert config.connector == "WS"
        assert config.push_timeout == 2.5

    def test_from_env_overrides(self):
        config = AppConfig.from_env({"CONDUIT_CONNECTOR": "WS"}, connector="HTTP")
        assert config.connector == "HTTP"

    def test_from_env_bad_number(self):
        with pytest.raises(ConfigurationError):
            AppConfig.from_env({"CONDUIT_PUSH_TIMEOUT": "soon"})


class TestAppWiring:
    """Tests for connector selection."""

    def test_http(self):
        app = App(AppConfig(server_url="http://h"))
        assert type(app.connector) is HTTPConnector
        assert app.connector is app.http

    def test_ws(self):
        app = App(AppConfig(server_url="http://h", connector="WS"))
        assert isinstance(app.connector, WSConnector)
        assert app.connector.multiplexer is app.multiplexer

    def test_local(self):
        app = init_app(connector="LOCAL", op_handlers=MemoryHandler())
        assert isinstance(app.connector, LocalConnector)
        assert not app.uses_socket

    def test_init_app_rejects_both_forms(self):
        with pytest.raises(TypeError):
            init_app(AppConfig(), server_url="http://h")

    def test_context_tracks_session_and_api_key(self):
        app = App(AppConfig(api_key="k1"))
        app.session.replace("t", "u")
        app.set_api_key("k2")
        context = app.context()
        assert context.token == "t"
        assert context.api_key == "k2"


class FakeServer:
    """HTTP and WebSocket server holding documents in a MemoryHandler."""

    def __init__(self, data=None):
        self.store = MemoryHandler(data)
        self.socket_messages = []
        self.sockets = []
        self.app = web.Application()
        self.app.router.add_get("/", self.socket)
        self.app.router.add_post("/db/{operation}", self.db)
        self.app.router.add_post("/auth/{action}", self.auth)
        self.app.router.add_post("/functions/{name}", self.function)

    async def db(self, request):
        operation = request.match_info["operation"]
        method = {"length": "size", "getAll": "get_all", "forEach": "get_all"}.get(operation, operation)
        body = await request.json()
        return web.json_response({"value": getattr(self.store, method)(body)})

    async def auth(self, request):
        body = await request.json()
        if body.get("password") != "secret":
            return web.Response(status=401, text="bad credentials")
        return web.json_response({"token": "tok-" + body["email"], "userId": "u1"})

    async def function(self, request):
        body = await request.json()
        return web.json_response({"sum": sum(body["values"])})

    async def socket(self, request):
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.sockets.append(ws)
        async for msg in ws:
            message = json.loads(msg.data)
            self.socket_messages.append(message)
            if message["operation"] == "get":
                value = self.store.get(message)
                await ws.send_str(json.dumps({
                    "operation": "get",
                    "fullPath": message["eventName"],
                    "value": value,
                }))
            elif message["operation"] == "filter":
                await ws.send_str(json.dumps({
                    "operation": "filter",
                    "eventName": message["eventName"],
                    "content": "reset",
                    "value": self.store.filter(message),
                }))
        return ws

    async def broadcast(self, message):
        for ws in self.sockets:
            await ws.send_str(json.dumps(message))


def run_with_server(test, data=None, **config):
    async def run():
        fake = FakeServer(data)
        async with TestServer(fake.app) as server:
            url = f"http://{server.host}:{server.port}"
            async with App(AppConfig(server_url=url, **config)) as app:
                return await test(app, fake)

    return asyncio.run(run())


async def next_value(values, count=1, timeout=5.0):
    """Wait until ``values`` holds at least ``count`` items."""
    async def wait():
        while len(values) < count:
            await asyncio.sleep(0.01)

    await asyncio.wait_for(wait(), timeout)


class TestEndToEnd:
    """Tests for a full App against an in-process server."""

    DATA = {"users": {"alice": {"name": "Alice", "age": 34}, "bob": {"name": "Bob", "age": 17}}}

    def test_read_write(self):
        async def test(app, fake):
            assert await app.db.users.alice.name.set("Alicia") is True
            return await app.db.users.alice.name.resolve(), await app.db.users.size()

        assert run_with_server(test, self.DATA) == ("Alicia", 2)

    def test_live_value(self):
        """A subscription gets the server's value and later pushes."""
        async def test(app, fake):
            values = []
            unsubscribe = app.db.users.alice.name.subscribe(values.append)
            await next_value(values)
            await fake.broadcast({"operation": "get", "fullPath": "users.alice.name", "value": "Al"})
            await next_value(values, 2)
            unsubscribe()
            await app.multiplexer.drain()
            return values

        assert run_with_server(test, self.DATA) == ["Alice", "Al"]

    def test_shared_subscription(self):
        """Two subscribers on one key cause one server subscription."""
        async def test(app, fake):
            first, second = [], []
            app.db.users.bob.subscribe(first.append)
            app.db.users.bob.subscribe(second.append)
            await next_value(first)
            await next_value(second)
            return [m["eventName"] for m in fake.socket_messages], second

        events, second = run_with_server(test, self.DATA)
        assert events == ["users.bob"]
        assert second == [{"id": "bob", "name": "Bob", "age": 17}]

    def test_live_pipeline(self):
        async def test(app, fake):
            values = []
            app.db.users.filter(field("age") >= 18).map(field("name")).subscribe(values.append)
            await next_value(values)
            return values

        assert run_with_server(test, self.DATA) == [["Alice"]]

    def test_sign_in_sends_token(self):
        async def test(app, fake):
            with pytest.raises(AuthenticationError):
                await app.auth.sign_in({"email": "ann", "password": "wrong"})
            await app.auth.sign_in({"email": "ann", "password": "secret"})
            return app.session.token

        assert run_with_server(test) == "tok-ann"

    def test_functions(self):
        async def test(app, fake):
            return (
                await app.functions.add({"values": [1, 2, 3]}),
                await app.functions.call("add", {"values": [4]}),
            )

        assert run_with_server(test) == ({"sum": 6}, {"sum": 4})

    def test_set_server_url(self):
        """An app created without a server can be pointed at one later."""
        async def run():
            fake = FakeServer(self.DATA)
            async with TestServer(fake.app) as server:
                url = f"http://{server.host}:{server.port}"
                async with App() as app:
                    values = []
                    app.db.users.alice.name.subscribe(values.append)
                    await app.set_server_url(url)
                    await app.set_server_url(url)
                    await next_value(values)
                    return values, await app.db.users.bob.age.resolve(), len(fake.sockets)

        assert asyncio.run(run()) == (["Alice"], 17, 1)

    def test_ws_push(self):
        """Pushes over the socket resolve with the id the server sends back."""
        async def test(app, fake):
            async def respond_to_push():
                while not fake.sockets:
                    await asyncio.sleep(0.01)
                while not any(m["operation"] == "push" for m in fake.socket_messages):
                    await asyncio.sleep(0.01)
                message = next(m for m in fake.socket_messages if m["operation"] == "push")
                doc_id = fake.store.push(message)
                await fake.broadcast({
                    "operation": "push", "eventName": message["eventName"], "value": doc_id,
                })

            responder = asyncio.get_running_loop().create_task(respond_to_push())
            doc_id = await app.db.users.push({"name": "Carol"})
            await responder
            return doc_id, await app.db.users.get(doc_id)

        doc_id, doc = run_with_server(test, self.DATA, connector="WS")
        assert doc == {"id": doc_id, "name": "Carol"}


class TestCommandLine:
    """Tests for the conduit command."""

    def namespace(self, url, command, **fields):
        return argparse.Namespace(
            server=url, api_key=None, connector="HTTP", command=command, **fields
        )

    def run_cli(self, *commands):
        async def run():
            fake = FakeServer({"users": {"alice": {"name": "Alice"}}})
            async with TestServer(fake.app) as server:
                url = f"http://{server.host}:{server.port}"
                return [await run_command(self.namespace(url, *c[:1], **c[1])) for c in commands]

        return asyncio.run(run())

    def test_get_and_set(self, capsys, monkeypatch):
        monkeypatch.delenv("CONDUIT_SERVER_URL", raising=False)
        codes = self.run_cli(
            ("set", {"path": "users.alice.name", "value": '"Al"'}),
            ("get", {"path": "users.alice.name"}),
        )
        assert codes == [0, 0]
        assert capsys.readouterr().out.split() == ["ok", '"Al"']

    def test_delete(self, capsys):
        codes = self.run_cli(("delete", {"path": "users.alice.name"}))
        assert codes == [0]
        assert capsys.readouterr().out.strip() == "deleted"

    def test_missing_command(self):
        with pytest.raises(SystemExit):
            main([])

    def test_path_without_document(self):
        with pytest.raises(SystemExit):
            main(["--server", "http://localhost", "get", "users"])
