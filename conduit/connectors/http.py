"""Request/response connector over HTTP."""

import asyncio
import inspect
import json
import logging
from typing import Any, Callable, List, Optional

import aiohttp

from ..codec import Codec
from ..exceptions import ConfigurationError, ResponseError, TransportError
from ..session import RequestContext
from .base import Connector, OPERATIONS

logger = logging.getLogger(__name__)


def _as_list(result: Any) -> List[Any]:
    """Normalize a list-valued response, which may arrive bare or wrapped."""
    if isinstance(result, list):
        return result
    if isinstance(result, dict) and isinstance(result.get("value"), list):
        return result["value"]
    return []


def _value(result: Any) -> Any:
    if isinstance(result, dict):
        return result.get("value")
    return None


class HTTPConnector(Connector):
    """Connector issuing one ``POST <base>/db/<operation>`` per call.

    Example:
        connector = HTTPConnector("https://db.example.com")
        ctx = RequestContext(token="abc")
        doc = await connector.get({"collection": "users", "id": "alice"}, ctx)
        await connector.close()
    """

    def __init__(
        self,
        base_url: str = "",
        codec: Optional[Codec] = None,
        request_timeout: float = 30.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        """
        Args:
            base_url: Server URL, e.g. "https://db.example.com"
            codec: Codec for request and response bodies
            request_timeout: Total timeout per HTTP call, in seconds
            session: Optional aiohttp session to share; one is created lazily otherwise
        """
        self.base_url = base_url
        self.codec = codec or Codec()
        self.request_timeout = request_timeout
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.request_timeout)
            )
            self._owns_session = True
        return self._session

    async def request(self, path: str, data: Any, context: RequestContext) -> Any:
        """POST ``data`` to ``path`` under the base URL and decode the reply.

        Raises:
            ConfigurationError: If no server URL is configured
            ResponseError: If the server answers with a non-2xx status
            TransportError: If the server cannot be reached or replies with invalid JSON
        """
        if not self.base_url:
            raise ConfigurationError("No server URL configured")

        url = self.base_url.rstrip("/") + path
        body = json.dumps(self.codec.encode(data))

        try:
            async with self._get_session().post(
                url, data=body, headers=context.headers()
            ) as response:
                text = await response.text()
                if not 200 <= response.status < 300:
                    raise ResponseError(url, response.status, text)
                if response.headers.get("Content-Length") == "2" or not text:
                    return {}
                payload = json.loads(text)
        except aiohttp.ClientError as e:
            raise TransportError(f"Request to {url} failed: {e}") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"Request to {url} timed out") from e
        except ValueError as e:
            raise TransportError(f"Invalid JSON from {url}: {e}") from e

        return self.codec.decode(payload)

    async def _db(self, method: str, request: dict, context: RequestContext) -> Any:
        return await self.request(f"/db/{OPERATIONS[method]}", request, context)

    async def call_function(self, name: str, data: Any, context: RequestContext) -> Any:
        """Invoke a server-side function at ``/functions/<name>``."""
        return await self.request(f"/functions/{name}", data, context)

    async def size(self, request: dict, context: RequestContext) -> int:
        return _value(await self._db("size", request, context))

    async def map(self, request: dict, context: RequestContext) -> List[Any]:
        return _as_list(await self._db("map", request, context))

    async def filter(self, request: dict, context: RequestContext) -> Any:
        return _value(await self._db("filter", request, context))

    async def slice(self, request: dict, context: RequestContext) -> List[Any]:
        return _as_list(await self._db("slice", request, context))

    async def find(self, request: dict, context: RequestContext) -> Any:
        return _value(await self._db("find", request, context))

    async def for_each(
        self,
        request: dict,
        context: RequestContext,
        callback: Callable[[Any], Any],
    ) -> None:
        for document in _as_list(await self._db("for_each", request, context)):
            result = callback(document)
            if inspect.isawaitable(result):
                await result

    async def push(self, request: dict, context: RequestContext) -> str:
        return _value(await self._db("push", request, context))

    async def delete(self, request: dict, context: RequestContext) -> bool:
        return bool(_value(await self._db("delete", request, context)))

    async def set(self, request: dict, context: RequestContext) -> bool:
        try:
            await self._db("set", request, context)
        except ResponseError as e:
            logger.info("Write to %s rejected: HTTP %s", request.get("collection"), e.status)
            return False
        return True

    async def clear(self, request: dict, context: RequestContext) -> bool:
        await self._db("clear", request, context)
        return True

    async def get(self, request: dict, context: RequestContext) -> Any:
        return _value(await self._db("get", request, context))

    async def has(self, request: dict, context: RequestContext) -> bool:
        return bool(_value(await self._db("has", request, context)))

    async def keys(self, request: dict, context: RequestContext) -> List[str]:
        return _as_list(await self._db("keys", request, context))

    async def get_all(self, request: dict, context: RequestContext) -> List[Any]:
        return _as_list(await self._db("get_all", request, context))

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
