"""In-process connector delegating to a handler object."""

import inspect
from typing import Any, Callable, List

from ..exceptions import ConfigurationError
from ..session import RequestContext
from .base import Connector, OPERATIONS


class LocalConnector(Connector):
    """Connector calling methods of a local handler instead of a server.

    The handler exposes the connector operations under the same names
    (``get``, ``set``, ``get_all``, ...), each taking the request dict and
    returning the result directly or as an awaitable. MemoryHandler is a
    complete example.

    Example:
        connector = LocalConnector(MemoryHandler())
        await connector.set({"collection": "users", "id": "alice", "value": {}}, ctx)
    """

    def __init__(self, handler: Any):
        missing = [
            name for name in OPERATIONS
            if name != "for_each" and not callable(getattr(handler, name, None))
        ]
        if missing:
            raise ConfigurationError(
                f"Operation handler is missing: {', '.join(sorted(missing))}"
            )
        self.handler = handler

    async def _call(self, name: str, request: dict) -> Any:
        result = getattr(self.handler, name)(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    async def size(self, request: dict, context: RequestContext) -> int:
        return await self._call("size", request)

    async def map(self, request: dict, context: RequestContext) -> List[Any]:
        return await self._call("map", request)

    async def filter(self, request: dict, context: RequestContext) -> Any:
        return await self._call("filter", request)

    async def slice(self, request: dict, context: RequestContext) -> List[Any]:
        return await self._call("slice", request)

    async def find(self, request: dict, context: RequestContext) -> Any:
        return await self._call("find", request)

    async def for_each(
        self,
        request: dict,
        context: RequestContext,
        callback: Callable[[Any], Any],
    ) -> None:
        for document in await self._call("get_all", request):
            result = callback(document)
            if inspect.isawaitable(result):
                await result

    async def push(self, request: dict, context: RequestContext) -> str:
        return await self._call("push", request)

    async def delete(self, request: dict, context: RequestContext) -> bool:
        return await self._call("delete", request)

    async def set(self, request: dict, context: RequestContext) -> bool:
        return await self._call("set", request)

    async def clear(self, request: dict, context: RequestContext) -> bool:
        return await self._call("clear", request)

    async def get(self, request: dict, context: RequestContext) -> Any:
        return await self._call("get", request)

    async def has(self, request: dict, context: RequestContext) -> bool:
        return await self._call("has", request)

    async def keys(self, request: dict, context: RequestContext) -> List[str]:
        return await self._call("keys", request)

    async def get_all(self, request: dict, context: RequestContext) -> List[Any]:
        return await self._call("get_all", request)
