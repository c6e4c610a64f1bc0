"""Abstract base class for connectors."""

from abc import ABC, abstractmethod
from typing import Any, Callable, List

from ..session import RequestContext

# Connector method name -> remote operation name
OPERATIONS = {
    "size": "length",
    "map": "map",
    "filter": "filter",
    "slice": "slice",
    "find": "find",
    "for_each": "forEach",
    "push": "push",
    "delete": "delete",
    "set": "set",
    "clear": "clear",
    "get": "get",
    "has": "has",
    "keys": "keys",
    "get_all": "getAll",
}


class Connector(ABC):
    """Transport-independent contract for document operations.

    Connectors implement how a request reaches the store (HTTP, WebSocket,
    in-process handler) while Collection, Ref and Pipeline build the requests.
    Every request is a plain dict shaped like
    ``{"collection": ..., "id": ..., "path": [...], "value": ...}``, and every
    call receives the RequestContext in effect when the call was made.
    """

    @abstractmethod
    async def size(self, request: dict, context: RequestContext) -> int:
        """Number of documents in the collection."""
        pass

    @abstractmethod
    async def map(self, request: dict, context: RequestContext) -> List[Any]:
        """Project every document of the collection."""
        pass

    @abstractmethod
    async def filter(self, request: dict, context: RequestContext) -> Any:
        """Run a pipeline of operations over the collection.

        Args:
            request: ``{"collection": ..., "operations": [...]}``
            context: Credentials for this call

        Returns:
            Whatever the last operation of the pipeline produces
        """
        pass

    @abstractmethod
    async def slice(self, request: dict, context: RequestContext) -> List[Any]:
        """Documents between ``start`` and ``end``."""
        pass

    @abstractmethod
    async def find(self, request: dict, context: RequestContext) -> Any:
        """First document matching a predicate, or None."""
        pass

    @abstractmethod
    async def for_each(
        self,
        request: dict,
        context: RequestContext,
        callback: Callable[[Any], Any],
    ) -> None:
        """Call ``callback`` with every document of the collection."""
        pass

    @abstractmethod
    async def push(self, request: dict, context: RequestContext) -> str:
        """Insert a document and return the id the store assigned to it."""
        pass

    @abstractmethod
    async def delete(self, request: dict, context: RequestContext) -> bool:
        """Delete a document or a field inside one.

        Returns:
            True if something was deleted
        """
        pass

    @abstractmethod
    async def set(self, request: dict, context: RequestContext) -> bool:
        """Write a document or a field inside one.

        Returns:
            True if the store accepted the write, False if it rejected it
        """
        pass

    @abstractmethod
    async def clear(self, request: dict, context: RequestContext) -> bool:
        """Remove every document from the collection."""
        pass

    @abstractmethod
    async def get(self, request: dict, context: RequestContext) -> Any:
        """Read a document or a field inside one."""
        pass

    @abstractmethod
    async def has(self, request: dict, context: RequestContext) -> bool:
        """Whether a document exists."""
        pass

    @abstractmethod
    async def keys(self, request: dict, context: RequestContext) -> List[str]:
        """Ids of every document in the collection."""
        pass

    @abstractmethod
    async def get_all(self, request: dict, context: RequestContext) -> List[Any]:
        """Every document in the collection."""
        pass

    async def close(self) -> None:
        """Release resources held by the connector."""
        pass
