"""Collections, the database namespace and server functions."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import TYPE_CHECKING, Any, AsyncIterator, Callable, Dict, List, Optional, Tuple, Union

from .expressions import Predicate, Projection, predicate_data, projection_data
from .location import Location, Ref
from .pipeline import Operation, Pipeline

if TYPE_CHECKING:
    from .app import App


class MemberKind(Enum):
    """What a name on a Collection resolves to."""

    OPERATION = auto()  # A collection operation (get, set, filter, ...)
    ADDRESS = auto()    # A document reference


@dataclass(frozen=True)
class Member:
    """Result of looking a name up on a Collection."""

    kind: MemberKind
    value: Any


class Collection:
    """
    One remote collection.

    A Collection is both an API and a namespace. Its operations (``get``,
    ``set``, ``has``, ``delete``, ``keys``, ``get_all``, ``for_each``,
    ``map``, ``filter``, ``slice``, ``find``, ``push``, ``clear``, ``size``)
    are ordinary methods; any other attribute name addresses the document
    with that id:

        users = db.users
        await users.get("alice")              # operation
        await users.alice.email.resolve()     # address: users/alice/email
        await users["get"].resolve()          # document whose id is "get"

    ``member()`` performs the lookup explicitly and reports which kind of
    member a name resolved to.
    """

    OPERATIONS = frozenset({
        "get", "set", "has", "delete", "keys", "get_all", "for_each",
        "map", "filter", "slice", "find", "push", "clear", "size",
        "length", "entries", "values",
    })

    def __init__(self, app: "App", name: str):
        self._app = app
        self._name = name

    @property
    def collection_name(self) -> str:
        return self._name

    # Lookup

    def member(self, name: str) -> Member:
        """Resolve ``name`` to an operation first, then to a document address."""
        if name in self.OPERATIONS:
            return Member(MemberKind.OPERATION, getattr(self, name))
        return Member(MemberKind.ADDRESS, self.ref(name))

    def ref(self, doc_id: Any) -> Ref:
        """Reference to the document ``doc_id``."""
        return Ref(self._app, Location(self._name).child(doc_id))

    def __getitem__(self, doc_id: Any) -> Ref:
        return self.ref(doc_id)

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.member(name).value

    # Operations

    def _request(self, **fields: Any) -> dict:
        return {"collection": self._name, **fields}

    async def get(self, doc_id: Any) -> Any:
        return await self._app.connector.get(self._request(id=str(doc_id)), self._app.context())

    async def set(self, doc_id: Any, value: Any) -> bool:
        return await self._app.connector.set(
            self._request(id=str(doc_id), value=value), self._app.context()
        )

    async def has(self, doc_id: Any) -> bool:
        return await self._app.connector.has(self._request(id=str(doc_id)), self._app.context())

    async def delete(self, doc_id: Any) -> bool:
        return await self._app.connector.delete(self._request(id=str(doc_id)), self._app.context())

    async def keys(self) -> List[str]:
        return await self._app.connector.keys(self._request(), self._app.context())

    async def get_all(self) -> List[Any]:
        return await self._app.connector.get_all(self._request(), self._app.context())

    async def for_each(self, callback: Callable[[Any], Any]) -> None:
        await self._app.connector.for_each(self._request(), self._app.context(), callback)

    async def map(self, projection: Union[Projection, str]) -> List[Any]:
        return await self._app.connector.map(
            self._request(**projection_data(projection)), self._app.context()
        )

    def filter(self, predicate: Union[Predicate, str]) -> Pipeline:
        """Start a pipeline with a filter step; chain more steps before resolving."""
        return Pipeline(self._app, self._name, [Operation("filter", predicate_data(predicate))])

    async def slice(self, start: int = 0, end: Optional[int] = None) -> List[Any]:
        return await self._app.connector.slice(
            self._request(start=start, end=end), self._app.context()
        )

    async def find(self, predicate: Union[Predicate, str]) -> Any:
        return await self._app.connector.find(
            self._request(**predicate_data(predicate)), self._app.context()
        )

    async def push(self, value: Any) -> str:
        """Insert a document and return the id the store gave it."""
        return await self._app.connector.push(self._request(value=value), self._app.context())

    async def clear(self) -> bool:
        return await self._app.connector.clear(self._request(), self._app.context())

    async def size(self) -> int:
        return await self._app.connector.size(self._request(), self._app.context())

    length = size

    async def entries(self) -> List[Tuple[Any, Any]]:
        """``(id, document)`` pairs for every document."""
        result: Dict[Any, Any] = {}
        await self.for_each(lambda doc: result.__setitem__(doc.get("id"), doc))
        return list(result.items())

    async def values(self) -> List[Any]:
        return [doc for _, doc in await self.entries()]

    async def __aiter__(self) -> AsyncIterator[Any]:
        for document in await self.get_all():
            yield document

    def __repr__(self) -> str:
        return f"Collection({self._name!r})"


class Database:
    """
    Namespace of collections; one Collection object per name.

        db.users is db["users"] is db.collection("users")
    """

    def __init__(self, app: "App"):
        self._app = app
        self._collections: Dict[str, Collection] = {}

    def collection(self, name: str) -> Collection:
        collection = self._collections.get(name)
        if collection is None:
            collection = self._collections[name] = Collection(self._app, name)
        return collection

    def __getitem__(self, name: str) -> Collection:
        return self.collection(name)

    def __getattr__(self, name: str) -> Collection:
        if name.startswith("_"):
            raise AttributeError(name)
        return self.collection(name)


class Functions:
    """
    Server-side functions, called by name.

        result = await functions.send_invite({"email": "bob@example.com"})
        result = await functions.call("send_invite", {...})
    """

    def __init__(self, app: "App"):
        self._app = app

    async def call(self, name: str, data: Any = None) -> Any:
        return await self._app.call_function(name, {} if data is None else data)

    def __getattr__(self, name: str) -> Callable[..., Any]:
        if name.startswith("_"):
            raise AttributeError(name)

        async def function(data: Any = None) -> Any:
            return await self.call(name, data)

        function.__name__ = name
        return function
