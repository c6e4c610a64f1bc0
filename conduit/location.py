"""Locations of remote fields and the lazy references that build them."""

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, Optional, Tuple

from .exceptions import InvalidLocationError

if TYPE_CHECKING:
    from .app import App


@dataclass(frozen=True)
class Location:
    """Address of one field of one document: ``(collection, id, path)``.

    The first segment after the collection is the document id; every later
    segment descends into the document.
    """

    collection: str
    id: Optional[str] = None
    path: Tuple[str, ...] = ()

    def child(self, segment: Any) -> "Location":
        """The location one segment deeper."""
        segment = str(segment)
        if self.id is None:
            return Location(self.collection, segment)
        return Location(self.collection, self.id, self.path + (segment,))

    @property
    def segments(self) -> Tuple[str, ...]:
        head = (self.collection,) if self.id is None else (self.collection, self.id)
        return head + self.path

    @property
    def key(self) -> str:
        """Subscription key, the dotted form of the location."""
        return ".".join(self.segments)

    def to_request(self) -> dict:
        return {"collection": self.collection, "id": self.id, "path": list(self.path)}

    @classmethod
    def parse(cls, dotted: str) -> "Location":
        """Build a location from ``"collection.id.field..."``."""
        parts = [p for p in dotted.split(".") if p]
        if not parts:
            raise InvalidLocationError("Empty location")
        location = cls(parts[0])
        for part in parts[1:]:
            location = location.child(part)
        return location


class Ref:
    """
    A lazy reference to a remote field.

    Attribute and item access only build a longer reference; nothing is sent
    until one of the terminal methods is called:

        name = db.users.alice.profile.name       # no network
        await name.resolve()                     # one get
        await name.set("Alice")                  # one set
        await name.delete()                      # one delete
        unsubscribe = name.subscribe(print)      # live updates

    Fields whose names clash with these methods, start with an underscore or
    are not identifiers are reached with ``ref["set"]`` or ``ref.child("set")``.
    """

    __slots__ = ("_app", "_location")

    def __init__(self, app: "App", location: Location):
        object.__setattr__(self, "_app", app)
        object.__setattr__(self, "_location", location)

    @property
    def location(self) -> Location:
        return self._location

    @property
    def key(self) -> str:
        return self._location.key

    def child(self, *segments: Any) -> "Ref":
        location = self._location
        for segment in segments:
            location = location.child(segment)
        return Ref(self._app, location)

    def __getitem__(self, segment: Any) -> "Ref":
        return self.child(segment)

    def __getattr__(self, name: str) -> "Ref":
        if name.startswith("_"):
            raise AttributeError(name)
        return self.child(name)

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(
            f"Cannot assign {name!r} on a Ref; use 'await ref.child({name!r}).set(value)'"
        )

    def __delattr__(self, name: str) -> None:
        raise AttributeError(
            f"Cannot delete {name!r} on a Ref; use 'await ref.child({name!r}).delete()'"
        )

    def _request(self) -> dict:
        if self._location.id is None:
            raise InvalidLocationError(f"{self.key!r} does not address a document")
        return self._location.to_request()

    async def resolve(self) -> Any:
        """Read the value at this location."""
        return await self._app.connector.get(self._request(), self._app.context())

    async def set(self, value: Any) -> bool:
        """Write ``value`` at this location.

        Returns:
            False if the store rejected the write
        """
        request = self._request()
        request["value"] = value
        return await self._app.connector.set(request, self._app.context())

    async def delete(self) -> bool:
        """Delete the value at this location."""
        return await self._app.connector.delete(self._request(), self._app.context())

    def subscribe(self, callback: Callable[[Any], Any]) -> Callable[[], None]:
        """Receive the value at this location now (if known) and on every change.

        Returns:
            A function that stops the updates
        """
        return self._app.multiplexer.subscribe(
            self.key, self._request(), "get", callback, self._app.context()
        )

    def __repr__(self) -> str:
        return f"Ref({self.key!r})"
