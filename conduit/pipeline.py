"""Chainable query pipelines executed by the server in one round trip."""

import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, List, Optional, Union

from .expressions import ASC, Field, Predicate, Projection, predicate_data, projection_data, sort_data

if TYPE_CHECKING:
    from .app import App

logger = logging.getLogger(__name__)


@dataclass
class Operation:
    """One step of a pipeline."""

    type: str
    data: Optional[dict] = None

    def to_wire(self) -> dict:
        wire: dict = {"type": self.type}
        if self.data is not None:
            wire["data"] = self.data
        return wire


class Pipeline:
    """
    Ordered list of operations over one collection.

    Every chain call appends one operation and returns the same builder; the
    whole list is sent as a single ``filter`` request.

    Example:
        adults = (
            db.users.filter(field("age") >= 18)
            .order_by("name")
            .slice(0, 10)
        )
        first_ten = await adults.resolve()
        unsubscribe = adults.subscribe(print)
    """

    def __init__(self, app: "App", collection: str, operations: Optional[List[Operation]] = None):
        self._app = app
        self.collection = collection
        self.operations: List[Operation] = list(operations or [])

    def map(self, projection: Union[Projection, str]) -> "Pipeline":
        self.operations.append(Operation("map", projection_data(projection)))
        return self

    def filter(self, predicate: Union[Predicate, str]) -> "Pipeline":
        self.operations.append(Operation("filter", predicate_data(predicate)))
        return self

    def slice(self, start: int = 0, end: Optional[int] = None) -> "Pipeline":
        self.operations.append(Operation("slice", {"start": start, "end": end}))
        return self

    def order_by(self, property: Union[Field, str], order: str = ASC) -> "Pipeline":
        self.operations.append(Operation("orderBy", sort_data(property, order)))
        return self

    def length(self) -> "Pipeline":
        self.operations.append(Operation("length"))
        return self

    def to_request(self) -> dict:
        return {
            "collection": self.collection,
            "operations": [op.to_wire() for op in self.operations],
        }

    @property
    def key(self) -> str:
        """Subscription key: the collection followed by the serialized operations."""
        operations = [op.to_wire() for op in self.operations]
        return self.collection + json.dumps(operations, separators=(",", ":"))

    async def resolve(self) -> Any:
        """Run the pipeline once and return its result."""
        return await self._app.connector.filter(self.to_request(), self._app.context())

    async def then(
        self,
        on_success: Callable[[Any], Any],
        on_error: Optional[Callable[[Exception], Any]] = None,
    ) -> None:
        """Run the pipeline once and hand the outcome to exactly one callback.

        Without ``on_error`` a failure is raised to the caller.
        """
        try:
            result = await self.resolve()
        except Exception as e:
            if on_error is None:
                raise
            logger.debug("Pipeline %s failed: %s", self.key, e)
            on_error(e)
            return
        on_success(result)

    def subscribe(self, callback: Callable[[Any], Any]) -> Callable[[], None]:
        """Receive the pipeline result now (if known) and whenever it changes."""
        return self._app.multiplexer.subscribe(
            self.key, self.to_request(), "filter", callback, self._app.context()
        )

    def __repr__(self) -> str:
        return f"Pipeline({self.key!r})"
