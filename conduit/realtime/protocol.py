"""WebSocket message types for realtime subscriptions."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional
import json

from ..exceptions import ProtocolError


class Operation(Enum):
    """Operations carried over the socket."""

    # Client -> Server (subscriptions) and Server -> Client (events)
    GET = "get"
    FILTER = "filter"
    PUSH = "push"

    # Client -> Server
    UNSUBSCRIBE = "unsubscribe"


class FilterContent(Enum):
    """How a filter event changes the cached result list."""

    RESET = "reset"    # Replace the whole list
    ADD = "add"        # Append one document
    EDIT = "edit"      # Replace the document with the same id
    DELETE = "delete"  # Remove the document with the same id
    DROP = "drop"      # Empty the list


# Client -> Server messages

@dataclass
class SubscribeMessage:
    """Ask the server to stream events for one subscription key.

    The request fields are spread into the top level of the message, e.g.
    ``{"operation": "get", "eventName": "users.alice.name",
    "collection": "users", "id": "alice", "path": ["name"],
    "authorization": "Bearer ..."}``.
    """

    operation: Operation
    event_name: str
    request: dict = field(default_factory=dict)
    authorization: str = ""

    def to_dict(self) -> dict:
        data = {"operation": self.operation.value, "eventName": self.event_name}
        data.update(self.request)
        data["authorization"] = self.authorization
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class UnsubscribeMessage:
    """Tell the server nobody listens to a key any more."""

    event_name: str
    authorization: str = ""

    def to_dict(self) -> dict:
        return {
            "operation": Operation.UNSUBSCRIBE.value,
            "eventName": self.event_name,
            "authorization": self.authorization,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


# Server -> Client messages

@dataclass
class EventMessage:
    """A value update for one subscription key."""

    operation: Operation
    key: str
    value: Any = None
    content: Optional[str] = None  # Only meaningful for filter events

    @property
    def filter_content(self) -> Optional[FilterContent]:
        """The filter update kind, or None if absent or unknown."""
        try:
            return FilterContent(self.content)
        except ValueError:
            return None


_EVENT_OPERATIONS = {Operation.GET, Operation.FILTER, Operation.PUSH}


def parse_message(raw: str) -> EventMessage:
    """Parse an inbound socket frame.

    ``get`` events are keyed by ``fullPath``; ``filter`` and ``push`` events
    by ``eventName``.

    Raises:
        ProtocolError: If the frame is not a recognizable event
    """
    try:
        data = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise ProtocolError(f"Invalid JSON frame: {e}")

    if not isinstance(data, dict):
        raise ProtocolError(f"Expected an object, got {type(data).__name__}")

    try:
        operation = Operation(data.get("operation"))
    except ValueError:
        raise ProtocolError(f"Unknown operation: {data.get('operation')!r}")
    if operation not in _EVENT_OPERATIONS:
        raise ProtocolError(f"Unexpected operation from server: {operation.value}")

    if operation is Operation.GET:
        key = data.get("fullPath", data.get("eventName"))
    else:
        key = data.get("eventName")
    if not isinstance(key, str):
        raise ProtocolError(f"{operation.value} event without a key")

    return EventMessage(
        operation=operation,
        key=key,
        value=data.get("value"),
        content=data.get("content"),
    )
