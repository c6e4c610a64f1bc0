"""Serializable predicates, projections and sort specs for remote queries.

Query operations travel to the server as data, never as code:

    field("age") >= 18                 {"op": "ge", "field": "age", "value": 18}
    (field("age") >= 18) & ~field("banned").exists()
                                       {"op": "and", "args": [..., {"op": "not", ...}]}
    field("address.city")              {"field": "address.city"}
    {"name": "profile.name"}           {"fields": {"name": "profile.name"}}

Raw strings are still accepted where a callback used to go and are shipped
verbatim as remote source text (``{"callbackFn": ..., "thisArg": {}}``).
That legacy form is only understood by servers that execute source text;
Python callables cannot be serialized and are rejected.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, Mapping, Union

from .exceptions import UnsupportedOperationError

ASC = "ASC"
DESC = "DESC"

MISSING = object()


def get_field(document: Any, name: str) -> Any:
    """Read a dotted field path from nested dicts and lists.

    Returns:
        The value, or MISSING when any segment is missing
    """
    value = document
    for part in name.split("."):
        if isinstance(value, dict):
            if part not in value:
                return MISSING
            value = value[part]
        elif isinstance(value, list) and part.lstrip("-").isdigit():
            index = int(part)
            if not -len(value) <= index < len(value):
                return MISSING
            value = value[index]
        else:
            return MISSING
    return value


def _present(value: Any) -> Any:
    return None if value is MISSING else value


class Predicate(ABC):
    """A boolean condition on one document."""

    @abstractmethod
    def to_wire(self) -> dict:
        pass

    @abstractmethod
    def evaluate(self, document: Any) -> bool:
        pass

    def __and__(self, other: "Predicate") -> "Predicate":
        return And(self, other)

    def __or__(self, other: "Predicate") -> "Predicate":
        return Or(self, other)

    def __invert__(self) -> "Predicate":
        return Not(self)

    def __bool__(self):
        raise TypeError(
            "Predicates cannot be used as booleans; combine them with &, | and ~"
        )


def _compare(op: str, actual: Any, expected: Any) -> bool:
    if op == "exists":
        return actual is not MISSING
    if op == "ne":
        return actual is MISSING or actual != expected
    if actual is MISSING:
        return False
    try:
        if op == "eq":
            return actual == expected
        if op == "gt":
            return actual > expected
        if op == "ge":
            return actual >= expected
        if op == "lt":
            return actual < expected
        if op == "le":
            return actual <= expected
        if op == "in":
            return actual in expected
        if op == "contains":
            return expected in actual
    except TypeError:
        return False
    raise UnsupportedOperationError(f"Unknown comparison: {op}")


COMPARISONS = ("eq", "ne", "gt", "ge", "lt", "le", "in", "contains", "exists")


class Comparison(Predicate):
    """Compares one field against a constant."""

    def __init__(self, op: str, field: str, value: Any = None):
        if op not in COMPARISONS:
            raise UnsupportedOperationError(f"Unknown comparison: {op}")
        self.op = op
        self.field = field
        self.value = value

    def to_wire(self) -> dict:
        wire = {"op": self.op, "field": self.field}
        if self.op != "exists":
            wire["value"] = self.value
        return wire

    def evaluate(self, document: Any) -> bool:
        return _compare(self.op, get_field(document, self.field), self.value)

    def __repr__(self) -> str:
        return f"Comparison({self.op!r}, {self.field!r}, {self.value!r})"


class And(Predicate):
    def __init__(self, *args: Predicate):
        self.args = list(args)

    def to_wire(self) -> dict:
        return {"op": "and", "args": [a.to_wire() for a in self.args]}

    def evaluate(self, document: Any) -> bool:
        return all(a.evaluate(document) for a in self.args)


class Or(Predicate):
    def __init__(self, *args: Predicate):
        self.args = list(args)

    def to_wire(self) -> dict:
        return {"op": "or", "args": [a.to_wire() for a in self.args]}

    def evaluate(self, document: Any) -> bool:
        return any(a.evaluate(document) for a in self.args)


class Not(Predicate):
    def __init__(self, arg: Predicate):
        self.arg = arg

    def to_wire(self) -> dict:
        return {"op": "not", "arg": self.arg.to_wire()}

    def evaluate(self, document: Any) -> bool:
        return not self.arg.evaluate(document)


class Field:
    """
    A dotted field path inside a document.

    Comparison operators build Predicates instead of comparing:

        field("age") > 30
        field("tags").contains("admin")
        field("status").is_in(["open", "pending"])
    """

    __hash__ = None

    def __init__(self, name: str):
        if not name:
            raise ValueError("Field name must not be empty")
        self.name = name

    def __eq__(self, value: Any) -> Comparison:  # type: ignore[override]
        return Comparison("eq", self.name, value)

    def __ne__(self, value: Any) -> Comparison:  # type: ignore[override]
        return Comparison("ne", self.name, value)

    def __gt__(self, value: Any) -> Comparison:
        return Comparison("gt", self.name, value)

    def __ge__(self, value: Any) -> Comparison:
        return Comparison("ge", self.name, value)

    def __lt__(self, value: Any) -> Comparison:
        return Comparison("lt", self.name, value)

    def __le__(self, value: Any) -> Comparison:
        return Comparison("le", self.name, value)

    def is_in(self, values: Iterable[Any]) -> Comparison:
        return Comparison("in", self.name, list(values))

    def contains(self, value: Any) -> Comparison:
        return Comparison("contains", self.name, value)

    def exists(self) -> Comparison:
        return Comparison("exists", self.name)

    def to_wire(self) -> dict:
        return {"field": self.name}

    def evaluate(self, document: Any) -> Any:
        return _present(get_field(document, self.name))

    def __repr__(self) -> str:
        return f"field({self.name!r})"


def field(name: str) -> Field:
    """Refer to a (dotted) field of a document."""
    return Field(name)


def predicate_from_wire(wire: Mapping[str, Any]) -> Predicate:
    """Rebuild a Predicate from its wire form."""
    op = wire.get("op")
    if op == "and":
        return And(*(predicate_from_wire(a) for a in wire.get("args", [])))
    if op == "or":
        return Or(*(predicate_from_wire(a) for a in wire.get("args", [])))
    if op == "not":
        return Not(predicate_from_wire(wire["arg"]))
    if op in COMPARISONS and isinstance(wire.get("field"), str):
        return Comparison(op, wire["field"], wire.get("value"))
    raise UnsupportedOperationError(f"Unknown predicate: {wire!r}")


Projection = Union[Field, str, Mapping[str, Union[Field, str]]]


def _field_name(value: Union[Field, str]) -> str:
    return value.name if isinstance(value, Field) else value


def _legacy(source: str) -> dict:
    return {"callbackFn": source, "thisArg": {}}


def predicate_data(value: Union[Predicate, str]) -> dict:
    """Operation data for a filter or find.

    Raises:
        UnsupportedOperationError: For Python callables and other values
    """
    if isinstance(value, Predicate):
        return {"predicate": value.to_wire()}
    if isinstance(value, str):
        return _legacy(value)
    if callable(value):
        raise UnsupportedOperationError(
            "Python callables cannot run remotely; build a predicate with field() instead"
        )
    raise UnsupportedOperationError(f"Cannot filter with {type(value).__name__}")


def projection_data(value: Union[Projection, str]) -> dict:
    """Operation data for a map.

    A Field projects one value; a mapping of output names to fields projects
    a new document; a bare string is legacy source text.
    """
    if isinstance(value, Field):
        return {"projection": value.to_wire()}
    if isinstance(value, Mapping):
        return {"projection": {"fields": {k: _field_name(v) for k, v in value.items()}}}
    if isinstance(value, str):
        return _legacy(value)
    if callable(value):
        raise UnsupportedOperationError(
            "Python callables cannot run remotely; project with field() or a mapping instead"
        )
    raise UnsupportedOperationError(f"Cannot map with {type(value).__name__}")


def sort_data(property: Union[Field, str], order: str = ASC) -> dict:
    """Operation data for an orderBy."""
    order = order.upper()
    if order not in (ASC, DESC):
        raise ValueError(f"Sort order must be {ASC} or {DESC}, got {order!r}")
    return {"property": _field_name(property), "order": order}


def project(document: Any, wire: Mapping[str, Any]) -> Any:
    """Apply a projection in wire form to one document."""
    if "fields" in wire:
        fields: Dict[str, str] = wire["fields"]
        return {name: _present(get_field(document, path)) for name, path in fields.items()}
    if "field" in wire:
        return _present(get_field(document, wire["field"]))
    raise UnsupportedOperationError(f"Unknown projection: {wire!r}")
