"""In-memory operation handler for the local connector."""

import copy
import uuid
from typing import Any, Dict, Iterable, List, Optional

from ..exceptions import UnsupportedOperationError
from ..expressions import DESC, MISSING, get_field, predicate_from_wire, project


def _with_id(doc_id: str, document: Any) -> Any:
    if isinstance(document, dict) and "id" not in document:
        return {"id": doc_id, **document}
    return document


def _predicate(data: Dict[str, Any]):
    if "predicate" in data:
        return predicate_from_wire(data["predicate"])
    raise UnsupportedOperationError(
        "MemoryHandler cannot execute callback source text; use a predicate"
    )


def _projection(data: Dict[str, Any]) -> Dict[str, Any]:
    if "projection" in data:
        return data["projection"]
    raise UnsupportedOperationError(
        "MemoryHandler cannot execute callback source text; use a projection"
    )


def _sort_key(value: Any):
    # Missing and None sort first; mixed types group by type name
    if value is MISSING or value is None:
        return (0, "", 0)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, "number", value)
    return (1, type(value).__name__, value)


def apply_operations(documents: List[Any], operations: Iterable[Dict[str, Any]]) -> Any:
    """Run a serialized pipeline over a list of documents, in order."""
    result: Any = list(documents)
    for operation in operations:
        kind = operation.get("type")
        data = operation.get("data") or {}
        if kind == "filter":
            predicate = _predicate(data)
            result = [doc for doc in result if predicate.evaluate(doc)]
        elif kind == "map":
            projection = _projection(data)
            result = [project(doc, projection) for doc in result]
        elif kind == "slice":
            result = result[data.get("start", 0):data.get("end")]
        elif kind == "orderBy":
            result = sorted(
                result,
                key=lambda doc: _sort_key(get_field(doc, data["property"])),
                reverse=data.get("order", "ASC") == DESC,
            )
        elif kind == "length":
            result = len(result)
        else:
            raise UnsupportedOperationError(f"Unknown pipeline operation: {kind!r}")
    return result


class MemoryHandler:
    """
    In-memory document store implementing the connector operations.

    Useful for tests and for running without a server. Data is lost when the
    process ends. Values are copied on the way in and out, so callers never
    share structure with the store.

    Example:
        app = init_app(AppConfig(connector="LOCAL", op_handlers=MemoryHandler()))
        await app.db.users.set("alice", {"name": "Alice"})
    """

    def __init__(self, data: Optional[Dict[str, Dict[str, Any]]] = None):
        self._data: Dict[str, Dict[str, Any]] = copy.deepcopy(data) if data else {}

    def _collection(self, request: Dict[str, Any]) -> Dict[str, Any]:
        return self._data.setdefault(request["collection"], {})

    def _documents(self, request: Dict[str, Any]) -> List[Any]:
        collection = self._collection(request)
        return [_with_id(doc_id, doc) for doc_id, doc in collection.items()]

    # Single documents and fields

    def get(self, request: Dict[str, Any]) -> Any:
        collection = self._collection(request)
        doc_id = str(request["id"])
        if doc_id not in collection:
            return None
        path = request.get("path") or []
        if not path:
            return copy.deepcopy(_with_id(doc_id, collection[doc_id]))
        value = get_field(collection[doc_id], ".".join(str(p) for p in path))
        return None if value is MISSING else copy.deepcopy(value)

    def set(self, request: Dict[str, Any]) -> bool:
        collection = self._collection(request)
        doc_id = str(request["id"])
        value = copy.deepcopy(request.get("value"))
        path = [str(p) for p in request.get("path") or []]
        if not path:
            collection[doc_id] = value
            return True

        node = collection.get(doc_id)
        if not isinstance(node, dict):
            node = collection[doc_id] = {}
        for part in path[:-1]:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[path[-1]] = value
        return True

    def delete(self, request: Dict[str, Any]) -> bool:
        collection = self._collection(request)
        doc_id = str(request["id"])
        path = [str(p) for p in request.get("path") or []]
        if doc_id not in collection:
            return False
        if not path:
            del collection[doc_id]
            return True

        node = collection[doc_id]
        for part in path[:-1]:
            if not isinstance(node, dict) or part not in node:
                return False
            node = node[part]
        if isinstance(node, dict) and path[-1] in node:
            del node[path[-1]]
            return True
        return False

    def has(self, request: Dict[str, Any]) -> bool:
        return str(request["id"]) in self._collection(request)

    def push(self, request: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self._collection(request)[doc_id] = copy.deepcopy(request.get("value"))
        return doc_id

    # Whole collections

    def keys(self, request: Dict[str, Any]) -> List[str]:
        return list(self._collection(request).keys())

    def get_all(self, request: Dict[str, Any]) -> List[Any]:
        return copy.deepcopy(self._documents(request))

    def size(self, request: Dict[str, Any]) -> int:
        return len(self._collection(request))

    def clear(self, request: Dict[str, Any]) -> bool:
        self._collection(request).clear()
        return True

    def slice(self, request: Dict[str, Any]) -> List[Any]:
        documents = self._documents(request)
        return copy.deepcopy(documents[request.get("start", 0):request.get("end")])

    def map(self, request: Dict[str, Any]) -> List[Any]:
        projection = _projection(request)
        return copy.deepcopy([project(doc, projection) for doc in self._documents(request)])

    def find(self, request: Dict[str, Any]) -> Any:
        predicate = _predicate(request)
        for doc in self._documents(request):
            if predicate.evaluate(doc):
                return copy.deepcopy(doc)
        return None

    def filter(self, request: Dict[str, Any]) -> Any:
        result = apply_operations(self._documents(request), request.get("operations", []))
        return copy.deepcopy(result)
