"""Connectors: interchangeable transports for document operations."""

from .base import Connector, OPERATIONS
from .http import HTTPConnector
from .websocket import WSConnector, DEFAULT_PUSH_TIMEOUT
from .local import LocalConnector
from .memory import MemoryHandler, apply_operations

__all__ = [
    "Connector",
    "OPERATIONS",
    "HTTPConnector",
    "WSConnector",
    "DEFAULT_PUSH_TIMEOUT",
    "LocalConnector",
    "MemoryHandler",
    "apply_operations",
]
