"""
Conduit - Remote document store client.

Address fields of remote documents with chained access, subscribe to live
updates, and run query pipelines on the server, over HTTP, a WebSocket or an
in-process handler.

Submodules:
    conduit.connectors - HTTP, WebSocket and local transports
    conduit.realtime - Shared subscriptions over one socket
    conduit.expressions - Serializable predicates and projections
"""

from .app import App, init_app
from .codec import Codec, FileBlob
from .collection import Collection, Database, Functions, Member, MemberKind
from .config import AppConfig
from .connectors import HTTPConnector, LocalConnector, MemoryHandler, WSConnector
from .expressions import ASC, DESC, field
from .location import Location, Ref
from .pipeline import Operation, Pipeline
from .session import (
    Auth,
    JSONFileCredentialStorage,
    MemoryCredentialStorage,
    RequestContext,
    SessionState,
    SessionStore,
)
from .exceptions import (
    ConduitError,
    TransportError,
    ResponseError,
    AuthenticationError,
    CodecError,
    ProtocolError,
    PushTimeoutError,
    ConfigurationError,
    InvalidLocationError,
    UnsupportedOperationError,
)

__all__ = [
    # Main API
    "App",
    "AppConfig",
    "init_app",
    # Addressing
    "Database",
    "Collection",
    "Member",
    "MemberKind",
    "Location",
    "Ref",
    "Functions",
    # Queries
    "Pipeline",
    "Operation",
    "field",
    "ASC",
    "DESC",
    # Connectors
    "HTTPConnector",
    "WSConnector",
    "LocalConnector",
    "MemoryHandler",
    # Codec
    "Codec",
    "FileBlob",
    # Session
    "Auth",
    "SessionStore",
    "SessionState",
    "RequestContext",
    "MemoryCredentialStorage",
    "JSONFileCredentialStorage",
    # Exceptions
    "ConduitError",
    "TransportError",
    "ResponseError",
    "AuthenticationError",
    "CodecError",
    "ProtocolError",
    "PushTimeoutError",
    "ConfigurationError",
    "InvalidLocationError",
    "UnsupportedOperationError",
]

__version__ = "0.1.0"
