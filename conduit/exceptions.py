"""Exceptions for the conduit package."""


class ConduitError(Exception):
    """Base exception for all conduit errors."""

    pass


class TransportError(ConduitError):
    """Network failure while talking to the server."""

    pass


class ResponseError(TransportError):
    """Server answered with a non-2xx status."""

    def __init__(self, url: str, status: int, body: str = ""):
        self.url = url
        self.status = status
        self.body = body
        super().__init__(f"{url} returned HTTP {status}: {body}")


class AuthenticationError(ConduitError):
    """Sign-in or sign-up failed, whatever the underlying cause."""

    def __init__(self, message: str = "Error logging in, verify email and password"):
        super().__init__(message)


class CodecError(ConduitError):
    """A single value could not be converted to or from its wire envelope."""

    pass


class ProtocolError(ConduitError, ValueError):
    """An inbound socket message could not be understood."""

    pass


class PushTimeoutError(ConduitError, TimeoutError):
    """No reply arrived for a push sent over the socket."""

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"Push timed out after {timeout}s")


class ConfigurationError(ConduitError, ValueError):
    """Invalid application configuration."""

    pass


class InvalidLocationError(ConduitError, ValueError):
    """A path does not address a document."""

    pass


class UnsupportedOperationError(ConduitError, TypeError):
    """Value cannot be expressed as a serializable query operation."""

    pass

