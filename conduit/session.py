"""Session state, credential storage and authentication."""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Union

from .exceptions import AuthenticationError

logger = logging.getLogger(__name__)

TOKEN_KEY = "token"
USER_ID_KEY = "userId"


@dataclass(frozen=True)
class RequestContext:
    """Credentials attached to a single connector call."""

    token: Optional[str] = None
    api_key: Optional[str] = None

    @property
    def authorization(self) -> str:
        """Value of the Authorization header, empty when signed out."""
        return f"Bearer {self.token}" if self.token else ""

    def headers(self) -> Dict[str, str]:
        """HTTP headers carrying these credentials."""
        return {
            "Content-Type": "application/json",
            "Authorization": self.authorization,
            "X-API-Key": self.api_key or "",
        }


@dataclass(frozen=True)
class SessionState:
    """The signed-in identity, replaced wholesale on every change."""

    token: Optional[str] = None
    user_id: Optional[str] = None

    @property
    def signed_in(self) -> bool:
        return self.token is not None


class Observable:
    """
    A value that notifies subscribers whenever it changes.

    Subscribers are called once with the current value when they subscribe,
    then with every new value.
    """

    def __init__(self, value: Any = None):
        self.value = value
        self._subscriptions: list[Callable[[Any], Any]] = []

    def subscribe(self, callback: Callable[[Any], Any]) -> Callable[[], None]:
        """
        Register a callback and call it with the current value.

        Returns:
            A function removing the callback; calling it twice is harmless
        """
        if not callable(callback):
            raise TypeError("Subscribe parameter must be a function.")
        self._subscriptions.append(callback)
        callback(self.value)

        def unsubscribe() -> None:
            if callback in self._subscriptions:
                self._subscriptions.remove(callback)

        return unsubscribe

    def set(self, value: Any) -> None:
        self.value = value
        self.notify(value)

    def update(self, callback: Callable[[Any], Any]) -> None:
        """Replace the value with ``callback(value)``."""
        if not callable(callback):
            raise TypeError("Update parameter must be a function.")
        self.set(callback(self.value))

    def notify(self, value: Any) -> None:
        for callback in list(self._subscriptions):
            callback(value)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)


class CredentialStorage(ABC):
    """Persistent key/value slots holding the session between runs."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class MemoryCredentialStorage(CredentialStorage):
    """Credential storage that lives only as long as the process."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JSONFileCredentialStorage(CredentialStorage):
    """Credential storage kept in a small JSON file.

    Example:
        storage = JSONFileCredentialStorage("~/.conduit/credentials.json")
        session = SessionStore(storage)
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path).expanduser()

    def _read(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable credential file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(data, f)

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if key in data:
            del data[key]
            self._write(data)


class SessionStore(Observable):
    """
    Holds the current SessionState and publishes every replacement.

    The state is loaded from credential storage on creation.
    """

    def __init__(self, storage: Optional[CredentialStorage] = None):
        self.storage = storage or MemoryCredentialStorage()
        super().__init__(
            SessionState(
                token=self.storage.get(TOKEN_KEY),
                user_id=self.storage.get(USER_ID_KEY),
            )
        )

    @property
    def token(self) -> Optional[str]:
        return self.value.token

    @property
    def user_id(self) -> Optional[str]:
        return self.value.user_id

    def replace(self, token: Optional[str], user_id: Optional[str]) -> None:
        """Persist and publish a new identity."""
        for key, value in ((TOKEN_KEY, token), (USER_ID_KEY, user_id)):
            if value is None:
                self.storage.delete(key)
            else:
                self.storage.set(key, value)
        self.set(SessionState(token=token, user_id=user_id))

    def clear(self) -> None:
        self.replace(None, None)

    def context(self, api_key: Optional[str] = None) -> RequestContext:
        """Snapshot the credentials for one call."""
        return RequestContext(token=self.token, api_key=api_key)


class Auth:
    """
    Sign-in, sign-up and sign-out against the server's auth endpoints.

    Args:
        session: The SessionStore to update
        request: Coroutine function ``request(path, data)`` posting to the server
    """

    def __init__(
        self,
        session: SessionStore,
        request: Callable[[str, dict], Awaitable[Any]],
    ):
        self.session = session
        self._request = request

    @property
    def value(self) -> SessionState:
        return self.session.value

    def subscribe(self, callback: Callable[[SessionState], Any]) -> Callable[[], None]:
        return self.session.subscribe(callback)

    async def sign_in(self, credentials: Dict[str, str]) -> bool:
        """Sign in with ``{"email": ..., "password": ...}``."""
        return await self._authenticate("/auth/signin", credentials)

    async def create_account(self, credentials: Dict[str, str]) -> bool:
        """Create an account and sign in to it."""
        return await self._authenticate("/auth/signup", credentials)

    def sign_out(self) -> None:
        self.session.clear()

    async def _authenticate(self, path: str, credentials: Dict[str, str]) -> bool:
        try:
            result = await self._request(path, dict(credentials))
            token, user_id = result["token"], result["userId"]
        except Exception as e:
            logger.info("Authentication at %s failed: %s", path, e)
            raise AuthenticationError() from e
        self.session.replace(token, user_id)
        return True
