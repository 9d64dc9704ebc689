import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional, Union

from .errors import AmbiguousCredentialsError, RemoteCallError

if TYPE_CHECKING:
    from .client import Client, Session
    from .retry import Cancellation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Anonymous:
    """A caller-chosen user id, sent as-is with every request."""
    user_id: str

    def headers(self, client: "Client", cancellation: Optional["Cancellation"] = None) -> dict[str, str]:
        return {"user-id": self.user_id}


class Delegated:
    """A user key exchanged for a delegated session key.

    The exchange happens on the first user-scoped request and its result is
    reused afterwards. Concurrent first requests share a single exchange.
    """
    DELEGATE_PATH = "/user/delegate"

    def __init__(self, user_key: str) -> None:
        self.user_key = user_key
        self._delegate_key: str | None = None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return "Delegated(user_key=***)"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Delegated):
            return NotImplemented
        return self.user_key == other.user_key

    def __hash__(self) -> int:
        return hash(self.user_key)

    @property
    def exchanged(self) -> bool:
        return self._delegate_key is not None

    def exchange(self, client: "Client", cancellation: Optional["Cancellation"] = None) -> str:
        resp = client.request(
            "delegate user",
            "POST",
            self.DELEGATE_PATH,
            headers={"user-key": self.user_key},
            cancellation=cancellation,
        )
        data = client.decode(resp, "delegate user")
        key = data.get("key") if isinstance(data, dict) else None
        if not key:
            raise RemoteCallError("delegate user", resp.status_code, "response has no delegate key")
        logger.info("Exchanged user key for delegated session")
        return str(key)

    def ensure_key(self, client: "Client", cancellation: Optional["Cancellation"] = None) -> str:
        if self._delegate_key is not None:
            return self._delegate_key
        with self._lock:
            if self._delegate_key is None:
                self._delegate_key = self.exchange(client, cancellation)
        return self._delegate_key

    def headers(self, client: "Client", cancellation: Optional["Cancellation"] = None) -> dict[str, str]:
        return {"user-key": self.ensure_key(client, cancellation)}


Identity = Union[Anonymous, Delegated]


def resolve_session(client: "Client", user_id: str = "", user_key: str = "") -> "Session":
    """Bind ``client`` to whichever single credential was supplied.

    Raises :class:`AmbiguousCredentialsError` if both or neither are set.
    Nothing is sent to the API here.
    """
    if user_id and not user_key:
        return client.anonymous(user_id)
    if user_key and not user_id:
        return client.delegate(user_key)
    raise AmbiguousCredentialsError()
