import logging
from typing import Any, BinaryIO, Iterable, Optional

import requests

from .auth import Anonymous, Delegated, Identity
from .config import API_URL, DEFAULT_TIMEOUT, AppConfig
from .errors import NothingToVisualiseError, RemoteCallError
from .models import Activity, ActivityType, Visualisation
from .retry import BackoffRetry, Cancellation, RetryPolicy, SingleAttempt

logger = logging.getLogger(__name__)


class Client:
    """Application-level access to the Doarama API.

    Holds the API URL and application credentials. User-scoped work goes
    through a :class:`Session` obtained from :meth:`anonymous` or
    :meth:`delegate`.
    """

    def __init__(
        self,
        api_url: str = API_URL,
        api_name: str = "",
        api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        retry_policy: RetryPolicy | None = None,
        http: requests.Session | None = None,
    ) -> None:
        """Create a client.

        Parameters
        ----------
        api_url: str
            Base URL of the API, without a trailing slash.
        api_name: str
            Application name sent as the ``api-name`` header.
        api_key: str
            Application key sent as the ``api-key`` header.
        timeout: float
            Seconds to wait for each response.
        retry_policy: RetryPolicy | None
            How failed calls are retried (defaults to a single attempt).
        http: requests.Session | None
            Session used to send requests (a new one is created if omitted).
        """
        self._api_url = api_url.rstrip("/")
        self._api_name = api_name
        self._api_key = api_key
        self.timeout = timeout
        self.retry_policy = retry_policy or SingleAttempt()
        self.http = http or requests.Session()

    @classmethod
    def from_config(cls, config: AppConfig, http: requests.Session | None = None) -> "Client":
        if config.retries > 0:
            policy: RetryPolicy = BackoffRetry(attempts=config.retries + 1)
        else:
            policy = SingleAttempt()
        return cls(
            api_url=config.api_url,
            api_name=config.api_name,
            api_key=config.api_key,
            timeout=config.timeout,
            retry_policy=policy,
            http=http,
        )

    @property
    def api_url(self) -> str:
        return self._api_url

    @property
    def api_name(self) -> str:
        return self._api_name

    def close(self) -> None:
        self.http.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def request(
        self,
        operation: str,
        method: str,
        path: str,
        identity: Optional[Identity] = None,
        headers: Optional[dict[str, str]] = None,
        cancellation: Optional[Cancellation] = None,
        **kwargs: Any,
    ) -> requests.Response:
        """Send one API request under the retry policy.

        Raises :class:`RemoteCallError` on network failure, timeout or any
        non-2xx status, and :class:`OperationCancelled` if ``cancellation``
        is already set.
        """
        url = self._api_url + path
        all_headers = {"api-name": self._api_name, "api-key": self._api_key}
        # outside the retry loop; the delegate exchange is retried by its own request
        if identity is not None:
            all_headers.update(identity.headers(self, cancellation))
        if headers:
            all_headers.update(headers)

        def send() -> requests.Response:
            if cancellation is not None:
                cancellation.raise_if_cancelled(operation)
            try:
                resp = self.http.request(method, url, headers=all_headers, timeout=self.timeout, **kwargs)
            except requests.Timeout as e:
                raise RemoteCallError(operation, detail=f"timed out after {self.timeout}s") from e
            except requests.RequestException as e:
                raise RemoteCallError(operation, detail=str(e)) from e
            logger.debug("%s %s -> HTTP %s", method, url, resp.status_code)
            if not 200 <= resp.status_code < 300:
                raise RemoteCallError(
                    operation, resp.status_code, _error_detail(resp), retry_after=_retry_after(resp)
                )
            return resp

        return self.retry_policy.call(operation, send, cancellation)

    @staticmethod
    def decode(resp: requests.Response, operation: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteCallError(operation, resp.status_code, "invalid JSON in response") from e

    def anonymous(self, user_id: str) -> "Session":
        return Session(self, Anonymous(user_id))

    def delegate(self, user_key: str) -> "Session":
        return Session(self, Delegated(user_key))

    def activity_types(self, cancellation: Optional[Cancellation] = None) -> list[ActivityType]:
        """Return every known activity type, sorted by name."""
        resp = self.request("query activity types", "GET", "/activityType", cancellation=cancellation)
        data = self.decode(resp, "query activity types")
        try:
            types = [ActivityType(id=int(item["id"]), name=str(item["name"])) for item in data]
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteCallError("query activity types", resp.status_code, f"malformed activity type: {e}") from e
        return sorted(types, key=lambda t: t.name)

    def activity(self, activity_id: int) -> Activity:
        """Reference an activity by id. Use :meth:`Session.activity` to change it."""
        return Activity(self, activity_id)

    def visualisation(self, key: str) -> Visualisation:
        return Visualisation(key=key, api_url=self._api_url)


class Session:
    """A :class:`Client` bound to one user identity.

    ``identity`` is either :class:`~doarama_client.auth.Anonymous` or
    :class:`~doarama_client.auth.Delegated`, never both.
    """

    def __init__(self, client: Client, identity: Identity) -> None:
        self.client = client
        self.identity = identity

    def __repr__(self) -> str:
        return f"Session(identity={self.identity!r})"

    @property
    def api_url(self) -> str:
        return self.client.api_url

    def request(self, operation: str, method: str, path: str, **kwargs: Any) -> requests.Response:
        return self.client.request(operation, method, path, identity=self.identity, **kwargs)

    def activity_types(self, cancellation: Optional[Cancellation] = None) -> list[ActivityType]:
        return self.client.activity_types(cancellation)

    def create_activity(self, name: str, gps_track: BinaryIO, cancellation: Optional[Cancellation] = None) -> Activity:
        """Upload a GPX or IGC track as a new activity.

        The stream is read fully before sending so a retried request resends
        the same bytes; closing it is left to the caller.
        """
        content = gps_track.read()
        logger.debug("Read %d bytes from %s", len(content), name)
        files = {"gps_track": (name, content, "application/octet-stream")}
        resp = self.request("create activity", "POST", "/activity", files=files, cancellation=cancellation)
        data = self.client.decode(resp, "create activity")
        try:
            activity_id = int(data["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise RemoteCallError("create activity", resp.status_code, "response has no activity id") from e
        logger.info("Created activity %s from %s", activity_id, name)
        return Activity(self, activity_id)

    def activity(self, activity_id: int) -> Activity:
        return Activity(self, activity_id)

    def create_visualisation(
        self, activities: Iterable[Activity], cancellation: Optional[Cancellation] = None
    ) -> Visualisation:
        """Combine ``activities`` into a visualisation, keeping their order."""
        activities = list(activities)
        if not activities:
            raise NothingToVisualiseError()
        payload = {"activityIds": [a.id for a in activities]}
        resp = self.request("create visualisation", "POST", "/visualisation", json=payload, cancellation=cancellation)
        data = self.client.decode(resp, "create visualisation")
        key = data.get("key") if isinstance(data, dict) else None
        if not key:
            raise RemoteCallError("create visualisation", resp.status_code, "response has no visualisation key")
        logger.info("Created visualisation %s from activities %s", key, payload["activityIds"])
        return Visualisation(key=str(key), api_url=self.client.api_url)

    def visualisation(self, key: str) -> Visualisation:
        return self.client.visualisation(key)


def _error_detail(resp: requests.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        return (resp.text or "").strip()[:200]
    if isinstance(data, dict):
        for field in ("error", "message", "detail"):
            if data.get(field):
                return str(data[field])
    return str(data)[:200]


def _retry_after(resp: requests.Response) -> float | None:
    ra = resp.headers.get("Retry-After") if resp.headers is not None else None
    if not ra:
        return None
    try:
        return float(ra)
    except ValueError:
        return None
