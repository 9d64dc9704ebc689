"""In-memory stand-ins for the HTTP layer used by the client tests."""
from __future__ import annotations

import json
from typing import Any

import requests

API_URL = "https://api.test/api/0.2"


class FakeResponse:
    def __init__(
        self, status_code: int = 200, body: Any = None, text: str | None = None, headers: dict[str, str] | None = None
    ) -> None:
        self.status_code = status_code
        self.headers = dict(headers or {})
        self._body = body
        if text is None:
            text = "" if body is None else json.dumps(body)
        self.text = text

    def json(self) -> Any:
        if self._body is None:
            raise ValueError("no JSON body")
        return self._body



class FakeHTTP:
    """Routes ``(method, path)`` to canned responses and records every call.

    A route may hold a single handler or a list consumed one per call.
    Unrouted requests get a 404.
    """

    def __init__(self, routes: dict[tuple[str, str], Any] | None = None) -> None:
        self.routes: dict[tuple[str, str], Any] = dict(routes or {})
        self.calls: list[dict[str, Any]] = []
        self.closed = False

    def request(self, method: str, url: str, headers: dict[str, str] | None = None, timeout: float | None = None, **kwargs: Any) -> FakeResponse:
        assert url.startswith(API_URL), url
        path = url[len(API_URL):]
        self.calls.append({"method": method, "path": path, "headers": dict(headers or {}), "timeout": timeout, **kwargs})
        handler = self.routes.get((method, path))
        if isinstance(handler, list):
            handler = handler.pop(0)
        if handler is None:
            return FakeResponse(404, {"error": "not found"})
        if isinstance(handler, BaseException):
            raise handler
        if callable(handler):
            return handler(method, path, **kwargs)
        return handler

    def close(self) -> None:
        self.closed = True

    def paths(self, method: str | None = None) -> list[str]:
        return [c["path"] for c in self.calls if method is None or c["method"] == method]


def connection_error() -> requests.ConnectionError:
    return requests.ConnectionError("connection refused")
