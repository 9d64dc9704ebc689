"""Exceptions raised by the Doarama client.

Everything derives from :class:`DoaramaError` so the command line can catch
one type per item. Input problems are raised before any request is sent.
"""
from __future__ import annotations

from pathlib import Path


class DoaramaError(Exception):
    """Base class for all client errors."""


class InvalidInputError(DoaramaError):
    """Input rejected locally, before any remote call."""


class AmbiguousCredentialsError(InvalidInputError):
    def __init__(self) -> None:
        super().__init__("exactly one of --userid and --userkey must be specified")


class NothingToVisualiseError(InvalidInputError):
    def __init__(self) -> None:
        super().__init__("no activities specified, nothing to visualise")


class RemoteCallError(DoaramaError):
    """A request to the Doarama API failed.

    Covers network errors, timeouts, non-2xx responses and bodies that could
    not be decoded. ``status_code`` is ``None`` when no response was received;
    ``retry_after`` holds the server's Retry-After hint in seconds, if any.
    """

    def __init__(
        self, operation: str, status_code: int | None = None, detail: str = "", retry_after: float | None = None
    ) -> None:
        self.operation = operation
        self.retry_after = retry_after
        self.status_code = status_code
        self.detail = detail
        msg = f"{operation} failed"
        if status_code is not None:
            msg += f" (HTTP {status_code})"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)

    @property
    def retryable(self) -> bool:
        if self.status_code is None:
            return True
        return self.status_code == 429 or 500 <= self.status_code < 600


class OperationCancelled(DoaramaError):
    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"{operation} cancelled")


class TrackUploadError(DoaramaError):
    """Failure while turning one track file into an activity."""

    def __init__(self, path: Path | str, error: BaseException) -> None:
        self.path = Path(path)
        self.error = error
        super().__init__(f"{self.path}: {error}")
