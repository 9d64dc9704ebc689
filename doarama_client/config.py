from __future__ import annotations

from dataclasses import dataclass
from os import getenv
from pathlib import Path
from typing import Mapping, Optional

from .errors import InvalidInputError

API_URL = "https://api.doarama.com/api/0.2"
DEFAULT_TIMEOUT = 30.0

ENV_API_URL = "DOARAMA_API_URL"
ENV_API_NAME = "DOARAMA_API_NAME"
ENV_API_KEY = "DOARAMA_API_KEY"
ENV_USER_ID = "DOARAMA_USER_ID"
ENV_USER_KEY = "DOARAMA_USER_KEY"
ENV_TIMEOUT = "DOARAMA_TIMEOUT"
ENV_RETRIES = "DOARAMA_RETRIES"
ENV_LOG_FILE = "DOARAMA_LOG_FILE"


@dataclass(frozen=True)
class AppConfig:
    """Process-wide configuration, resolved once at start-up.

    Attributes
    ----------
    api_url: str
        Base URL of the Doarama API.
    api_name: str
        Application name registered with Doarama.
    api_key: str
        Application key matching ``api_name``.
    user_id: str
        Anonymous user id; mutually exclusive with ``user_key``.
    user_key: str
        User key exchanged for a delegated session.
    timeout: float
        Per-request timeout in seconds.
    retries: int
        Extra attempts for transient failures (0 means a single attempt).
    log_file: Path | None
        Optional file that receives the full log.
    """
    api_url: str = API_URL
    api_name: str = ""
    api_key: str = ""
    user_id: str = ""
    user_key: str = ""
    timeout: float = DEFAULT_TIMEOUT
    retries: int = 0
    log_file: Path | None = None

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """Build a config from ``DOARAMA_*`` environment variables."""
        if environ is None:
            env = getenv
        else:
            env = environ.get
        log_file = env(ENV_LOG_FILE) or None
        return cls(
            api_url=env(ENV_API_URL) or API_URL,
            api_name=env(ENV_API_NAME) or "",
            api_key=env(ENV_API_KEY) or "",
            user_id=env(ENV_USER_ID) or "",
            user_key=env(ENV_USER_KEY) or "",
            timeout=parse_timeout(env(ENV_TIMEOUT) or str(DEFAULT_TIMEOUT), ENV_TIMEOUT),
            retries=parse_retries(env(ENV_RETRIES) or "0", ENV_RETRIES),
            log_file=Path(log_file) if log_file else None,
        )


def parse_timeout(value: str, source: str = "timeout") -> float:
    try:
        timeout = float(value)
    except ValueError:
        raise InvalidInputError(f"{source}: invalid timeout {value!r}") from None
    if timeout <= 0:
        raise InvalidInputError(f"{source}: timeout must be positive, got {value!r}")
    return timeout


def parse_retries(value: str, source: str = "retries") -> int:
    try:
        retries = int(value)
    except ValueError:
        raise InvalidInputError(f"{source}: invalid retry count {value!r}") from None
    if retries < 0:
        raise InvalidInputError(f"{source}: retry count must not be negative, got {value!r}")
    return retries
