"""Retry policies and the cancellation signal used around remote calls.

The client attempts every request exactly once unless a different
:class:`RetryPolicy` is supplied. Policies only decide whether and when to
call again; building and sending the request stays in the client.
"""
from __future__ import annotations

import logging
import random
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Optional, TypeVar

from .errors import OperationCancelled, RemoteCallError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Cancellation:
    """Abort signal threaded through every remote call.

    Set it from another thread (or a signal handler) to stop an in-flight
    batch; the next call raises :class:`OperationCancelled`.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self, operation: str) -> None:
        if self._event.is_set():
            raise OperationCancelled(operation)

    def wait(self, seconds: float) -> bool:
        """Sleep up to ``seconds``; returns True if cancelled meanwhile."""
        return self._event.wait(seconds)


class RetryPolicy(ABC):
    """Strategy deciding how many times a remote call is attempted."""

    @abstractmethod
    def call(self, operation: str, func: Callable[[], T], cancellation: Optional[Cancellation] = None) -> T:
        """Run ``func`` under this policy and return its result."""
        pass


class SingleAttempt(RetryPolicy):
    """Call once, surface any failure unchanged."""

    def call(self, operation: str, func: Callable[[], T], cancellation: Optional[Cancellation] = None) -> T:
        return func()


class BackoffRetry(RetryPolicy):
    """Retry transient failures with exponential backoff and jitter.

    Only :class:`RemoteCallError` instances whose ``retryable`` flag is set
    (no response, 429, 5xx) are retried. Client errors such as 404 fail
    straight away. A Retry-After hint from the server, capped at five
    minutes, replaces the computed delay.
    """

    MAX_RETRY_AFTER = 300.0

    def __init__(self, attempts: int = 3, base_delay: float = 1.0, max_delay: float = 30.0) -> None:
        if attempts < 1:
            raise ValueError("attempts must be at least 1")
        self.attempts = attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

    def delay_for(self, attempt: int, retry_after: Optional[float] = None) -> float:
        if retry_after is not None:
            return min(max(retry_after, 0.0), self.MAX_RETRY_AFTER)
        wait_time = min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)
        jitter = random.uniform(0, min(1.0, wait_time * 0.1))
        return wait_time + jitter

    def call(self, operation: str, func: Callable[[], T], cancellation: Optional[Cancellation] = None) -> T:
        attempt = 0
        while True:
            attempt += 1
            try:
                return func()
            except RemoteCallError as e:
                if not e.retryable or attempt >= self.attempts:
                    raise
                delay = self.delay_for(attempt, e.retry_after)
                logger.warning("%s (attempt %d/%d); retrying in %.1fs", e, attempt, self.attempts, delay)
                if cancellation is not None:
                    if cancellation.wait(delay):
                        raise OperationCancelled(operation) from e
                else:
                    time.sleep(delay)
