"""Resilient HTTP transport for JMAP exchanges.

Retry Strategy
==============

JMAP servers signal temporary overload with HTTP 429 (rate limited) or 503
(service unavailable). RetryTransport retries those responses transparently:

    - Retry budget: 3 retries (4 attempts in total)
    - Delay: the server's Retry-After value when it resolves to a positive
      duration (integer seconds or an HTTP date), otherwise exponential
      backoff of 1s, 2s, 4s
    - Every retry resends an exact copy of the original request body
    - Discarded responses are drained and closed before waiting

A request whose body is a one-shot stream (e.g. a generator) cannot be
replayed. It is sent once; if that attempt needs a retry the transport raises
NonReplayableBodyError instead of sending a truncated or empty body.

Cancellation
------------
Each wait runs on a CancelToken. When the token is cancelled, or its deadline
passes, during a backoff wait, OperationCancelledError is raised at once and
no further attempt is made. The token comes from the request's
``extensions["cancel_token"]`` or, failing that, the transport's default.

The deadline also bounds each attempt in flight: every httpx timeout phase
(connect, read, write, pool) is capped at the time left on the token.
"""

from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime

import httpx

from .errors import NonReplayableBodyError, OperationCancelledError, RetryExhaustedError
from .logging import get_logger

logger = get_logger(__name__)

MAX_RETRIES = 3
TRANSIENT_STATUSES = frozenset({429, 503})


class CancelToken:
    """Cancellation signal with an optional deadline, shared by every call of one invocation."""

    def __init__(self, timeout: float | None = None):
        self._event = threading.Event()
        self._deadline = None if timeout is None else time.monotonic() + timeout

    def cancel(self) -> None:
        self._event.set()

    def remaining(self) -> float | None:
        """Seconds until the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    def wait(self, delay: float) -> bool:
        """Block for up to ``delay`` seconds.

        Returns True if the token was cancelled (or hit its deadline) before
        the delay elapsed, False if the full delay passed.
        """
        if self.cancelled:
            return True
        remaining = self.remaining()
        if remaining is not None and remaining <= delay:
            self._event.wait(remaining)
            self._event.set()
            return True
        return self._event.wait(delay)


def retry_delay(
    response: httpx.Response, attempt: int, now: datetime | None = None
) -> float:
    """Seconds to wait before retrying after ``response``.

    Args:
        response: The 429/503 response
        attempt: Zero-based number of the attempt that produced the response
        now: Current time, for evaluating HTTP-date values (defaults to now)
    """
    value = response.headers.get("Retry-After", "").strip()
    if value:
        if value.isdigit():
            if int(value) > 0:
                return float(int(value))
        else:
            try:
                when = parsedate_to_datetime(value)
            except (TypeError, ValueError, IndexError):
                when = None
            if when is not None:
                if when.tzinfo is None:
                    when = when.replace(tzinfo=timezone.utc)
                now = now or datetime.now(timezone.utc)
                seconds = (when - now).total_seconds()
                if seconds > 0:
                    return seconds
    # Exponential backoff: 1s, 2s, 4s
    return float(2**attempt)


TIMEOUT_PHASES = ("connect", "read", "write", "pool")


def bounded_timeout(timeout: dict | None, remaining: float | None) -> dict | None:
    """httpx timeout extension with every phase capped at ``remaining`` seconds."""
    if remaining is None:
        return timeout
    phases = timeout or dict.fromkeys(TIMEOUT_PHASES)
    return {
        phase: remaining if value is None else min(value, remaining)
        for phase, value in phases.items()
    }


def _discard(response: httpx.Response) -> None:
    """Drain and close a response we are not going to return."""
    try:
        response.read()
    finally:
        response.close()


class RetryTransport(httpx.BaseTransport):
    """httpx transport that retries 429 and 503 responses.

    Args:
        inner: Transport that performs the actual exchange
        max_retries: Retries after the first attempt
        cancel_token: Default token for requests that don't carry one
    """

    def __init__(
        self,
        inner: httpx.BaseTransport | None = None,
        *,
        max_retries: int = MAX_RETRIES,
        cancel_token: CancelToken | None = None,
    ):
        self._inner = inner or httpx.HTTPTransport()
        self._max_retries = max_retries
        self._cancel_token = cancel_token

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        token = request.extensions.get("cancel_token") or self._cancel_token or CancelToken()

        try:
            body: bytes | None = request.content
        except httpx.RequestNotRead:
            body = None

        for attempt in range(self._max_retries + 1):
            if token.cancelled:
                raise OperationCancelledError("operation cancelled before request was sent")

            outgoing = request if attempt == 0 else self._clone(request, body)
            timeout = bounded_timeout(outgoing.extensions.get("timeout"), token.remaining())
            if timeout is not None:
                outgoing.extensions["timeout"] = timeout
            response = self._inner.handle_request(outgoing)
            if response.status_code not in TRANSIENT_STATUSES:
                return response

            if attempt == self._max_retries:
                _discard(response)
                raise RetryExhaustedError(response.status_code)

            delay = retry_delay(response, attempt)
            _discard(response)

            if body is None:
                raise NonReplayableBodyError(
                    f"cannot retry request with non-rewindable body "
                    f"(received status {response.status_code})"
                )

            logger.warning(
                f"Server returned {response.status_code}, retrying in {delay:.1f}s",
                attempt=attempt + 1,
                max_retries=self._max_retries,
                delay=delay,
                url=str(request.url),
            )
            if token.wait(delay):
                raise OperationCancelledError(
                    f"operation cancelled while waiting to retry "
                    f"(last status {response.status_code})"
                )

        raise ValueError(f"max_retries must be >= 0, got {self._max_retries}")

    @staticmethod
    def _clone(request: httpx.Request, body: bytes | None) -> httpx.Request:
        return httpx.Request(
            request.method,
            request.url,
            headers=request.headers,
            content=body,
            extensions=dict(request.extensions),
        )

    def close(self) -> None:
        self._inner.close()
