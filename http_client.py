"""HTTP round trips with bounded retries for transient failures."""

from __future__ import annotations

import logging
import threading
import time
from typing import Any

import requests

MAX_RETRIES = 2
BACKOFF_STEP_SECONDS = 0.5
REQUEST_TIMEOUT_SECONDS = 30

LOGGER = logging.getLogger(__name__)


class HTTPRequestError(RuntimeError):
    """A request could not be completed or returned a non-success status."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class RateLimitExceeded(HTTPRequestError):
    """Upstream answered 429. Never retried locally."""

    def __init__(self, url: str) -> None:
        super().__init__(f"rate limit exceeded for {url}", status_code=429)


class RetryingHTTPClient:
    """GET requests retried on connection errors and 5xx with linear backoff.

    Attempt ``n`` (1-based retry index) sleeps ``n * backoff_step`` seconds
    first. When a ``cancel`` event is supplied the backoff wait ends early and
    no further attempts are made once it is set.
    """

    def __init__(
        self,
        session: requests.Session | None = None,
        *,
        timeout: float = REQUEST_TIMEOUT_SECONDS,
        max_retries: int = MAX_RETRIES,
        backoff_step: float = BACKOFF_STEP_SECONDS,
        user_agent: str | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_step = backoff_step
        self.cancel = cancel
        if user_agent:
            self.session.headers["User-Agent"] = user_agent

    def get(
        self,
        url: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> requests.Response:
        """Perform the GET and return the final response.

        Raises:
            RateLimitExceeded: the server answered 429.
            HTTPRequestError: every attempt failed at the transport level.
        """
        last_error: requests.RequestException | None = None
        response: requests.Response | None = None

        for attempt in range(self.max_retries + 1):
            if attempt > 0:
                if not self._backoff(attempt):
                    break

            try:
                response = self.session.get(url, params=params, headers=headers, timeout=self.timeout)
            except requests.RequestException as exc:
                last_error = exc
                response = None
                LOGGER.warning(
                    "GET %s failed on attempt %s/%s: %s",
                    url,
                    attempt + 1,
                    self.max_retries + 1,
                    exc,
                )
                continue

            if response.status_code == 429:
                response.close()
                raise RateLimitExceeded(url)

            if response.status_code >= 500:
                LOGGER.warning(
                    "GET %s returned %s on attempt %s/%s",
                    url,
                    response.status_code,
                    attempt + 1,
                    self.max_retries + 1,
                )
                if attempt < self.max_retries:
                    response.close()
                continue

            return response

        if response is not None:
            return response
        raise HTTPRequestError(f"GET {url} failed after retries: {last_error}") from last_error

    def _backoff(self, attempt: int) -> bool:
        """Sleep before a retry. Returns False if the run was cancelled meanwhile."""
        delay = attempt * self.backoff_step
        if self.cancel is None:
            time.sleep(delay)
            return True
        return not self.cancel.wait(delay)


def ensure_ok(response: requests.Response, service: str) -> None:
    """Raise HTTPRequestError unless the response is a 200."""
    if response.status_code != 200:
        raise HTTPRequestError(
            f"{service} returned status: {response.status_code}",
            status_code=response.status_code,
        )
