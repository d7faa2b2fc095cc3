"""
Retrying transport for the task scraper.

This module wraps another :class:`~taskscraper.fetcher.transport.Transport`
with retry logic for transient failures. It uses tenacity for the retry loop,
full-jitter exponential backoff, and honours ``Retry-After`` headers.

Only idempotent methods are retried. Request bodies prepared by the scraper
are in-memory bytes, so a request can be sent again unchanged.
"""
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import List, Optional

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    retry_if_result,
    stop_after_attempt,
    wait_random_exponential,
)

from taskscraper.fetcher.redact import redact_url
from taskscraper.fetcher.status import should_retry_status
from taskscraper.fetcher.transport import Transport

# Set up structured logger
logger = structlog.get_logger()

# Constants
MIN_ALLOWED_RETRIES = 0
MAX_ALLOWED_RETRIES = 10
DEFAULT_RETRY_ATTEMPTS = 3
DEFAULT_RETRY_MIN_WAIT = 1.0  # seconds
DEFAULT_RETRY_MAX_WAIT = 30.0  # seconds

IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "TRACE", "PUT", "DELETE"})


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """
    Parse a ``Retry-After`` header value.

    Args:
        value: Header value, either delay-seconds or an HTTP date

    Returns:
        Optional[float]: Delay in seconds, or None if the value is unusable
    """
    if not value:
        return None
    value = value.strip()
    if value.isdigit():
        return float(value)
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if when is None:
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


class RetryTransport:
    """
    Transport decorator that retries transient failures.

    Transport errors and retryable statuses (408, 429 and most 5xx) are
    retried up to ``max_retries`` times. When the retry budget runs out the
    last response is returned as-is so the caller can classify its status.
    """

    def __init__(
        self,
        delegate: Transport,
        max_retries: int = DEFAULT_RETRY_ATTEMPTS,
        min_delay: float = DEFAULT_RETRY_MIN_WAIT,
        max_delay: float = DEFAULT_RETRY_MAX_WAIT,
    ):
        """
        Initialize the retrying transport.

        Args:
            delegate: Transport that performs each attempt
            max_retries: Maximum number of retries (clamped to 0..10)
            min_delay: Minimum wait between retries in seconds
            max_delay: Maximum wait between retries in seconds
        """
        self.delegate = delegate
        self.max_retries = min(max(max_retries, MIN_ALLOWED_RETRIES), MAX_ALLOWED_RETRIES)
        self.min_delay = max(min_delay, 0.0)
        self.max_delay = max(max_delay, self.min_delay)
        self._backoff = wait_random_exponential(multiplier=self.min_delay, max=self.max_delay)

    async def aclose(self) -> None:
        """Close the delegate if it supports closing."""
        aclose = getattr(self.delegate, "aclose", None)
        if aclose is not None:
            await aclose()

    async def send(self, request: httpx.Request) -> httpx.Response:
        if self.max_retries == 0 or request.method.upper() not in IDEMPOTENT_METHODS:
            return await self.delegate.send(request)

        previous: List[httpx.Response] = []

        async def attempt() -> httpx.Response:
            # The response of a failed attempt is discarded before trying again
            while previous:
                await previous.pop().aclose()
            response = await self.delegate.send(request)
            previous.append(response)
            return response

        retryer = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries + 1) | self._stop_on_long_retry_after,
            wait=self._wait,
            retry=(
                retry_if_exception_type(httpx.TransportError)
                | retry_if_result(lambda r: should_retry_status(r.status_code))
            ),
            before_sleep=lambda state: self._log_retry(request, state),
            retry_error_callback=lambda state: state.outcome.result(),
        )
        return await retryer(attempt)

    def _retry_after(self, retry_state: RetryCallState) -> Optional[float]:
        outcome = retry_state.outcome
        if outcome is None or outcome.failed:
            return None
        return parse_retry_after(outcome.result().headers.get("Retry-After"))

    def _stop_on_long_retry_after(self, retry_state: RetryCallState) -> bool:
        delay = self._retry_after(retry_state)
        return delay is not None and delay > self.max_delay

    def _wait(self, retry_state: RetryCallState) -> float:
        delay = self._retry_after(retry_state)
        if delay is not None:
            return delay
        delay = self._backoff(retry_state)
        if delay < 0.001:
            delay = self.min_delay
        return delay

    def _log_retry(self, request: httpx.Request, retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        fields = {
            "url": redact_url(request.url),
            "method": request.method,
            "attempt": retry_state.attempt_number,
            "max_retries": self.max_retries,
            "delay": retry_state.next_action.sleep if retry_state.next_action else None,
        }
        if outcome is not None and outcome.failed:
            fields["error"] = str(outcome.exception())
            fields["retry_reason"] = "network_error"
        elif outcome is not None:
            response = outcome.result()
            fields["status_code"] = response.status_code
            fields["retry_reason"] = f"status_code_{response.status_code}"
            retry_after = response.headers.get("Retry-After")
            if retry_after:
                fields["retry_after_header"] = retry_after

        logger.warning("HTTP request failed, retrying", **fields)
