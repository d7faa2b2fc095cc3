"""Cooperative cancellation scope threaded through one logical fetch.

A :class:`FetchScope` combines an explicit cancel flag with an optional
deadline. Blocking stages check it between reads and surface the scope's own
error unchanged, so callers can detect cancellation with a single
``except ScopeCancelled`` regardless of where it happened.

Scopes are meant to be used from the event loop that runs the fetch.
"""

from __future__ import annotations

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

T = TypeVar("T")


class ScopeCancelled(Exception):
    """Raised when a fetch scope has been cancelled."""

    def __init__(self, message: str = "fetch scope canceled") -> None:
        super().__init__(message)


class DeadlineExceeded(ScopeCancelled):
    """Raised when a fetch scope's deadline has passed."""

    def __init__(self, message: str = "fetch scope deadline exceeded") -> None:
        super().__init__(message)


class FetchScope:
    """Cancellable, deadline-bearing scope for one fetch.

    Examples:
        >>> scope = FetchScope(timeout=10.0)
        >>> doc = await scraper.fetch_html_document(scope, "https://example.com")
        >>> # From another task
        >>> scope.cancel()
    """

    def __init__(self, timeout: Optional[float] = None) -> None:
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._done = asyncio.Event()
        self._error: Optional[ScopeCancelled] = None

    @classmethod
    def background(cls) -> "FetchScope":
        """A scope that is never cancelled and has no deadline."""
        return cls()

    @property
    def deadline(self) -> Optional[float]:
        """Deadline on the ``time.monotonic()`` clock, if any."""
        return self._deadline

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None without one."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def cancel(self) -> None:
        """Signal that cancellation has been requested."""
        if self._error is None:
            self._error = ScopeCancelled()
        self._done.set()

    def err(self) -> Optional[ScopeCancelled]:
        """Return the scope's error once cancelled or expired, else None.

        The same instance is returned on every call.
        """
        if self._error is None and self._deadline is not None and time.monotonic() >= self._deadline:
            self._error = DeadlineExceeded()
            self._done.set()
        return self._error

    def is_done(self) -> bool:
        return self.err() is not None

    def check(self) -> None:
        """Raise the scope's error if it is cancelled or expired."""
        err = self.err()
        if err is not None:
            raise err

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` but abandon it as soon as the scope is done.

        Raises:
            ScopeCancelled: If the scope is cancelled or its deadline passes
                before ``awaitable`` completes.
        """
        err = self.err()
        if err is not None:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise err
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._done.wait())
        try:
            done, _ = await asyncio.wait(
                {task, waiter},
                timeout=self.remaining(),
                return_when=asyncio.FIRST_COMPLETED,
            )
        except BaseException:
            task.cancel()
            task.add_done_callback(_discard_result)
            raise
        finally:
            waiter.cancel()

        if task in done:
            return task.result()

        task.cancel()
        task.add_done_callback(_discard_result)
        err = self.err()
        if err is None:
            # Deadline raced the monotonic clock check above.
            err = self._error = DeadlineExceeded()
            self._done.set()
        raise err


# Close tasks for late responses, held until they finish
_closing: set = set()


def _discard_result(task: "asyncio.Future") -> None:
    # Abandoned transport calls may still fail; their outcome is irrelevant.
    if task.cancelled() or task.exception() is not None:
        return
    # A call that ignored cancellation still owns its response
    aclose = getattr(task.result(), "aclose", None)
    if aclose is not None:
        closing = task.get_loop().create_task(aclose())
        _closing.add(closing)
        closing.add_done_callback(_closing.discard)


def ensure_scope(scope: Optional[FetchScope]) -> FetchScope:
    """Return ``scope`` or a background scope when None was passed."""
    return scope if scope is not None else FetchScope.background()
