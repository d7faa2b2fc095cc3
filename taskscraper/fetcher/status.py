"""
HTTP status classification.

This is the single place that decides which error kind an unexpected status
code maps to, and therefore whether a caller should retry the scrape.
"""
from typing import Iterable, Optional

from taskscraper.errors import ErrorKind, kind_of

# Status codes accepted when a caller does not specify its own allow-list
DEFAULT_ALLOWED_STATUSES = (200,)

# 4xx statuses that still mean "try again later"
RETRYABLE_CLIENT_STATUSES = frozenset({408, 429})

# 5xx statuses that will not get better by retrying
NON_RETRYABLE_SERVER_STATUSES = frozenset({501, 505, 511})

# Kinds a caller may retry
RETRYABLE_KINDS = frozenset({ErrorKind.UNAVAILABLE, ErrorKind.TIMEOUT})


def status_to_kind(status_code: int) -> ErrorKind:
    """
    Map a rejected HTTP status code to an error kind.

    5xx, 408 and 429 are transient (UNAVAILABLE); every other 4xx is a
    permanent remote-side failure (EXECUTION_FAILED); anything else defaults
    to UNAVAILABLE.
    """
    if 400 <= status_code < 500 and status_code not in RETRYABLE_CLIENT_STATUSES:
        return ErrorKind.EXECUTION_FAILED
    return ErrorKind.UNAVAILABLE


def is_status_allowed(status_code: int, allowed: Optional[Iterable[int]] = None) -> bool:
    """Check ``status_code`` against ``allowed`` (200 only when omitted)."""
    allowed_set = tuple(allowed) if allowed else DEFAULT_ALLOWED_STATUSES
    return status_code in allowed_set


def should_retry_status(status_code: int) -> bool:
    """Whether a transport-level retry makes sense for ``status_code``."""
    if status_code in RETRYABLE_CLIENT_STATUSES:
        return True
    return status_code >= 500 and status_code not in NON_RETRYABLE_SERVER_STATUSES


def is_retryable(err: Optional[BaseException]) -> bool:
    """Whether a failed fetch is worth retrying, judged by its error kind."""
    return kind_of(err) in RETRYABLE_KINDS
