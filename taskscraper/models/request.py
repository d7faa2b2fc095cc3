"""
Request model passed between the stages of one fetch.

A RequestParams is built once per call by the public entry points and is
read-only from then on; every stage receives the same instance.
"""
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Tuple

import httpx

# Predicate run on a response whose status already passed. Raises to reject.
ResponseValidator = Callable[[httpx.Response, Any], None]


@dataclass(frozen=True)
class RequestParams:
    """
    Parameters of one HTTP request.

    Attributes:
        method: HTTP method
        url: Requested URL
        body: Prepared, replayable request body (None for no body)
        headers: Caller-owned headers; cloned before the request is built
        default_accept: Accept value used only when headers carry none
        validator: Optional content predicate run after the status check
        allowed_statuses: Status codes treated as success
    """
    method: str
    url: str
    body: Optional[bytes] = None
    headers: Optional[Mapping[str, str]] = None
    default_accept: str = ""
    validator: Optional[ResponseValidator] = None
    allowed_statuses: Tuple[int, ...] = (200,)
