"""
Request execution pipeline.

One call runs the stages strictly in order: build, send, validate, read. The
transport is called exactly once; retries belong to the transport decorator
or to the caller, guided by the error kind.
"""
import re
import time
from typing import Optional

import httpx
import structlog

from taskscraper.fetcher.redact import redact_url
from taskscraper.fetcher.transport import Transport
from taskscraper.models.request import RequestParams
from taskscraper.models.response import FetchResult, effective_url
from taskscraper.scope import FetchScope, ScopeCancelled
from taskscraper.scraper.errors import (
    create_request_failed,
    network_error,
    request_aborted,
    response_body_read_failed,
)
from taskscraper.scraper.response import ResponseCallback, read_body, validate_response

# Set up structured logger
logger = structlog.get_logger()

# RFC 9110 token characters
_METHOD_RE = re.compile(r"^[!#$%&'*+\-.^_`|~0-9A-Za-z]+$")


def build_request(params: RequestParams) -> httpx.Request:
    """
    Build the wire request for ``params``.

    Caller headers are copied; Accept is only filled in when absent.

    Raises:
        httpx.InvalidURL: If the URL cannot be parsed
        ValueError: If the method or URL is unusable
    """
    if not _METHOD_RE.match(params.method or ""):
        raise ValueError(f"invalid HTTP method {params.method!r}")

    url = httpx.URL(params.url)
    if not url.scheme or not url.host:
        raise ValueError(f"URL must be absolute, got {params.url!r}")

    headers = httpx.Headers(params.headers or {})
    if params.default_accept and "Accept" not in headers:
        headers["Accept"] = params.default_accept

    return httpx.Request(params.method, url, headers=headers, content=params.body)


async def send_request(scope: FetchScope, transport: Transport, params: RequestParams) -> httpx.Response:
    """
    Build and send one request.

    Raises:
        AppError: ExecutionFailed if the request cannot be built, Unavailable
            ("request aborted") if the scope ended the call, Unavailable
            ("network error") for any other transport failure
    """
    try:
        request = build_request(params)
    except (httpx.InvalidURL, ValueError, TypeError) as e:
        raise create_request_failed(e, params.url) from e

    try:
        return await scope.guard(transport.send(request))
    except ScopeCancelled as e:
        raise request_aborted(e, params.url) from e
    except Exception as e:
        if scope.is_done():
            raise request_aborted(scope.err(), params.url) from e
        raise network_error(e, params.url) from e


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


async def execute_request(
    scope: FetchScope,
    transport: Transport,
    params: RequestParams,
    max_response_body_size: int,
    response_callback: Optional[ResponseCallback] = None,
    log=None,
) -> FetchResult:
    """
    Send a request, validate the response and capture its body.

    The response is closed on every exit path.

    Args:
        scope: Fetch scope for the whole call
        transport: Transport that performs the send
        params: Request parameters
        max_response_body_size: Ceiling for the captured body
        response_callback: Optional observer of the response metadata
        log: Bound logger to use (a fresh one is bound when omitted)

    Returns:
        FetchResult: Status, headers, effective URL and the captured body

    Raises:
        ScopeCancelled: If the scope ends while the body is read
        AppError: For every other failure
    """
    start = time.monotonic()
    log = log or logger.bind(component="scraper", url=redact_url(params.url), method=params.method)

    try:
        response = await send_request(scope, transport, params)
    except Exception as e:
        log.error("HTTP request failed", duration_ms=_elapsed_ms(start), error=str(e))
        raise

    try:
        try:
            await validate_response(scope, response, params, response_callback, log)
        except Exception as e:
            log.error(
                "HTTP response rejected",
                status_code=response.status_code,
                duration_ms=_elapsed_ms(start),
                error=str(e),
            )
            raise

        try:
            body, truncated = await read_body(scope, response, max_response_body_size)
        except ScopeCancelled:
            log.warning("Response body read canceled", duration_ms=_elapsed_ms(start))
            raise
        except Exception as e:
            log.error("Failed to read response body", duration_ms=_elapsed_ms(start), error=str(e))
            raise response_body_read_failed(e, params.url) from e
    finally:
        await response.aclose()

    if truncated:
        log.warning(
            "Response body exceeds size limit, truncated",
            max_body_size=max_response_body_size,
            status_code=response.status_code,
        )

    log.debug(
        "HTTP request completed",
        status_code=response.status_code,
        body_size=len(body),
        duration_ms=_elapsed_ms(start),
    )

    return FetchResult(
        status_code=response.status_code,
        headers=response.headers.copy(),
        url=effective_url(response) or "",
        request_url=params.url,
        body=body,
        truncated=truncated,
    )
