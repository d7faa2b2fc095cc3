"""
Response validation and bounded body capture.

A rejected response contributes a short, readable snippet of its body to the
error, then is drained a little so the connection can be reused, and closed.
An accepted response is read into memory up to the configured ceiling.
"""
import inspect
from typing import Callable, Optional, Tuple

import httpx
import structlog

from taskscraper.fetcher.status import is_status_allowed
from taskscraper.models.request import RequestParams
from taskscraper.models.response import ResponseSnapshot
from taskscraper.scope import FetchScope, ScopeCancelled
from taskscraper.scraper.cancellable import DEFAULT_CHUNK_SIZE, CancellableByteSource
from taskscraper.scraper.encoding import detect_encoding, is_utf8_content_type
from taskscraper.scraper.errors import http_status_failed, validation_failed

# Set up structured logger
logger = structlog.get_logger()

# Constants
PREVIEW_SIZE = 1024  # bytes of body shown in previews and error snippets
ERROR_DRAIN_SIZE = 3072  # bytes discarded after a snippet before closing
HTTP_NO_CONTENT = 204

ResponseCallback = Callable[[ResponseSnapshot], None]


def body_source(
    scope: FetchScope,
    response: httpx.Response,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> CancellableByteSource:
    """Cancellable view of a streaming response body."""
    return CancellableByteSource(scope, response.aiter_bytes(chunk_size))


def _decode_lossy(data: bytes, content_type: Optional[str]) -> str:
    codec = None
    if not is_utf8_content_type(content_type):
        codec = detect_encoding(data, content_type).codec
    # Invalid sequences are dropped, not replaced
    return data.decode(codec or "utf-8", errors="ignore")


def preview_body(data: bytes, content_type: Optional[str]) -> str:
    """
    Build a short, printable preview of a body for logs and error messages.

    Args:
        data: Body bytes (only the first 1 KiB is used)
        content_type: Content-Type header used to pick the charset

    Returns:
        str: Preview text, a binary-data marker, or "" for an empty body
    """
    if not data:
        return ""

    preview = _decode_lossy(data[:PREVIEW_SIZE], content_type)

    for ch in preview:
        if ord(ch) < 32 and ch not in "\t\n\r":
            return f"[binary data] ({len(data)} bytes)"

    if len(data) > PREVIEW_SIZE:
        return preview + "...(truncated)"
    return preview


async def read_error_body(source: CancellableByteSource, content_type: Optional[str]) -> str:
    """Read up to 1 KiB of a rejected response body as text, best effort."""
    try:
        data = await source.read_limited(PREVIEW_SIZE)
    except Exception as e:
        # A failed snippet never replaces the status error
        logger.debug("Failed to read error response body", error=str(e))
        return ""
    return _decode_lossy(data, content_type)


async def _drain(source: CancellableByteSource) -> None:
    try:
        await source.read_limited(ERROR_DRAIN_SIZE)
    except Exception:
        # Only connection reuse is lost
        pass


async def _run_validator(params: RequestParams, response: httpx.Response, log) -> None:
    result = params.validator(response, log)
    if inspect.isawaitable(result):
        await result


async def validate_response(
    scope: FetchScope,
    response: httpx.Response,
    params: RequestParams,
    response_callback: Optional[ResponseCallback] = None,
    log=None,
) -> None:
    """
    Accept or reject ``response`` by status code and content predicate.

    The response callback sees a body-less copy of the response metadata. On
    rejection the response is closed here; on success it is left open for
    :func:`read_body`.

    Raises:
        AppError: Kind from the status code on a status rejection, or the
            predicate's kind (ExecutionFailed by default) on a predicate
            rejection
    """
    log = log or logger

    if response_callback is not None:
        response_callback(ResponseSnapshot.from_response(response))

    if response.status_code == HTTP_NO_CONTENT:
        return

    content_type = response.headers.get("Content-Type", "")

    if not is_status_allowed(response.status_code, params.allowed_statuses):
        source = body_source(scope, response, PREVIEW_SIZE)
        snippet = await read_error_body(source, content_type)
        await _drain(source)
        await response.aclose()
        raise http_status_failed(response.status_code, params.url, response.headers.copy(), snippet)

    if params.validator is None:
        return

    try:
        await _run_validator(params, response, log)
    except ScopeCancelled:
        await response.aclose()
        raise
    except Exception as e:
        source = body_source(scope, response, PREVIEW_SIZE)
        try:
            data = await source.read_limited(PREVIEW_SIZE)
        except Exception:
            data = b""
        preview = preview_body(data, content_type)
        await _drain(source)
        await response.aclose()
        raise validation_failed(e, params.url, preview) from e


async def read_body(scope: FetchScope, response: httpx.Response, max_size: int) -> Tuple[bytes, bool]:
    """
    Read the response body into memory, capped at ``max_size`` bytes.

    At most ``max_size + 1`` bytes are pulled from the stream; the extra byte
    only signals that the body was longer than the ceiling.

    Returns:
        Tuple[bytes, bool]: Body bytes and whether they were truncated

    Raises:
        ScopeCancelled: If the scope is done between reads
        Exception: Any stream failure, unchanged for the caller to classify
    """
    if response.status_code == HTTP_NO_CONTENT:
        return b"", False

    limit = max_size + 1
    data = await body_source(scope, response, min(DEFAULT_CHUNK_SIZE, limit)).read_limited(limit)
    if len(data) > max_size:
        return data[:max_size], True
    return data, False
