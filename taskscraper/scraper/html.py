"""
HTML decoding stage.

Markup is charset-normalized before parsing so that documents served as
EUC-KR, Shift_JIS or windows-1252 come out as proper text. A wrong or missing
Content-Type never blocks parsing, but a truncated body does: partial markup
cannot be trusted to represent the real page.
"""
from typing import Any, Optional

import httpx

from taskscraper.parser.html_parser import HTMLDocument
from taskscraper.scope import FetchScope, ScopeCancelled
from taskscraper.scraper.cancellable import CancellableByteSource, CancellableReader, iter_bytes
from taskscraper.scraper.encoding import is_html_content_type, normalize
from taskscraper.scraper.errors import (
    html_parse_failed,
    html_read_failed,
    input_stream_invalid,
    input_stream_missing,
    response_body_too_large,
)

HTML_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"
HTML_ALLOWED_STATUSES = (200, 204)


def verify_html_content_type(response: httpx.Response, log: Any) -> None:
    """Warn about a non-HTML Content-Type; never rejects the response."""
    if response.status_code == 204:
        return
    content_type = response.headers.get("Content-Type", "")
    if not is_html_content_type(content_type):
        log.warning(
            "Non-HTML Content-Type received, parsing anyway",
            status_code=response.status_code,
            content_type=content_type,
            content_length=response.headers.get("Content-Length"),
        )


def resolve_base_url(log: Any, *candidates: Optional[str]) -> str:
    """Return the first candidate that parses as a URL, or ""."""
    for candidate in candidates:
        if not candidate:
            continue
        try:
            httpx.URL(candidate)
        except httpx.InvalidURL as e:
            log.warning("Failed to use URL as document base", candidate=candidate, error=str(e))
            continue
        return candidate
    return ""


async def read_document_input(scope: FetchScope, stream: Any, limit: int, url: str = "") -> bytes:
    """
    Load parser input into memory, reading at most ``limit + 1`` bytes.

    Raises:
        ScopeCancelled: If the scope is done between reads
        AppError: Internal for a missing or unsupported input, Unavailable
            when reading the stream fails
    """
    if stream is None:
        raise input_stream_missing()
    if isinstance(stream, (bytes, bytearray, memoryview)):
        return bytes(stream[:limit + 1])

    try:
        if hasattr(stream, "__aiter__"):
            return await CancellableByteSource(scope, stream).read_limited(limit + 1)
        if hasattr(stream, "read"):
            return CancellableReader(scope, stream).read_limited(limit + 1)
    except ScopeCancelled:
        raise
    except Exception as e:
        raise html_read_failed(e, url, in_memory=False) from e

    raise input_stream_invalid(stream)


async def parse_document(
    scope: FetchScope,
    data: bytes,
    url: str,
    base_url: str,
    content_type: Optional[str],
    log: Any,
) -> HTMLDocument:
    """
    Charset-normalize ``data`` and parse it into a document.

    Args:
        scope: Fetch scope observed while reading
        data: Raw document bytes
        url: URL named in error messages
        base_url: Base URL attached to the document
        content_type: Content-Type used for charset detection
        log: Bound logger

    Raises:
        ScopeCancelled: If the scope is done, unchanged
        AppError: Internal if reading the data fails, ParsingFailed if the
            parser fails
    """
    try:
        body = await normalize(CancellableByteSource(scope, iter_bytes(data)), content_type)
    except ScopeCancelled:
        raise
    except Exception as e:
        raise html_read_failed(e, url, in_memory=True) from e

    if not body.encoding.detected:
        log.warning(
            "Could not detect document encoding, parsing raw bytes",
            content_type=content_type,
            declared_encoding=body.encoding.label,
        )
    else:
        log.debug("Document encoding detected", encoding=body.encoding.codec, source=body.encoding.source)

    markup = body.text if body.text is not None else body.raw
    try:
        return HTMLDocument.parse(markup, url=base_url)
    except Exception as e:
        raise html_parse_failed(e, url) from e


def check_not_truncated(truncated: bool, limit: int, url: str, log: Any, **fields) -> None:
    """Reject a truncated body before parsing is attempted."""
    if truncated:
        log.error("Response body exceeds size limit, parsing aborted", truncated=True, **fields)
        raise response_body_too_large(limit, url)
