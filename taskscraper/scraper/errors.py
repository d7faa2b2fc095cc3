"""
Errors raised by the scraper.

Every failure leaving the scraper is an AppError carrying the URL, limit,
status or offset needed to diagnose it without re-running the request. Scope
cancellation is the one exception and is never built here.
"""
from typing import Optional

import httpx

from taskscraper.errors import AppError, ErrorKind, kind_of, new, wrap
from taskscraper.fetcher.status import status_to_kind


class ResponseError(Exception):
    """An HTTP response rejected by its status code."""

    def __init__(
        self,
        status_code: int,
        url: str,
        headers: Optional[httpx.Headers] = None,
        body: str = "",
    ):
        self.status_code = status_code
        self.url = url
        self.headers = headers if headers is not None else httpx.Headers()
        self.body = body
        super().__init__(str(self))

    def __str__(self) -> str:
        msg = f"HTTP request failed (URL: {self.url}, status: {self.status_code})"
        if self.body:
            msg += f", body: {self.body}"
        return msg


def request_body_too_large(limit: int) -> AppError:
    return new(ErrorKind.INVALID_INPUT, f"request body size limit exceeded: body is larger than the allowed {limit} bytes")


def prepare_request_body_failed(err: BaseException) -> AppError:
    return wrap(err, ErrorKind.EXECUTION_FAILED, "failed to prepare request body: reading the body stream failed")


def encode_json_body_failed(err: BaseException) -> AppError:
    return wrap(err, ErrorKind.INTERNAL, "failed to prepare request body: JSON encoding failed")


def create_request_failed(err: BaseException, url: str) -> AppError:
    return wrap(err, ErrorKind.EXECUTION_FAILED, f"failed to create HTTP request (URL: {url})")


def request_aborted(err: BaseException, url: str) -> AppError:
    return wrap(err, ErrorKind.UNAVAILABLE, f"request aborted: the fetch scope was canceled or timed out (URL: {url})")


def network_error(err: BaseException, url: str) -> AppError:
    return wrap(err, ErrorKind.UNAVAILABLE, f"network error while requesting {url}")


def http_status_failed(status_code: int, url: str, headers: httpx.Headers, body_snippet: str) -> AppError:
    """Status rejection, classified by status code for retry decisions."""
    cause = ResponseError(status_code, url, headers=headers, body=body_snippet)
    return wrap(cause, status_to_kind(status_code), f"HTTP request failed (URL: {url}, status: {status_code})")


def validation_failed(err: BaseException, url: str, preview: str) -> AppError:
    """Wrap a validator failure, keeping the validator's own kind when it has one."""
    kind = kind_of(err)
    if kind == ErrorKind.UNKNOWN:
        kind = ErrorKind.EXECUTION_FAILED
    return wrap(err, kind, f"response validation failed (URL: {url}), body preview: {preview}")


def response_body_read_failed(err: BaseException, url: str) -> AppError:
    return wrap(err, ErrorKind.UNAVAILABLE, f"failed to receive response body data (URL: {url})")


def response_body_too_large(limit: int, url: str) -> AppError:
    return new(
        ErrorKind.INVALID_INPUT,
        f"response body size limit exceeded: the body is larger than the allowed {limit} bytes "
        f"and cannot be processed reliably (URL: {url})",
    )


def html_parse_failed(err: BaseException, url: str) -> AppError:
    return wrap(err, ErrorKind.PARSING_FAILED, f"HTML parsing failed: could not build a document from {url}")


def html_read_failed(err: BaseException, url: str, in_memory: bool) -> AppError:
    """Read failure while feeding the parser; in-memory input points at a bug."""
    kind = ErrorKind.INTERNAL if in_memory else ErrorKind.UNAVAILABLE
    return wrap(err, kind, f"HTML parsing failed: reading the document data failed (URL: {url})")


def input_stream_missing() -> AppError:
    return new(ErrorKind.INTERNAL, "HTML parsing failed: no input stream was given")


def input_stream_invalid(stream: object) -> AppError:
    return new(
        ErrorKind.INTERNAL,
        f"HTML parsing failed: unsupported input type {type(stream).__name__} "
        f"(expected bytes, a binary file object or an async byte iterable)",
    )


def decode_target_missing() -> AppError:
    return new(ErrorKind.INTERNAL, "JSON decoding failed: the decode target is None; pass a type to decode into")


def decode_target_invalid(target: object, err: Optional[BaseException] = None) -> AppError:
    message = f"JSON decoding failed: the decode target must be a type (got {type(target).__name__})"
    if err is not None:
        return wrap(err, ErrorKind.INTERNAL, message)
    return new(ErrorKind.INTERNAL, message)


def html_instead_of_json(url: str, content_type: str) -> AppError:
    return new(
        ErrorKind.INVALID_INPUT,
        f"unexpected response format: HTML was returned instead of JSON (URL: {url}, Content-Type: {content_type})",
    )


def json_syntax_error(err: BaseException, url: str, offset: int, line: int, column: int, snippet: str) -> AppError:
    return wrap(
        err,
        ErrorKind.PARSING_FAILED,
        f"JSON parsing failed: syntax error in data from {url} "
        f"(offset {offset}, line {line} column {column}: ...{snippet}...)",
    )


def json_nesting_too_deep(err: BaseException, url: str) -> AppError:
    return wrap(err, ErrorKind.PARSING_FAILED, f"JSON parsing failed: data from {url} is nested too deeply")


def json_type_mismatch(err: BaseException, url: str) -> AppError:
    return wrap(err, ErrorKind.PARSING_FAILED, f"JSON parsing failed: data from {url} does not match the target type")


def json_trailing_data(url: str, offset: int, snippet: str) -> AppError:
    return new(
        ErrorKind.PARSING_FAILED,
        f"JSON parsing failed: unexpected trailing data after the JSON value from {url} "
        f"(offset {offset}: {snippet})",
    )


def html_structure_changed(url: str, message: str) -> AppError:
    """For scraping tasks whose expected markup is no longer present."""
    if url:
        return new(ErrorKind.EXECUTION_FAILED, f"HTML structure has changed (URL: {url}) {message}")
    return new(ErrorKind.EXECUTION_FAILED, f"HTML structure has changed. {message}")
