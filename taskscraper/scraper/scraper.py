"""
Scraper facade used by scraping tasks.

A :class:`Scraper` is configured once and is read-only afterwards, so one
instance can serve any number of concurrent fetches.
"""
from typing import Any, Callable, Mapping, Optional

import structlog

from taskscraper import DEFAULT_MAX_BODY_SIZE
from taskscraper.config import ScraperSettings
from taskscraper.fetcher.redact import redact_url
from taskscraper.fetcher.transport import Transport
from taskscraper.models.request import RequestParams
from taskscraper.parser.html_parser import HTMLDocument
from taskscraper.scope import FetchScope, ScopeCancelled, ensure_scope
from taskscraper.scraper.body import prepare_body
from taskscraper.scraper.html import (
    HTML_ACCEPT,
    HTML_ALLOWED_STATUSES,
    check_not_truncated,
    parse_document,
    read_document_input,
    resolve_base_url,
    verify_html_content_type,
)
from taskscraper.scraper.json_decoder import (
    JSON_ACCEPT,
    JSON_ALLOWED_STATUSES,
    decode_json,
    resolve_target,
    verify_json_content_type,
)
from taskscraper.scraper.errors import input_stream_missing
from taskscraper.scraper.request import execute_request
from taskscraper.scraper.response import ResponseCallback, preview_body

# Set up structured logger
logger = structlog.get_logger()

COMPONENT = "task.scraper"

Option = Callable[["Scraper"], None]


def with_max_request_body_size(size: int) -> Option:
    """Set the request body ceiling in bytes; non-positive values are ignored."""
    def apply(scraper: "Scraper") -> None:
        if size > 0:
            scraper._max_request_body_size = size
    return apply


def with_max_response_body_size(size: int) -> Option:
    """Set the response body ceiling in bytes; non-positive values are ignored."""
    def apply(scraper: "Scraper") -> None:
        if size > 0:
            scraper._max_response_body_size = size
    return apply


def with_response_callback(callback: Optional[ResponseCallback]) -> Option:
    """Observe every response through a body-less snapshot."""
    def apply(scraper: "Scraper") -> None:
        scraper._response_callback = callback
    return apply


class Scraper:
    """
    Fetches HTML and JSON resources and turns them into bounded, typed results.

    Examples:
        >>> scraper = Scraper(build_transport(), with_max_response_body_size(2 * 1024 * 1024))
        >>> doc = await scraper.fetch_html_document(FetchScope(timeout=30), "https://example.com")
        >>> items = await scraper.fetch_json(None, "GET", "https://example.com/api", target=list[Item])
    """

    def __init__(self, transport: Transport, *options: Option):
        """
        Initialize the scraper.

        Args:
            transport: Collaborator that sends requests
            *options: Option functions applied in order

        Raises:
            ValueError: If no transport is given
        """
        if transport is None:
            raise ValueError("transport is required")

        self._transport = transport
        self._max_request_body_size = DEFAULT_MAX_BODY_SIZE
        self._max_response_body_size = DEFAULT_MAX_BODY_SIZE
        self._response_callback: Optional[ResponseCallback] = None

        for option in options:
            option(self)

    @classmethod
    def from_settings(cls, transport: Transport, settings: Optional[ScraperSettings] = None) -> "Scraper":
        """Build a scraper from settings (loaded from the environment when omitted)."""
        settings = settings or ScraperSettings()
        return cls(
            transport,
            with_max_request_body_size(settings.max_request_body_size),
            with_max_response_body_size(settings.max_response_body_size),
        )

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def max_request_body_size(self) -> int:
        return self._max_request_body_size

    @property
    def max_response_body_size(self) -> int:
        return self._max_response_body_size

    @property
    def response_callback(self) -> Optional[ResponseCallback]:
        return self._response_callback

    def _logger(self, url: str, **fields: Any):
        return logger.bind(component=COMPONENT, url=redact_url(url), **fields)

    async def fetch_html(
        self,
        scope: Optional[FetchScope],
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HTMLDocument:
        """
        Send a request and parse the response as HTML.

        Args:
            scope: Fetch scope (None for one that never expires)
            method: HTTP method
            url: URL to request
            body: Optional request body (see :func:`prepare_body`)
            headers: Optional request headers; never modified

        Returns:
            HTMLDocument: Parsed document whose base URL is the effective URL

        Raises:
            ScopeCancelled: If the scope ends before sending or while reading
            AppError: For every other failure
        """
        scope = ensure_scope(scope)
        prepared = await prepare_body(scope, body, self._max_request_body_size)

        log = self._logger(url, method=method)
        params = RequestParams(
            method=method,
            url=url,
            body=prepared,
            headers=headers,
            default_accept=HTML_ACCEPT,
            validator=verify_html_content_type,
            allowed_statuses=HTML_ALLOWED_STATUSES,
        )
        result = await execute_request(
            scope, self._transport, params, self._max_response_body_size, self._response_callback, log,
        )

        check_not_truncated(
            result.truncated, self._max_response_body_size, url, log,
            status_code=result.status_code, body_size=len(result.body),
        )
        log.debug("HTML fetched, parsing", status_code=result.status_code, body_size=len(result.body))

        base_url = resolve_base_url(log, result.url, url)
        try:
            doc = await parse_document(scope, result.body, url, base_url, result.content_type, log)
        except ScopeCancelled:
            raise
        except Exception as e:
            log.error(
                "HTML parsing failed",
                status_code=result.status_code,
                content_type=result.content_type,
                body_size=len(result.body),
                body_preview=preview_body(result.body, result.content_type),
                error=str(e),
            )
            raise

        log.debug("HTML parsed", status_code=result.status_code, title=doc.title)
        return doc

    async def fetch_html_document(
        self,
        scope: Optional[FetchScope],
        url: str,
        headers: Optional[Mapping[str, str]] = None,
    ) -> HTMLDocument:
        """GET ``url`` and parse it as HTML."""
        return await self.fetch_html(scope, "GET", url, headers=headers)

    async def parse_html(
        self,
        scope: Optional[FetchScope],
        stream: Any,
        url: str = "",
        content_type: str = "",
    ) -> HTMLDocument:
        """
        Parse HTML from memory or a stream without any network activity.

        Args:
            scope: Fetch scope (None for one that never expires)
            stream: bytes, a binary file object or an async byte iterable
            url: Base URL hint for relative links
            content_type: Content-Type hint for charset detection

        Returns:
            HTMLDocument: Parsed document

        Raises:
            ScopeCancelled: If the scope is already done or ends while reading
            AppError: Internal for missing input, InvalidInput when the input
                exceeds the response body ceiling, Unavailable for stream
                read failures, ParsingFailed for parser failures
        """
        if stream is None:
            raise input_stream_missing()
        scope = ensure_scope(scope)
        scope.check()

        log = self._logger(url, content_type=content_type, input_type=type(stream).__name__)
        log.debug("Parsing HTML input")

        data = await read_document_input(scope, stream, self._max_response_body_size, url)
        check_not_truncated(len(data) > self._max_response_body_size, self._max_response_body_size, url, log)

        base_url = resolve_base_url(log, url)
        doc = await parse_document(scope, data, url, base_url, content_type, log)

        log.debug("HTML parsed", title=doc.title, node_count=doc.node_count(), has_base_url=bool(base_url))
        return doc

    async def fetch_json(
        self,
        scope: Optional[FetchScope],
        method: str,
        url: str,
        body: Any = None,
        headers: Optional[Mapping[str, str]] = None,
        target: Any = None,
    ) -> Any:
        """
        Send a request and decode the response as JSON into ``target``.

        Args:
            scope: Fetch scope (None for one that never expires)
            method: HTTP method
            url: URL to request
            body: Optional request body; non-bytes values are sent as JSON
            headers: Optional request headers; never modified
            target: Type to decode into (pydantic model, dataclass, dict, ...)

        Returns:
            Any: Decoded value, or None for a 204 response

        Raises:
            ScopeCancelled: If the scope ends before sending or while reading
            AppError: For every other failure
        """
        adapter = resolve_target(target)

        scope = ensure_scope(scope)
        prepared = await prepare_body(scope, body, self._max_request_body_size)

        if prepared is not None:
            merged = dict(headers or {})
            if not any(k.lower() == "content-type" for k in merged):
                merged["Content-Type"] = "application/json"
            headers = merged

        log = self._logger(url, method=method)
        params = RequestParams(
            method=method,
            url=url,
            body=prepared,
            headers=headers,
            default_accept=JSON_ACCEPT,
            validator=lambda response, bound_log: verify_json_content_type(response, url, bound_log),
            allowed_statuses=JSON_ALLOWED_STATUSES,
        )
        result = await execute_request(
            scope, self._transport, params, self._max_response_body_size, self._response_callback, log,
        )
        return await decode_json(scope, result, adapter, url, log)
