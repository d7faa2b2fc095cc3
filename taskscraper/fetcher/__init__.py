"""
Fetcher package for the task scraper.

This package holds the transport side of the engine: the pluggable
"send one request, get one response" collaborator, the retrying decorator
around it, and the status and redaction helpers shared with the scraper.

The main components are:
- Transport protocol and the httpx-backed default implementation
- Retry decorator for transient failures
- User-Agent decorator, fixed or rotating
- HTTP status to error kind mapping
"""
from taskscraper.fetcher.redact import redact_headers, redact_url
from taskscraper.fetcher.retry import RetryTransport, parse_retry_after
from taskscraper.fetcher.status import is_retryable, is_status_allowed, status_to_kind
from taskscraper.fetcher.transport import HTTPXTransport, Transport, build_transport
from taskscraper.fetcher.user_agent import COMMON_USER_AGENTS, UserAgentTransport

__all__ = [
    "Transport",
    "HTTPXTransport",
    "RetryTransport",
    "UserAgentTransport",
    "COMMON_USER_AGENTS",
    "build_transport",
    "parse_retry_after",
    "status_to_kind",
    "is_status_allowed",
    "is_retryable",
    "redact_url",
    "redact_headers",
]
