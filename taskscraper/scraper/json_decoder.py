"""
JSON decoding stage.

Bodies are charset-normalized first, then decoded in strict mode: exactly one
JSON value, optionally surrounded by whitespace. Syntax errors report the
offset together with the surrounding text taken from the normalized body, so
the snippet reads correctly even when the server sent EUC-KR or Shift_JIS.

The decode target is anything pydantic's ``TypeAdapter`` understands: a model
class, a dataclass, ``dict``, ``list[int]``, ``typing.Any`` and so on.
"""
import json
import re
import typing
from typing import Any

import httpx
from pydantic import PydanticUserError, TypeAdapter, ValidationError

from taskscraper.models.response import FetchResult
from taskscraper.scope import FetchScope
from taskscraper.scraper.cancellable import CancellableByteSource, iter_bytes
from taskscraper.scraper.encoding import is_html_content_type, normalize
from taskscraper.scraper.errors import (
    decode_target_invalid,
    decode_target_missing,
    html_instead_of_json,
    json_nesting_too_deep,
    json_syntax_error,
    json_trailing_data,
    json_type_mismatch,
    response_body_too_large,
)

JSON_ACCEPT = "application/json"
JSON_ALLOWED_STATUSES = (200, 201, 202, 204)

# Characters of context on each side of a syntax error
SNIPPET_CONTEXT = 50

_WHITESPACE = re.compile(r"[ \t\n\r]*")


def resolve_target(target: Any) -> TypeAdapter:
    """
    Build a validator for the decode target.

    Raises:
        AppError: Internal if ``target`` is None or not a type
    """
    if target is None:
        raise decode_target_missing()
    if not (isinstance(target, type) or typing.get_origin(target) is not None or target is Any):
        raise decode_target_invalid(target)
    try:
        return TypeAdapter(target)
    except (PydanticUserError, TypeError) as e:
        raise decode_target_invalid(target, e) from e


def verify_json_content_type(response: httpx.Response, url: str, log: Any) -> None:
    """
    Reject HTML responses; warn about other non-JSON Content-Types.

    An HTML answer to a JSON request almost always means a wrong endpoint, an
    expired session or a server error page.
    """
    if response.status_code == 204:
        return
    content_type = response.headers.get("Content-Type", "")
    if is_html_content_type(content_type):
        raise html_instead_of_json(url, content_type)
    if content_type and "json" not in content_type.lower():
        log.warning("Non-JSON Content-Type received, decoding anyway", content_type=content_type)


def _snippet(text: str, pos: int) -> str:
    start = max(0, pos - SNIPPET_CONTEXT)
    return text[start:pos + SNIPPET_CONTEXT]


class _NonStandardConstant(ValueError):
    """NaN or an infinity, which Python's decoder accepts but JSON does not."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name


def _reject_constant(name: str) -> Any:
    raise _NonStandardConstant(name)


# Strings are matched whole so that constants inside them are skipped
_CONSTANT_TOKEN = re.compile(r'"(?:[^"\\]|\\.)*"|(-?Infinity|NaN)')


def _constant_offset(text: str, start: int) -> int:
    for match in _CONSTANT_TOKEN.finditer(text, start):
        if match.group(1):
            return match.start(1)
    return start


def _syntax_error(err: json.JSONDecodeError, url: str, log: Any):
    snippet = _snippet(err.doc, err.pos)
    log.error(
        "JSON decoding failed",
        syntax_error_offset=err.pos,
        syntax_error_context=snippet,
        error=err.msg,
    )
    return json_syntax_error(err, url, err.pos, err.lineno, err.colno, snippet)


def decode_text(text: str, url: str, log: Any) -> Any:
    """
    Decode exactly one JSON value from ``text``.

    ``NaN``, ``Infinity`` and ``-Infinity`` are rejected as syntax errors.

    Raises:
        AppError: ParsingFailed on a syntax error, trailing data or nesting
            too deep for the decoder
    """
    start = _WHITESPACE.match(text, 0).end()
    decoder = json.JSONDecoder(parse_constant=_reject_constant)
    try:
        value, end = decoder.raw_decode(text, start)
    except json.JSONDecodeError as e:
        raise _syntax_error(e, url, log) from e
    except _NonStandardConstant as e:
        err = json.JSONDecodeError(f"invalid literal {e.name}", text, _constant_offset(text, start))
        raise _syntax_error(err, url, log) from e
    except RecursionError as e:
        log.error("JSON nesting too deep", body_size=len(text))
        raise json_nesting_too_deep(e, url) from e

    rest = _WHITESPACE.match(text, end).end()
    if rest != len(text):
        trailing = text[rest:rest + SNIPPET_CONTEXT]
        log.error("Unexpected trailing data after JSON value", offset=rest, unexpected_token=trailing)
        raise json_trailing_data(url, rest, trailing)

    return value


async def decode_json(
    scope: FetchScope,
    result: FetchResult,
    adapter: TypeAdapter,
    url: str,
    log: Any,
) -> Any:
    """
    Decode a fetched body into the target type.

    Returns:
        Any: Validated value, or None for a 204 response

    Raises:
        ScopeCancelled: If the scope is done while decoding, unchanged
        AppError: InvalidInput for a truncated body, ParsingFailed for syntax,
            trailing data or type mismatch
    """
    if result.status_code == 204:
        log.debug("No content, decoding skipped")
        return None

    if result.truncated:
        log.error("Response body exceeds size limit, decoding aborted", truncated=True)
        raise response_body_too_large(len(result.body), url)

    body = await normalize(
        CancellableByteSource(scope, iter_bytes(result.body)),
        result.content_type,
        sniff_document=False,
    )
    if not body.encoding.detected:
        log.warning("Could not detect body encoding, decoding as UTF-8", content_type=result.content_type)

    scope.check()
    value = decode_text(body.as_text(), url, log)
    scope.check()

    try:
        decoded = adapter.validate_python(value)
    except ValidationError as e:
        log.error("JSON does not match target type", error_count=e.error_count())
        raise json_type_mismatch(e, url) from e

    log.debug("JSON decoded", status_code=result.status_code, body_size=len(result.body))
    return decoded
