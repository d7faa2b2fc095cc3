import json
from typing import Any, Dict, List

import httpx
import pytest
from pydantic import BaseModel
from structlog.testing import capture_logs

from taskscraper.errors import AppError, ErrorKind
from taskscraper.scope import FetchScope, ScopeCancelled
from taskscraper.scraper import Scraper, with_max_response_body_size

URL = "https://api.example.com/items"


class Item(BaseModel):
    name: str
    value: int


def _json_response(content, content_type="application/json", status=200):
    return lambda r: httpx.Response(status, content=content, headers={"Content-Type": content_type})


@pytest.mark.asyncio
async def test_decodes_into_model(recording_transport):
    transport = recording_transport(_json_response(b'{"name": "widget", "value": 3}'))

    item = await Scraper(transport).fetch_json(None, "GET", URL, target=Item)

    assert item == Item(name="widget", value=3)
    assert transport.requests[0].headers["Accept"] == "application/json"


@pytest.mark.asyncio
async def test_decodes_legacy_charset(recording_transport):
    body = '{"name":"한글","value":1}'.encode("euc-kr")
    transport = recording_transport(_json_response(body, "application/json; charset=euc-kr"))

    item = await Scraper(transport).fetch_json(None, "GET", URL, target=Item)

    assert item.name == "한글"


@pytest.mark.asyncio
@pytest.mark.parametrize("target,expected", [
    (dict, {"a": [1, 2]}),
    (Dict[str, List[int]], {"a": [1, 2]}),
    (Any, {"a": [1, 2]}),
])
async def test_generic_targets(recording_transport, target, expected):
    transport = recording_transport(_json_response(b' {"a": [1, 2]}\n'))

    assert await Scraper(transport).fetch_json(None, "GET", URL, target=target) == expected


@pytest.mark.asyncio
async def test_decodes_list(recording_transport):
    transport = recording_transport(_json_response(b"[1, 2, 3]"))

    assert await Scraper(transport).fetch_json(None, "GET", URL, target=list[int]) == [1, 2, 3]


@pytest.mark.asyncio
async def test_trailing_data_is_rejected(recording_transport):
    transport = recording_transport(_json_response(b'{"a":1} GARBAGE'))

    with pytest.raises(AppError) as exc_info:
        await Scraper(transport).fetch_json(None, "GET", URL, target=dict)

    assert exc_info.value.kind == ErrorKind.PARSING_FAILED
    assert "unexpected trailing data" in str(exc_info.value)
    assert "GARBAGE" in str(exc_info.value)


@pytest.mark.asyncio
async def test_syntax_error_snippet_is_readable_text(recording_transport):
    body = '{"title": "한글 제목", "id": 1, "name": bad}'.encode("euc-kr")
    transport = recording_transport(_json_response(body, "application/json; charset=euc-kr"))

    with capture_logs() as logs:
        with pytest.raises(AppError) as exc_info:
            await Scraper(transport).fetch_json(None, "GET", URL, target=dict)

    message = str(exc_info.value)
    assert exc_info.value.kind == ErrorKind.PARSING_FAILED
    assert "bad" in message
    assert "한글 제목" in message
    assert isinstance(exc_info.value.cause, json.JSONDecodeError)
    assert any(e["event"] == "JSON decoding failed" for e in logs)


@pytest.mark.asyncio
async def test_empty_body_is_syntax_error(recording_transport):
    transport = recording_transport(_json_response(b""))

    with pytest.raises(AppError) as exc_info:
        await Scraper(transport).fetch_json(None, "GET", URL, target=dict)

    assert exc_info.value.kind == ErrorKind.PARSING_FAILED


@pytest.mark.asyncio
async def test_deeply_nested_body_is_parsing_failed(recording_transport):
    transport = recording_transport(_json_response(b"[" * 100000 + b"]" * 100000))

    with capture_logs() as logs:
        with pytest.raises(AppError) as exc_info:
            await Scraper(transport).fetch_json(None, "GET", URL, target=Any)

    assert exc_info.value.kind == ErrorKind.PARSING_FAILED
    assert "nested too deeply" in str(exc_info.value)
    assert URL in str(exc_info.value)
    assert isinstance(exc_info.value.cause, RecursionError)
    assert any(e["event"] == "JSON nesting too deep" for e in logs)


@pytest.mark.asyncio
@pytest.mark.parametrize("body,constant,offset", [
    (b'{"v": NaN, "w": Infinity}', "NaN", 6),
    (b'{"s": "NaN", "v": -Infinity}', "-Infinity", 18),
    (b"[1, Infinity]", "Infinity", 4),
])
async def test_non_standard_constants_are_rejected(recording_transport, body, constant, offset):
    transport = recording_transport(_json_response(body))

    with pytest.raises(AppError) as exc_info:
        await Scraper(transport).fetch_json(None, "GET", URL, target=Any)

    message = str(exc_info.value)
    assert exc_info.value.kind == ErrorKind.PARSING_FAILED
    assert f"invalid literal {constant}" in message
    assert f"offset {offset}," in message
    assert isinstance(exc_info.value.cause, json.JSONDecodeError)


@pytest.mark.asyncio
async def test_constant_names_inside_strings_are_plain_text(recording_transport):
    transport = recording_transport(_json_response(b'{"name": "NaN \\"Infinity\\"", "value": 1}'))

    item = await Scraper(transport).fetch_json(None, "GET", URL, target=Item)

    assert item.name == 'NaN "Infinity"'


@pytest.mark.asyncio
async def test_undeclared_legacy_charset_is_detected(recording_transport):
    name = "한글 상품 이름입니다. 오늘 입고된 신상품의 상세 설명을 확인하세요."
    body = json.dumps({"name": name, "value": 1}, ensure_ascii=False).encode("euc-kr")
    transport = recording_transport(_json_response(body))

    item = await Scraper(transport).fetch_json(None, "GET", URL, target=Item)

    assert item.name == name


@pytest.mark.asyncio
async def test_type_mismatch(recording_transport):
    transport = recording_transport(_json_response(b'{"name": "x", "value": "many"}'))

    with pytest.raises(AppError) as exc_info:
        await Scraper(transport).fetch_json(None, "GET", URL, target=Item)

    assert exc_info.value.kind == ErrorKind.PARSING_FAILED
    assert "does not match the target type" in str(exc_info.value)


@pytest.mark.asyncio
async def test_html_answer_is_invalid_input(recording_transport):
    transport = recording_transport(_json_response(b"<html>login</html>", "text/html; charset=utf-8"))

    with pytest.raises(AppError) as exc_info:
        await Scraper(transport).fetch_json(None, "GET", URL, target=dict)

    assert exc_info.value.kind == ErrorKind.INVALID_INPUT
    assert "HTML was returned instead of JSON" in str(exc_info.value)


@pytest.mark.asyncio
async def test_other_content_type_only_warns(recording_transport):
    transport = recording_transport(_json_response(b'{"ok": true}', "text/plain"))

    with capture_logs() as logs:
        value = await Scraper(transport).fetch_json(None, "GET", URL, target=dict)

    assert value == {"ok": True}
    assert any(e["event"] == "Non-JSON Content-Type received, decoding anyway" for e in logs)


@pytest.mark.asyncio
@pytest.mark.parametrize("target", [None, 5, "Item"])
async def test_bad_target_fails_before_sending(recording_transport, target):
    transport = recording_transport(_json_response(b"{}"))

    with pytest.raises(AppError) as exc_info:
        await Scraper(transport).fetch_json(None, "GET", URL, target=target)

    assert exc_info.value.kind == ErrorKind.INTERNAL
    assert transport.requests == []


@pytest.mark.asyncio
async def test_no_content_yields_none(recording_transport):
    transport = recording_transport(lambda r: httpx.Response(204))

    assert await Scraper(transport).fetch_json(None, "DELETE", URL, target=Item) is None


@pytest.mark.asyncio
async def test_accepted_status_is_success(recording_transport):
    transport = recording_transport(_json_response(b'{"name": "n", "value": 1}', status=202))

    assert await Scraper(transport).fetch_json(None, "POST", URL, target=Item) == Item(name="n", value=1)


@pytest.mark.asyncio
async def test_truncated_body_is_rejected(recording_transport):
    transport = recording_transport(_json_response(b'{"name": "a long enough name", "value": 1}'))

    with pytest.raises(AppError) as exc_info:
        await Scraper(transport, with_max_response_body_size(10)).fetch_json(None, "GET", URL, target=Item)

    assert exc_info.value.kind == ErrorKind.INVALID_INPUT


@pytest.mark.asyncio
async def test_request_body_is_sent_as_json(mock_transport):
    def echo(request):
        return httpx.Response(200, json={
            "content_type": request.headers.get("Content-Type"),
            "accept": request.headers.get("Accept"),
            "body": json.loads(request.content),
        })

    scraper = Scraper(mock_transport(echo))
    value = await scraper.fetch_json(None, "POST", URL, body=Item(name="n", value=2), target=dict)

    assert value == {
        "content_type": "application/json",
        "accept": "application/json",
        "body": {"name": "n", "value": 2},
    }
    await scraper.transport.aclose()


@pytest.mark.asyncio
async def test_caller_content_type_is_kept(recording_transport):
    transport = recording_transport(_json_response(b"{}"))
    headers = {"content-type": "application/vnd.api+json"}

    await Scraper(transport).fetch_json(None, "POST", URL, body={"a": 1}, headers=headers, target=dict)

    assert transport.requests[0].headers["Content-Type"] == "application/vnd.api+json"
    assert headers == {"content-type": "application/vnd.api+json"}


@pytest.mark.asyncio
async def test_cancel_during_body_read(recording_transport, chunked_stream):
    scope = FetchScope()
    chunks = [b'{"name": ', b'"n", ', b'"value": 1}']
    transport = recording_transport(
        lambda r: httpx.Response(200, stream=chunked_stream(chunks, between=lambda i: scope.cancel()),
                                 headers={"Content-Type": "application/json"})
    )

    with pytest.raises(ScopeCancelled) as exc_info:
        await Scraper(transport).fetch_json(scope, "GET", URL, target=Item)

    assert exc_info.value is scope.err()
