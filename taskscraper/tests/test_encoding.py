import codecs
from unittest.mock import patch

import pytest

from taskscraper.scope import FetchScope
from taskscraper.scraper.cancellable import CancellableByteSource, iter_bytes
from taskscraper.scraper.encoding import (
    detect_encoding,
    is_html_content_type,
    is_utf8_content_type,
    lookup_codec,
    normalize,
    parse_content_type,
)


def test_parse_content_type():
    assert parse_content_type("text/html; charset=UTF-8") == ("text/html", {"charset": "UTF-8"})
    assert parse_content_type("Application/JSON") == ("application/json", {})
    assert parse_content_type("") == ("", {})
    assert parse_content_type(None) == ("", {})


@pytest.mark.parametrize("content_type,expected", [
    ("text/html", True),
    ("text/html; charset=euc-kr", True),
    ("application/xhtml+xml", True),
    ("TEXT/HTML", True),
    ("application/json", False),
    ("image/png", False),
    ("", False),
])
def test_is_html_content_type(content_type, expected):
    assert is_html_content_type(content_type) is expected


def test_is_utf8_content_type():
    assert is_utf8_content_type("application/json; charset=UTF-8")
    assert not is_utf8_content_type("application/json; charset=euc-kr")
    assert not is_utf8_content_type(None)


@pytest.mark.parametrize("label,expected", [
    ("utf-8", "utf-8"),
    ("UTF8", "utf-8"),
    ("euc-kr", "cp949"),
    ("ks_c_5601-1987", "cp949"),
    ("iso-8859-1", "cp1252"),
    ("shift_jis", "cp932"),
    ('"windows-1252"', "cp1252"),
    ("base64", None),
    ("no-such-charset", None),
    ("", None),
    (None, None),
])
def test_lookup_codec(label, expected):
    assert lookup_codec(label) == expected


def test_bom_wins_over_header():
    detected = detect_encoding(codecs.BOM_UTF8 + b"abc", "text/html; charset=euc-kr")

    assert detected.codec == "utf-8"
    assert detected.source == "bom"
    assert detected.bom_length == 3


def test_header_charset_used_before_document_hints():
    sample = b'<html><head><meta charset="shift_jis"></head></html>'
    detected = detect_encoding(sample, "text/html; charset=euc-kr")

    assert detected.codec == "cp949"
    assert detected.source == "content-type"


def test_meta_charset_detected_from_sample():
    sample = b'<html><head><meta charset="euc-kr"><title>t</title></head></html>'
    detected = detect_encoding(sample, "text/html")

    assert detected.codec == "cp949"
    assert detected.source == "document"


def test_document_hints_skipped_when_not_sniffing():
    sample = b'<html><head><meta charset="euc-kr"></head></html>'
    detected = detect_encoding(sample, "", sniff_document=False)

    assert detected.codec == "utf-8"
    assert detected.source == "utf-8-sniff"


def test_legacy_encoding_detected_statistically():
    sample = "한국어 문서입니다. 인코딩 선언이 없는 본문을 읽습니다. ".encode("euc-kr") * 4
    detected = detect_encoding(sample, "application/json")

    assert detected.source == "chardet"
    assert sample.decode(detected.codec) == "한국어 문서입니다. 인코딩 선언이 없는 본문을 읽습니다. " * 4


def test_low_confidence_guess_is_ignored():
    with patch("taskscraper.scraper.encoding.chardet.detect", return_value={"encoding": "Windows-1252", "confidence": 0.3}):
        detected = detect_encoding(b"\x80\x81\xfe abc", "")

    assert detected.codec is None


def test_undetectable_encoding():
    with patch("taskscraper.scraper.encoding.chardet.detect", return_value={"encoding": None, "confidence": 0.0}):
        detected = detect_encoding(b"\x80\x81\xfe abc", "")

    assert detected.codec is None
    assert not detected.detected


@pytest.mark.asyncio
async def test_normalize_transcodes_across_chunk_boundaries():
    text = "한글 텍스트 " * 300
    source = CancellableByteSource(FetchScope(), iter_bytes(text.encode("euc-kr"), 7))

    body = await normalize(source, "text/plain; charset=euc-kr")

    assert body.text == text
    assert body.encoding.codec == "cp949"
    assert body.raw == text.encode("euc-kr")


@pytest.mark.asyncio
async def test_normalize_strips_bom():
    source = CancellableByteSource(FetchScope(), [codecs.BOM_UTF8 + '{"a": "é"}'.encode("utf-8")])

    body = await normalize(source, "application/json")

    assert body.text == '{"a": "é"}'


@pytest.mark.asyncio
async def test_normalize_keeps_raw_bytes_when_undetected():
    data = b"\x80\x81\xfe abc"
    with patch("taskscraper.scraper.encoding.chardet.detect", return_value={"encoding": None, "confidence": 0.0}):
        body = await normalize(CancellableByteSource(FetchScope(), [data]), "")

    assert body.text is None
    assert body.raw == data
    assert body.as_text() == data.decode("utf-8", errors="replace")
