"""
Character-encoding normalization for response bodies.

Servers routinely lie about or omit charsets. The encoding of a body is decided
from a small peeked sample in this order:

1. byte-order mark
2. ``charset`` parameter of the Content-Type header
3. in-document hints (``<meta charset>``, ``http-equiv``, XML declaration)
4. a UTF-8 validity check of the sample
5. statistical detection (chardet) for legacy encodings

Labels follow the browser (WHATWG) interpretation, e.g. ``euc-kr`` decodes as
the cp949 superset and ``iso-8859-1`` as windows-1252.
"""
import codecs
from dataclasses import dataclass
from email.message import Message
from typing import Dict, Optional, Tuple

import chardet
from bs4.dammit import EncodingDetector

from taskscraper.scraper.cancellable import CancellableByteSource

# Bytes inspected before deciding on an encoding
PEEK_SIZE = 1024

# chardet guesses below this confidence are ignored
MIN_DETECTION_CONFIDENCE = 0.7

# Browser label aliases that differ from Python's codec registry
_LABEL_ALIASES: Dict[str, str] = {
    "ascii": "cp1252",
    "us-ascii": "cp1252",
    "iso-8859-1": "cp1252",
    "iso8859-1": "cp1252",
    "iso_8859-1": "cp1252",
    "latin1": "cp1252",
    "latin-1": "cp1252",
    "l1": "cp1252",
    "cp819": "cp1252",
    "euc-kr": "cp949",
    "euc_kr": "cp949",
    "ks_c_5601-1987": "cp949",
    "ks_c_5601-1989": "cp949",
    "ksc5601": "cp949",
    "korean": "cp949",
    "windows-949": "cp949",
    "x-windows-949": "cp949",
    "gb2312": "gbk",
    "csgb2312": "gbk",
    "chinese": "gbk",
    "x-gbk": "gbk",
    "shift_jis": "cp932",
    "shift-jis": "cp932",
    "sjis": "cp932",
    "x-sjis": "cp932",
    "ms_kanji": "cp932",
    "windows-31j": "cp932",
    "utf8": "utf-8",
    "unicode-1-1-utf-8": "utf-8",
}

_BOMS = (
    (codecs.BOM_UTF8, "utf-8"),
    (codecs.BOM_UTF16_LE, "utf-16-le"),
    (codecs.BOM_UTF16_BE, "utf-16-be"),
)


@dataclass(frozen=True)
class DetectedEncoding:
    """Result of encoding detection."""
    codec: Optional[str]  # Python codec name, None when undetermined
    label: str = ""  # label as found in the source
    source: str = "none"  # bom, content-type, document, utf-8-sniff, chardet, none
    bom_length: int = 0

    @property
    def detected(self) -> bool:
        return self.codec is not None


@dataclass(frozen=True)
class NormalizedBody:
    """A body decoded to text, or left raw when no encoding could be determined."""
    text: Optional[str]
    raw: bytes
    encoding: DetectedEncoding

    def as_text(self) -> str:
        """Text of the body, decoding raw bytes as UTF-8 with replacement if needed."""
        if self.text is not None:
            return self.text
        return self.raw.decode("utf-8", errors="replace")


def parse_content_type(content_type: Optional[str]) -> Tuple[str, Dict[str, str]]:
    """
    Split a Content-Type header into media type and parameters.

    Returns:
        Tuple[str, Dict[str, str]]: Lower-cased media type and parameters
    """
    if not content_type:
        return "", {}
    msg = Message()
    msg["Content-Type"] = content_type
    params = msg.get_params(failobj=[])
    if not params:
        return content_type.split(";", 1)[0].strip().lower(), {}
    media_type = params[0][0].strip().lower()
    return media_type, {k.lower(): str(v) for k, v in params[1:]}


def charset_from_content_type(content_type: Optional[str]) -> Optional[str]:
    return parse_content_type(content_type)[1].get("charset")


def is_utf8_content_type(content_type: Optional[str]) -> bool:
    return "utf-8" in (content_type or "").lower()


def is_html_content_type(content_type: Optional[str]) -> bool:
    """Check whether ``content_type`` denotes an HTML or XHTML document."""
    media_type, _ = parse_content_type(content_type)
    if media_type:
        return media_type in ("text/html", "application/xhtml+xml")
    lowered = (content_type or "").strip().lower()
    return lowered.startswith(("text/html", "application/xhtml+xml"))


def lookup_codec(label: Optional[str]) -> Optional[str]:
    """
    Resolve a charset label to a Python text codec name.

    Returns:
        Optional[str]: Codec name, or None for unknown or non-text codecs
    """
    if not label:
        return None
    normalized = label.strip().strip("'\"").lower()
    if not normalized:
        return None
    normalized = _LABEL_ALIASES.get(normalized, normalized)
    try:
        name = codecs.lookup(normalized).name
        # Rejects bytes-to-bytes codecs such as base64 or zlib
        b"".decode(name)
    except LookupError:
        return None
    return name


def _looks_like_utf8(sample: bytes) -> bool:
    decoder = codecs.getincrementaldecoder("utf-8")()
    try:
        # final=False tolerates a multi-byte sequence cut at the sample edge
        decoder.decode(sample, final=False)
    except UnicodeDecodeError:
        return False
    return True


def detect_encoding(sample: bytes, content_type: Optional[str], sniff_document: bool = True) -> DetectedEncoding:
    """
    Determine the encoding of a body from its first bytes and Content-Type.

    Args:
        sample: Leading bytes of the body (at most ``PEEK_SIZE`` are inspected)
        content_type: Content-Type header value, may be empty
        sniff_document: Whether to look for meta tags / XML declarations

    Returns:
        DetectedEncoding: Detection result; ``codec`` is None if undetermined
    """
    sample = sample[:PEEK_SIZE]

    for bom, codec in _BOMS:
        if sample.startswith(bom):
            return DetectedEncoding(codec=codec, label=codec, source="bom", bom_length=len(bom))

    declared = charset_from_content_type(content_type)
    codec = lookup_codec(declared)
    if codec is not None:
        return DetectedEncoding(codec=codec, label=declared, source="content-type")

    if sniff_document and sample:
        in_document = EncodingDetector.find_declared_encoding(sample, is_html=True)
        codec = lookup_codec(in_document)
        if codec is not None:
            return DetectedEncoding(codec=codec, label=in_document, source="document")

    if _looks_like_utf8(sample):
        return DetectedEncoding(codec="utf-8", label="utf-8", source="utf-8-sniff")

    guess = chardet.detect(sample)
    if (guess.get("confidence") or 0) > MIN_DETECTION_CONFIDENCE:
        codec = lookup_codec(guess.get("encoding"))
        if codec is not None:
            return DetectedEncoding(codec=codec, label=guess["encoding"], source="chardet")

    return DetectedEncoding(codec=None, label=declared or "")


def transcode(data: bytes, codec: Optional[str]) -> str:
    """Decode ``data`` with ``codec``, replacing undecodable sequences."""
    return data.decode(codec or "utf-8", errors="replace")


async def normalize(
    source: CancellableByteSource,
    content_type: Optional[str],
    sniff_document: bool = True,
) -> NormalizedBody:
    """
    Read ``source`` to the end and decode it to text.

    The first ``PEEK_SIZE`` bytes are used for detection and then decoded with
    the rest of the stream; nothing is consumed twice. Every read observes the
    source's scope, so cancellation surfaces unchanged.

    Returns:
        NormalizedBody: Decoded text, or the raw bytes if detection failed
    """
    sample = await source.read_limited(PEEK_SIZE)
    encoding = detect_encoding(sample, content_type, sniff_document)

    if encoding.codec is None:
        rest = await source.read()
        return NormalizedBody(text=None, raw=sample + rest, encoding=encoding)

    decoder = codecs.getincrementaldecoder(encoding.codec)(errors="replace")
    raw_parts = [sample]
    text_parts = [decoder.decode(sample[encoding.bom_length:])]
    async for chunk in source:
        raw_parts.append(chunk)
        text_parts.append(decoder.decode(chunk))
    text_parts.append(decoder.decode(b"", final=True))

    return NormalizedBody(text="".join(text_parts), raw=b"".join(raw_parts), encoding=encoding)
