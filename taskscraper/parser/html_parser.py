"""
HTML document wrapper over BeautifulSoup.

Scraping tasks receive an :class:`HTMLDocument` instead of a bare soup so
that relative links always resolve against the URL the document was actually
served from (the effective URL after redirects, or an in-document
``<base href>``).
"""
from typing import List, Optional, Union
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag

PARSER_BACKEND = "html.parser"


class HTMLDocument:
    """
    Parsed HTML document with a base URL.

    Query methods are thin pass-throughs to BeautifulSoup, so tasks can use
    the familiar ``select``/``find`` API.
    """

    def __init__(self, soup: BeautifulSoup, url: str = ""):
        """
        Initialize the document.

        Args:
            soup: Parsed tree
            url: Base URL of the document ("" when unknown)
        """
        self.soup = soup
        self.url = url

    @classmethod
    def parse(cls, markup: Union[str, bytes], url: str = "") -> "HTMLDocument":
        """Parse ``markup`` into a document with base URL ``url``."""
        return cls(BeautifulSoup(markup, PARSER_BACKEND), url=url)

    @property
    def title(self) -> str:
        if self.soup.title is None:
            return ""
        return self.soup.title.get_text(strip=True)

    @property
    def base_href(self) -> str:
        """Resolved ``<base href>`` of the document, or the base URL."""
        base = self.soup.find("base", href=True)
        if base is None:
            return self.url
        return urljoin(self.url, base["href"].strip())

    def select(self, selector: str) -> List[Tag]:
        return self.soup.select(selector)

    def select_one(self, selector: str) -> Optional[Tag]:
        return self.soup.select_one(selector)

    def find(self, *args, **kwargs) -> Optional[Tag]:
        return self.soup.find(*args, **kwargs)

    def find_all(self, *args, **kwargs) -> List[Tag]:
        return self.soup.find_all(*args, **kwargs)

    def text(self, separator: str = " ", strip: bool = True) -> str:
        """Get all text content from the document."""
        return self.soup.get_text(separator=separator, strip=strip)

    def absolute_url(self, href: Optional[str]) -> str:
        """
        Resolve ``href`` against the document's base.

        Returns:
            str: Absolute URL, ``href`` unchanged without a base, or "" for
                an empty ``href``
        """
        if not href:
            return ""
        href = href.strip()
        base = self.base_href
        if not base:
            return href
        return urljoin(base, href)

    def links(self) -> List[str]:
        """Absolute URLs of all ``<a href>`` elements, in document order."""
        result = []
        for anchor in self.soup.find_all("a", href=True):
            href = anchor["href"].strip()
            if not href or href.startswith(("javascript:", "mailto:", "#")):
                continue
            result.append(self.absolute_url(href))
        return result

    def node_count(self) -> int:
        return len(self.soup.find_all(True))

    def __str__(self) -> str:
        return str(self.soup)
