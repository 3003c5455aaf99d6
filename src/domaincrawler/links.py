"""
Anchor link extraction from HTML.
"""
from __future__ import annotations

from typing import Iterator, Optional, Union

from bs4 import BeautifulSoup, SoupStrainer

# SoupStrainer to parse only <a> tags (faster link extraction)
LINK_STRAINER = SoupStrainer("a", href=True)


def extract_links(html: Union[bytes, str], encoding: Optional[str] = None) -> Iterator[str]:
    """
    Yield the raw href value of every <a> tag, in document order.

    Raw bytes are decoded by BeautifulSoup, using ``encoding`` when the
    server declared one and the document's own <meta charset> otherwise.
    """
    if isinstance(html, bytes):
        soup = BeautifulSoup(html, "lxml", parse_only=LINK_STRAINER, from_encoding=encoding)
    else:
        soup = BeautifulSoup(html, "lxml", parse_only=LINK_STRAINER)
    for anchor in soup.find_all("a"):
        href = anchor.get("href")
        if href is not None:
            yield href.strip()
