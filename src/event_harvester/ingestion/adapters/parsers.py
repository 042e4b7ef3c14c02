"""HTML parsing helpers for listing pages.

BeautifulSoup primitives shared by selector extraction and the AI text
cleaner. This module does not know about event fields.
"""

from __future__ import annotations

import re

from bs4 import BeautifulSoup, Tag

_WS = re.compile(r"\s+")


def bs4_soup(html: str) -> BeautifulSoup:
    """Parse HTML with the stdlib-backed parser."""
    return BeautifulSoup(html or "", "html.parser")


def _collapse_ws(s: str) -> str:
    return _WS.sub(" ", s or "").strip()


def get_text_bs4(html: str, max_chars: int | None = None) -> str:
    """Extract visible text from HTML, optionally truncated to max_chars."""
    soup = bs4_soup(html)
    # remove script/style
    for t in soup(["script", "style", "noscript"]):
        t.extract()
    text = _collapse_ws(soup.get_text(" ", strip=True))
    if max_chars is not None:
        text = text[:max_chars]
    return text


def first_text(node: Tag, selector: str | None) -> str | None:
    """
    Text of the first element under node matching selector.

    A comma-separated selector behaves like querySelector: the first match in
    document order wins. Blank text counts as no match.
    """
    if not selector:
        return None
    found = node.select_one(selector)
    if found is None:
        return None
    return _collapse_ws(found.get_text(" ", strip=True)) or None


def first_attr(node: Tag, selector: str | None, attr: str) -> str | None:
    """Attribute of the first element under node matching selector."""
    if not selector:
        return None
    found = node.select_one(selector)
    if found is None:
        return None
    value = found.get(attr)
    if isinstance(value, list):
        value = " ".join(value)
    return value.strip() if value and value.strip() else None
