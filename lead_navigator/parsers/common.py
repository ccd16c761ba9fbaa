"""Selector helpers shared by the page parsers."""
from __future__ import annotations

import re
from typing import Iterable, List, Optional, Union
from urllib.parse import urljoin, urlparse

from bs4 import BeautifulSoup, Tag

DEFAULT_ORIGIN = "https://www.linkedin.com/"

Markup = Union[str, bytes, BeautifulSoup, Tag]

_WHITESPACE = re.compile(r"\s+")


def make_soup(markup: Markup) -> Union[BeautifulSoup, Tag]:
    if isinstance(markup, (BeautifulSoup, Tag)):
        return markup
    return BeautifulSoup(markup, "html.parser")


def squash(text: Optional[str]) -> str:
    return _WHITESPACE.sub(" ", text or "").strip()


def text_of(element: Optional[Tag]) -> str:
    if element is None:
        return ""
    return squash(element.get_text(" "))


def first_text(root: Tag, selectors: Iterable[str]) -> Optional[str]:
    """Return the text of the first selector that matches with non-empty content."""

    for selector in selectors:
        value = text_of(root.select_one(selector))
        if value:
            return value
    return None


def first_attribute(root: Tag, selectors: Iterable[str], attribute: str) -> Optional[str]:
    for selector in selectors:
        element = root.select_one(selector)
        if element is None:
            continue
        value = (element.get(attribute) or "").strip()
        if value:
            return value
    return None


def first_match(root: Tag, selectors: Iterable[str]) -> Optional[Tag]:
    for selector in selectors:
        element = root.select_one(selector)
        if element is not None:
            return element
    return None


def collect(root: Tag, selectors: Iterable[str]) -> List[Tag]:
    """Collect matches for each selector in turn, keeping duplicates across selectors."""

    found: List[Tag] = []
    for selector in selectors:
        found.extend(root.select(selector))
    return found


def resolve_url(raw: Optional[str], origin: str) -> Optional[str]:
    if not raw or not raw.strip():
        return None
    resolved = urljoin(origin, raw.strip())
    if urlparse(resolved).scheme not in {"http", "https"}:
        return None
    return resolved


def reached_limit(count: int, limit: Optional[int]) -> bool:
    return limit is not None and limit > 0 and count >= limit


__all__ = [
    "DEFAULT_ORIGIN",
    "Markup",
    "collect",
    "first_attribute",
    "first_match",
    "first_text",
    "make_soup",
    "reached_limit",
    "resolve_url",
    "squash",
    "text_of",
]
