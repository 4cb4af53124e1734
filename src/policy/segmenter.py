"""
Policy Segmentation
===================

Extracts candidate paragraphs from a privacy policy page.

Page chrome (navigation, headers, footers, ads, cookie banners, scripts and
styles) is removed first. Text is then collected from content-bearing
elements, one selector at a time, and filtered:

1. keep text longer than 100 characters, or any text inside a ``<p>``/``<li>``;
2. drop exact duplicates, keeping the first occurrence;
3. drop text shorter than 50 characters;
4. drop text without at least two alphanumeric words.

The same document always yields the same paragraphs in the same order.
"""

from __future__ import annotations

import copy
import re

import structlog
from bs4 import BeautifulSoup, Tag

log = structlog.get_logger(__name__)

UNWANTED_SELECTORS = (
    "header",
    "footer",
    "nav",
    "aside",
    ".ad",
    ".sidebar",
    ".footer",
    "#header",
    "#footer",
    "#ads",
    ".ads",
    ".cookie-banner",
    ".popup",
    "script",
    "style",
)

TEXT_SELECTORS = (
    "p",
    "div.text-content",
    "article",
    "section",
    "div[class*='content']",
    "div[class*='text']",
    "[data-content]",
    "li",
    "span:not([class])",
    "td",
)

NESTING_CONTAINERS = ("p", "li")
LONG_TEXT_LENGTH = 100
MIN_PARAGRAPH_LENGTH = 50

MEANINGFUL_CONTENT_RE = re.compile(r"[a-z0-9]+\s+[a-z0-9]+", re.IGNORECASE)


def parse_document(html: str) -> BeautifulSoup:
    """Parse an HTML string into a document tree."""
    return BeautifulSoup(html, "html.parser")


def remove_unwanted_elements(document: BeautifulSoup) -> BeautifulSoup:
    """Strip page chrome and script/style nodes from ``document`` in place."""
    for selector in UNWANTED_SELECTORS:
        for element in document.select(selector):
            element.extract()
    return document


def has_meaningful_content(text: str) -> bool:
    """True if ``text`` contains at least two whitespace-separated words."""
    return MEANINGFUL_CONTENT_RE.search(text) is not None


def _inside_text_container(element: Tag) -> bool:
    return (
        element.name in NESTING_CONTAINERS
        or element.find_parent(NESTING_CONTAINERS) is not None
    )


def segment(document: BeautifulSoup) -> list[str]:
    """
    Segment a policy document into paragraphs.

    ``document`` itself is left untouched.
    """
    working = remove_unwanted_elements(copy.copy(document))

    candidates: list[str] = []
    for selector in TEXT_SELECTORS:
        for element in working.select(selector):
            text = element.get_text().strip()
            if len(text) > LONG_TEXT_LENGTH or _inside_text_container(element):
                candidates.append(text)

    paragraphs: list[str] = []
    seen: set[str] = set()
    for text in candidates:
        if text in seen:
            continue
        seen.add(text)
        if len(text) >= MIN_PARAGRAPH_LENGTH and has_meaningful_content(text):
            paragraphs.append(text)

    log.debug("Segmented paragraphs", count=len(paragraphs), candidates=len(candidates))
    return paragraphs
