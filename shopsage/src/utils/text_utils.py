"""
ShopSage - Text Utilities
==========================
Helpers that turn Shopify catalog HTML into the plain-text fields stored
next to each vector (``short_description``, ``excerpt``) and into the
text that gets embedded.

Consumed by ``CatalogIngestor``; stateless and side-effect-free.
"""

from __future__ import annotations

import re
import unicodedata

from bs4 import BeautifulSoup


# ── Non-printable character pattern ────────────────────────────────────
# Control characters (C0/C1) except \n, \r, \t, plus BOM, zero-width
# characters, soft hyphens and directional marks.
_NON_PRINTABLE_RE = re.compile(r"[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x9f﻿​‌‍‎‏­⁠￾]")

ELLIPSIS = "..."
SHORT_DESCRIPTION_CHARS = 100
EXCERPT_CHARS = 200
FEATURE_TAGS = 3


# ── Public API ─────────────────────────────────────────────────────────

def clean_text(text: str) -> str:
    """
    Normalise text for storage and embedding.

    Steps:
        1. Unicode NFC normalisation.
        2. Strip non-printable / zero-width characters.
        3. Collapse every whitespace run (newlines included) to one space.
    """
    text = unicodedata.normalize("NFC", text)
    text = _NON_PRINTABLE_RE.sub("", text)
    return re.sub(r"\s+", " ", text).strip()


def strip_html(markup: str | None) -> str:
    """
    Return the visible text of an HTML fragment, cleaned.

    ``None`` and empty input give ``""``.  Entities are decoded and
    ``<script>`` / ``<style>`` bodies are dropped.
    """
    if not markup:
        return ""
    soup = BeautifulSoup(markup, "lxml")
    for tag in soup(["script", "style"]):
        tag.decompose()
    return clean_text(soup.get_text(" ", strip=True))


def truncate(text: str, limit: int) -> str:
    """Cut *text* to *limit* characters, appending ``...`` only when something was cut."""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + ELLIPSIS


def short_description(body_html: str | None, tags: list[str] | None = None) -> str:
    """
    Product blurb: the first ``SHORT_DESCRIPTION_CHARS`` of the plain
    description, or a "Key features" line built from the first tags when
    the description is empty.
    """
    description = truncate(strip_html(body_html), SHORT_DESCRIPTION_CHARS)
    if not description and tags:
        return "Key features include: " + ", ".join(tags[:FEATURE_TAGS]) + "."
    return description


def excerpt(excerpt_html: str | None, body_html: str | None = None) -> str:
    """Article teaser from ``excerpt_html``, falling back to the body."""
    return truncate(strip_html(excerpt_html) or strip_html(body_html), EXCERPT_CHARS)
