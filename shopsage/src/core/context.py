"""
ShopSage - Context Assembler
=============================
Pure formatting of retrieved items into the ``ContextBlock`` injected
into a turn.

Layout (deterministic)::

    Relevant context from the store:
    Products:
    - Title: …, Category: …, Description: …, Handle: …
    Articles:
    - Title: …, Excerpt: …, Handle: …

Sections appear only when non-empty; with nothing to show an explicit
"no matches" sentence is emitted so the model always knows retrieval
ran.  At most ``limit`` items per kind, in the order given (highest
similarity first).
"""

from __future__ import annotations

from collections.abc import Sequence

from shopsage.config.prompt_templates import ARTICLE_BLOG_SUFFIX, ARTICLE_LINE_TEMPLATE, ARTICLES_HEADER, CONTEXT_HEADER, MISSING_FIELD, NO_MATCHES_SENTENCE, PRODUCT_LINE_TEMPLATE, PRODUCTS_HEADER, SEARCH_UNAVAILABLE_SENTENCE
from shopsage.src.core.models import ContextBlock, RetrievedItem


def _field(value: str) -> str:
    return value or MISSING_FIELD


def _product_line(item: RetrievedItem) -> str:
    return PRODUCT_LINE_TEMPLATE.format(title=_field(item.title), category=_field(item.category), description=_field(item.short_description), handle=_field(item.handle))


def _article_line(item: RetrievedItem) -> str:
    line = ARTICLE_LINE_TEMPLATE.format(title=_field(item.title), excerpt=_field(item.excerpt), handle=_field(item.handle))
    if item.blog_handle:
        line += ARTICLE_BLOG_SUFFIX.format(blog_handle=item.blog_handle)
    return line


def assemble(products: Sequence[RetrievedItem], articles: Sequence[RetrievedItem], limit: int) -> ContextBlock:
    """Format up to *limit* products and *limit* articles into a ``ContextBlock``."""
    products = list(products)[:limit]
    articles = list(articles)[:limit]

    lines: list[str] = [CONTEXT_HEADER]
    if products:
        lines.append(PRODUCTS_HEADER)
        lines.extend(_product_line(p) for p in products)
    if articles:
        lines.append(ARTICLES_HEADER)
        lines.extend(_article_line(a) for a in articles)
    if not products and not articles:
        lines.append(NO_MATCHES_SENTENCE)

    return ContextBlock(text="\n".join(lines), product_count=len(products), article_count=len(articles))


def search_unavailable_block() -> ContextBlock:
    """Sentinel block used when the query could not be embedded."""
    return ContextBlock(text=SEARCH_UNAVAILABLE_SENTENCE, search_available=False)
