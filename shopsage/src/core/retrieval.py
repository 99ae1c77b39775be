"""
ShopSage - Retrieval Service
=============================
Queries the content store for products and articles similar to a
query vector.

The two kinds are independent failure domains: the chat engine calls
``retrieve()`` once per kind and a ``RetrievalError`` from one never
affects the other.  Each call is bounded by ``timeout_s``; a timeout is
a ``RetrievalError`` like any other failure.

Results are filtered to ``similarity >= threshold`` and ordered by
descending similarity (stable, so ties keep the store's order).
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Mapping
from typing import Protocol, runtime_checkable

from shopsage.src.core.errors import RetrievalError
from shopsage.src.core.models import ItemKind, RetrievedItem
from shopsage.src.utils.logger import get_logger

logger = get_logger(__name__)

MatchRow = Mapping[str, object]


@runtime_checkable
class ContentQueryService(Protocol):
    """Content-store query interface (implemented by ``ContentStore``)."""

    def match_products(self, vector: list[float], threshold: float, limit: int) -> list[MatchRow]: ...

    def match_articles(self, vector: list[float], threshold: float, limit: int) -> list[MatchRow]: ...


def _text(row: MatchRow, key: str) -> str:
    value = row.get(key)
    return "" if value is None else str(value).strip()


def row_to_item(kind: ItemKind, row: MatchRow) -> RetrievedItem:
    """Build a ``RetrievedItem`` from a content-store row."""
    return RetrievedItem(
        kind=kind,
        title=_text(row, "title"),
        handle=_text(row, "handle"),
        similarity=float(row.get("similarity", 0.0)),  # type: ignore[arg-type]
        category=_text(row, "product_type"),
        short_description=_text(row, "short_description"),
        excerpt=_text(row, "excerpt"),
        blog_handle=_text(row, "blog_handle"),
    )


class RetrievalService:
    """
    Time-bounded adapter over a blocking ``ContentQueryService``.

    Parameters
    ----------
    content_store
        Object exposing ``match_products`` / ``match_articles``.
    timeout_s
        Upper bound for one query.
    """

    __slots__ = ("_store", "_timeout_s")

    def __init__(self, content_store: ContentQueryService, timeout_s: float) -> None:
        self._store = content_store
        self._timeout_s = timeout_s


    async def retrieve(self, vector: list[float], kind: ItemKind, threshold: float, limit: int) -> list[RetrievedItem]:
        """Return up to *limit* items of *kind* at or above *threshold*; empty on no match."""
        query = self._store.match_products if kind is ItemKind.PRODUCT else self._store.match_articles

        t_start = time.perf_counter()
        try:
            rows = await asyncio.wait_for(asyncio.to_thread(query, vector, threshold, limit), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            logger.error("[RETRIEVE] %s query timed out after %.1fs.", kind.value, self._timeout_s)
            raise RetrievalError(kind.value, f"timed out after {self._timeout_s:.1f}s") from exc
        except Exception as exc:
            logger.error("[RETRIEVE] %s query failed: %s", kind.value, exc)
            raise RetrievalError(kind.value, str(exc)) from exc

        try:
            items = [row_to_item(kind, row) for row in rows or []]
        except (TypeError, ValueError, AttributeError) as exc:
            logger.error("[RETRIEVE] %s query returned malformed rows: %s", kind.value, exc)
            raise RetrievalError(kind.value, "malformed rows") from exc

        items = [item for item in items if item.similarity >= threshold]
        items.sort(key=lambda item: item.similarity, reverse=True)
        items = items[:limit]

        logger.info("[RETRIEVE] %d %s match(es) ≥ %.2f in %.1fms.", len(items), kind.value, threshold, (time.perf_counter() - t_start) * 1000)
        return items
