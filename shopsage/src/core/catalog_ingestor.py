"""
ShopSage - CatalogIngestor
===========================
Offline pipeline that reads a Shopify catalog export, cleans it and
persists it into the ``ContentStore`` product / article tables.

Input (``CATALOG_DIR``)::

    products.json   [{"handle", "title", "product_type", "body_html", "tags"}, …]
    articles.json   [{"handle", "title", "body_html", "excerpt_html", "blog_handle", "tags"}, …]

Either file may also wrap its list under a ``"products"`` / ``"articles"``
key.  A missing file is skipped with a warning.

Key design decisions:
    • **Dependency Injection** – receives the ``ContentStore``; the store
      owns the embedder and the batching.
    • **Derived fields** – ``short_description`` (first 100 chars, or a
      "Key features" line from tags) and ``excerpt`` (first 200 chars of
      the excerpt or body) are computed here, once, at ingest time.
    • **Concurrency** – products and articles are ingested in parallel
      via ``ThreadPoolExecutor`` (Gemini API calls are I/O-bound).
    • **Skip, don't fail** – records without a handle or title are
      dropped and counted.

Usage:
    from shopsage.src.core.catalog_ingestor import CatalogIngestor
    ingestor = CatalogIngestor(content_store)
    summary  = ingestor.run()
"""

from __future__ import annotations

import json
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

from shopsage.config.settings import settings
from shopsage.src.database.vector_store import ContentRow, ContentStore
from shopsage.src.utils.logger import get_logger
from shopsage.src.utils.text_utils import clean_text, excerpt, short_description, strip_html

logger = get_logger(__name__)

PRODUCTS_FILE = "products.json"
ARTICLES_FILE = "articles.json"

_DEFAULT_PRODUCT_TYPE = "General"
# Body text beyond this is not embedded
_MAX_EMBED_BODY_CHARS = 2000


def _tags(raw: Any) -> list[str]:
    """Shopify exports tags either as a list or as one comma-separated string."""
    if isinstance(raw, str):
        return [t.strip() for t in raw.split(",") if t.strip()]
    if isinstance(raw, list):
        return [str(t).strip() for t in raw if str(t).strip()]
    return []


class CatalogIngestor:
    """
    End-to-end catalog ingestion: read → clean → derive → embed → store.

    Parameters
    ----------
    content_store
        An initialised ``ContentStore`` with an embedder (injected).
    catalog_dir
        Override the source directory.  Defaults to ``settings.CATALOG_DIR``.
    """

    __slots__ = ("_store", "_catalog_dir")

    def __init__(self, content_store: ContentStore, catalog_dir: Path | None = None) -> None:
        self._store = content_store
        self._catalog_dir = Path(catalog_dir or settings.CATALOG_DIR)

    # ══════════════════════════════════════════════════════════════════
    #  PUBLIC ENTRY POINT
    # ══════════════════════════════════════════════════════════════════

    def run(self) -> dict[str, Any]:
        """
        Ingest products and articles.

        Returns
        -------
        dict
            ``products_stored``, ``articles_stored``, ``records_skipped``,
            ``elapsed_seconds``.
        """
        t_start = time.perf_counter()

        if not self._catalog_dir.exists():
            logger.warning("Catalog directory does not exist: %s", self._catalog_dir)
            return self._summary(0, 0, 0, time.perf_counter() - t_start)

        logger.info("Starting catalog ingestion from %s", self._catalog_dir)

        with ThreadPoolExecutor(max_workers=2) as pool:
            products_future = pool.submit(self._ingest_products)
            articles_future = pool.submit(self._ingest_articles)
            products_stored, products_skipped = products_future.result()
            articles_stored, articles_skipped = articles_future.result()

        elapsed = time.perf_counter() - t_start
        logger.info("Ingestion complete — %d product(s), %d article(s) stored, %d skipped in %.2fs.", products_stored, articles_stored, products_skipped + articles_skipped, elapsed)
        return self._summary(products_stored, articles_stored, products_skipped + articles_skipped, elapsed)

    # ══════════════════════════════════════════════════════════════════
    #  PER-KIND PROCESSING
    # ══════════════════════════════════════════════════════════════════

    def _ingest_products(self) -> tuple[int, int]:
        records = self._load(PRODUCTS_FILE, "products")
        texts: list[str] = []
        rows: list[ContentRow] = []
        skipped = 0
        for record in records:
            prepared = self.prepare_product(record)
            if prepared is None:
                skipped += 1
                continue
            text, row = prepared
            texts.append(text)
            rows.append(row)
        return self._store.add_products(texts, rows), skipped


    def _ingest_articles(self) -> tuple[int, int]:
        records = self._load(ARTICLES_FILE, "articles")
        texts: list[str] = []
        rows: list[ContentRow] = []
        skipped = 0
        for record in records:
            prepared = self.prepare_article(record)
            if prepared is None:
                skipped += 1
                continue
            text, row = prepared
            texts.append(text)
            rows.append(row)
        return self._store.add_articles(texts, rows), skipped


    @staticmethod
    def prepare_product(record: dict[str, Any]) -> tuple[str, ContentRow] | None:
        """Return ``(embedding_text, row)`` for one product, or ``None`` if unusable."""
        handle = clean_text(str(record.get("handle") or ""))
        title = clean_text(str(record.get("title") or ""))
        if not handle or not title:
            logger.debug("Skipping product without handle/title: %r", record.get("id"))
            return None

        tags = _tags(record.get("tags"))
        product_type = clean_text(str(record.get("product_type") or "")) or _DEFAULT_PRODUCT_TYPE
        body = strip_html(record.get("body_html"))
        row: ContentRow = {"handle": handle, "title": title, "product_type": product_type, "short_description": short_description(record.get("body_html"), tags), "tags": ", ".join(tags)}

        text = "\n".join(part for part in (title, f"Category: {product_type}", body[:_MAX_EMBED_BODY_CHARS], f"Tags: {', '.join(tags)}" if tags else "") if part)
        return text, row


    @staticmethod
    def prepare_article(record: dict[str, Any]) -> tuple[str, ContentRow] | None:
        """Return ``(embedding_text, row)`` for one article, or ``None`` if unusable."""
        handle = clean_text(str(record.get("handle") or ""))
        title = clean_text(str(record.get("title") or ""))
        if not handle or not title:
            logger.debug("Skipping article without handle/title: %r", record.get("id"))
            return None

        tags = _tags(record.get("tags"))
        blog = record.get("blog")
        blog_handle = record.get("blog_handle") or (blog.get("handle") if isinstance(blog, dict) else "") or ""
        teaser = excerpt(record.get("excerpt_html"), record.get("body_html"))
        body = strip_html(record.get("body_html"))
        row: ContentRow = {"handle": handle, "title": title, "blog_handle": clean_text(str(blog_handle)), "excerpt": teaser, "tags": ", ".join(tags)}

        text = "\n".join(part for part in (title, teaser, body[:_MAX_EMBED_BODY_CHARS]) if part)
        return text, row

    # ══════════════════════════════════════════════════════════════════
    #  FILE I/O
    # ══════════════════════════════════════════════════════════════════

    def _load(self, filename: str, key: str) -> list[dict[str, Any]]:
        path = self._catalog_dir / filename
        if not path.exists():
            logger.warning("Catalog file not found, skipping: %s", path)
            return []

        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            logger.exception("Failed to read catalog file: %s", path)
            raise

        if isinstance(data, dict):
            data = data.get(key, [])
        if not isinstance(data, list):
            raise ValueError(f"{path.name}: expected a list of records, got {type(data).__name__}.")

        records = [r for r in data if isinstance(r, dict)]
        logger.info("Loaded %d record(s) from %s.", len(records), path.name)
        return records


    @staticmethod
    def _summary(products: int, articles: int, skipped: int, elapsed: float) -> dict[str, Any]:
        return {
            "products_stored": products,
            "articles_stored": articles,
            "records_skipped": skipped,
            "elapsed_seconds": round(elapsed, 2),
        }
