"""
ShopSage - ContentStore
========================
LanceDB-backed content-query service holding two vector tables:
``products`` and ``articles``.

  • **Query side** (request path) — ``match_products`` /
    ``match_articles`` return rows with a cosine ``similarity`` at or
    above the threshold, highest first.
  • **Write side** (offline ingestion) — ``add_products`` /
    ``add_articles`` embed texts in batches and append rows.

Design decisions:
  • **Singleton DB connection** — ``_get_connection()`` caches the
    ``lancedb.DBConnection`` per path to avoid file-lock issues.
  • **Dependency Injection** — the embedder is injected, never
    hard-coded; only the write side uses it.
  • **Lazy tables** — a table is created on its first write, with a
    fixed-size vector column sized from the first embedding.  Querying
    a table that does not exist yet returns no matches.

Usage:
    from langchain_google_genai import GoogleGenerativeAIEmbeddings
    from shopsage.src.database.vector_store import ContentStore

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=...)
    store = ContentStore(embedder)
    store.add_products(texts=[...], rows=[...])
    matches = store.match_products(vector, threshold=0.75, limit=3)
"""

from __future__ import annotations

import threading

import lancedb
import pyarrow as pa

from shopsage.config.settings import settings
from shopsage.src.core.embedding import Embedder
from shopsage.src.utils.logger import get_logger

logger = get_logger(__name__)

# ── Type Aliases ──────────────────────────────────────────────────────
ContentRow = dict[str, str]
MatchRow = dict[str, str | float]

# ── Constants ──────────────────────────────────────────────────────────
_EMBED_BATCH_SIZE = 64
_VECTOR_COLUMN = "vector"
_DB_LOCK = threading.Lock()
_db_connection_cache: dict[str, lancedb.DBConnection] = {}

PRODUCT_FIELDS: tuple[str, ...] = ("handle", "title", "product_type", "short_description", "tags")
ARTICLE_FIELDS: tuple[str, ...] = ("handle", "title", "blog_handle", "excerpt", "tags")


def _schema(fields: tuple[str, ...], dim: int) -> pa.Schema:
    return pa.schema([pa.field(_VECTOR_COLUMN, pa.list_(pa.float32(), dim))] + [pa.field(name, pa.utf8()) for name in fields])


def _get_connection(db_path: str) -> lancedb.DBConnection:
    """
    Return a **singleton** ``lancedb.DBConnection`` for *db_path*.

    Thread-safe via ``_DB_LOCK``.
    """
    if db_path not in _db_connection_cache:
        with _DB_LOCK:
            if db_path not in _db_connection_cache:
                logger.info("Opening new LanceDB connection: %s", db_path)
                _db_connection_cache[db_path] = lancedb.connect(db_path)
    return _db_connection_cache[db_path]


class ContentStore:
    """
    Product / article vector tables with similarity matching.

    Parameters
    ----------
    embedder
        ``Embedder`` used by the write side.  May be ``None`` for a
        query-only store.
    db_path
        Override the database directory.  Defaults to ``settings.LANCEDB_PATH``.
    products_table, articles_table
        Override the table names.
    """

    __slots__ = ("embedder", "_db_path", "_table_names", "_tables", "_lock", "db")

    def __init__(self, embedder: Embedder | None = None, db_path: str | None = None, products_table: str | None = None, articles_table: str | None = None) -> None:
        self.embedder = embedder
        self._db_path: str = str(db_path or settings.LANCEDB_PATH)
        self._table_names: dict[str, str] = {"product": products_table or settings.PRODUCTS_TABLE, "article": articles_table or settings.ARTICLES_TABLE}
        self._tables: dict[str, lancedb.table.Table] = {}
        self._lock = threading.Lock()
        try:
            self.db: lancedb.DBConnection = _get_connection(self._db_path)
        except OSError as exc:
            logger.error("LanceDB filesystem error at %s: %s", self._db_path, exc)
            raise

    # ══════════════════════════════════════════════════════════════════
    #  QUERY SIDE
    # ══════════════════════════════════════════════════════════════════

    def match_products(self, vector: list[float], threshold: float, limit: int) -> list[MatchRow]:
        return self._match("product", vector, threshold, limit)


    def match_articles(self, vector: list[float], threshold: float, limit: int) -> list[MatchRow]:
        return self._match("article", vector, threshold, limit)


    def _match(self, kind: str, vector: list[float], threshold: float, limit: int) -> list[MatchRow]:
        table = self._open(kind)
        if table is None:
            logger.warning("Table '%s' does not exist yet; no %s matches.", self._table_names[kind], kind)
            return []

        raw = table.search(vector, vector_column_name=_VECTOR_COLUMN).distance_type("cosine").limit(limit).to_list()

        matches: list[MatchRow] = []
        for row in raw:
            similarity = 1.0 - float(row["_distance"])
            if similarity < threshold:
                continue
            match: MatchRow = {k: ("" if v is None else str(v)) for k, v in row.items() if k not in (_VECTOR_COLUMN, "_distance")}
            match["similarity"] = similarity
            matches.append(match)

        matches.sort(key=lambda m: m["similarity"], reverse=True)
        logger.debug("%s search: %d raw → %d ≥ %.2f.", kind, len(raw), len(matches), threshold)
        return matches

    # ══════════════════════════════════════════════════════════════════
    #  WRITE SIDE
    # ══════════════════════════════════════════════════════════════════

    def add_products(self, texts: list[str], rows: list[ContentRow]) -> int:
        return self._add("product", PRODUCT_FIELDS, texts, rows)


    def add_articles(self, texts: list[str], rows: list[ContentRow]) -> int:
        return self._add("article", ARTICLE_FIELDS, texts, rows)


    def _add(self, kind: str, fields: tuple[str, ...], texts: list[str], rows: list[ContentRow]) -> int:
        """
        Embed *texts* in batches and persist them with the parallel *rows*.

        Raises
        ------
        ValueError
            If ``texts`` and ``rows`` have mismatched lengths.
        RuntimeError
            If the store has no embedder.
        """
        if len(texts) != len(rows):
            raise ValueError(f"Length mismatch: {len(texts)} texts vs {len(rows)} rows.")
        if not texts:
            return 0
        if self.embedder is None:
            raise RuntimeError("ContentStore was created without an embedder; cannot add documents.")

        logger.info("Embedding %d %s text(s) in batches of %d …", len(texts), kind, _EMBED_BATCH_SIZE)

        vectors: list[list[float]] = []
        for i in range(0, len(texts), _EMBED_BATCH_SIZE):
            batch = texts[i : i + _EMBED_BATCH_SIZE]
            try:
                vectors.extend(self.embedder.embed_documents(batch))
            except Exception as exc:
                logger.error("Embedding batch %d–%d failed: %s", i, i + len(batch) - 1, exc)
                raise

        records = [{_VECTOR_COLUMN: [float(x) for x in vec], **{name: str(row.get(name) or "") for name in fields}} for vec, row in zip(vectors, rows)]

        table = self._open(kind) or self._create(kind, fields, len(vectors[0]))
        try:
            table.add(records)
        except OSError as exc:
            logger.error("Failed to write records to LanceDB: %s", exc)
            raise

        logger.info("Added %d %s row(s). Table '%s' now has %d total rows.", len(records), kind, self._table_names[kind], table.count_rows())
        return len(records)

    # ══════════════════════════════════════════════════════════════════
    #  TABLE MANAGEMENT
    # ══════════════════════════════════════════════════════════════════

    def _existing_tables(self) -> set[str]:
        """Names of the tables in the database, following ``list_tables`` pagination."""
        names: set[str] = set()
        page_token = None
        while True:
            response = self.db.list_tables(page_token=page_token)
            names.update(getattr(response, "tables", response))
            page_token = getattr(response, "page_token", None)
            if not page_token:
                return names


    def _open(self, kind: str) -> lancedb.table.Table | None:
        name = self._table_names[kind]
        if kind in self._tables:
            return self._tables[kind]
        with self._lock:
            if kind not in self._tables and name in self._existing_tables():
                self._tables[kind] = self.db.open_table(name)
                logger.info("Opened existing table '%s' (%d rows).", name, self._tables[kind].count_rows())
        return self._tables.get(kind)


    def _create(self, kind: str, fields: tuple[str, ...], dim: int) -> lancedb.table.Table:
        name = self._table_names[kind]
        with self._lock:
            self._tables[kind] = self.db.create_table(name, schema=_schema(fields, dim), exist_ok=True)
        logger.info("Created table '%s' (dim=%d).", name, dim)
        return self._tables[kind]


    def count(self, kind: str) -> int:
        """Return the number of rows for ``"product"`` or ``"article"``."""
        table = self._open(kind)
        return 0 if table is None else table.count_rows()


    def drop_tables(self) -> None:
        """Drop both tables (used by ``setup_db --drop``)."""
        for kind, name in self._table_names.items():
            with self._lock:
                self._tables.pop(kind, None)
                if name not in self._existing_tables():
                    logger.warning("Table '%s' does not exist — nothing to drop.", name)
                    continue
                try:
                    self.db.drop_table(name)
                except OSError as exc:
                    logger.error("Filesystem error dropping table '%s': %s", name, exc)
                    raise
            logger.info("Dropped table '%s'.", name)


    def __repr__(self) -> str:
        return f"ContentStore(db='{self._db_path}', products={self.count('product')}, articles={self.count('article')})"
