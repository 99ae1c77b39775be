"""
ShopSage - Catalog Database Setup Script
=========================================
CLI entry point that orchestrates:
    1. Validate that ``GOOGLE_API_KEY`` is set (fail-fast).
    2. Open the LanceDB ``ContentStore`` (optionally drop both tables).
    3. Run the ``CatalogIngestor`` over ``CATALOG_DIR``.
    4. Print an execution summary with a startup / processing split.

Flags:
    --drop         Drop the product and article tables before ingesting.
    --drop-only    Drop both tables and exit (no ingestion).
    --catalog-dir  Read products.json / articles.json from another directory.

Usage:
    python -m shopsage.scripts.setup_db
    python -m shopsage.scripts.setup_db --drop
    python -m shopsage.scripts.setup_db --catalog-dir ./exports/acme
"""

from __future__ import annotations

import argparse
import sys
import time
from pathlib import Path

# ── Ensure project root is importable when run directly ────────────────
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))


# ── CLI Argument Parsing ───────────────────────────────────────────────

def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="setup_db", description="ShopSage — Build the product / article vector tables from a catalog export.")
    parser.add_argument("--drop", action="store_true", default=False, help="Drop both LanceDB tables before ingesting.")
    parser.add_argument("--drop-only", action="store_true", default=False, help="Drop both LanceDB tables and exit (no ingestion).")
    parser.add_argument("--catalog-dir", type=Path, default=None, help="Directory holding products.json / articles.json (default: CATALOG_DIR).")
    return parser.parse_args(argv)


# ── Main Orchestration ─────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    t_start = time.perf_counter()

    # ── 0. Load settings + .env ────────────────────────────────────────
    try:
        from shopsage.config.settings import settings
    except Exception as exc:
        print("\n[FATAL] Configuration error — check your .env file:\n")
        print(f"  {exc}")
        print()
        return 1

    from shopsage.src.utils.logger import get_logger, quiet_third_party_loggers

    logger = get_logger(__name__)
    quiet_third_party_loggers()

    missing = settings.missing_credentials()
    if missing:
        logger.error("Missing required configuration: %s", ", ".join(missing))
        return 1

    catalog_dir = args.catalog_dir or settings.CATALOG_DIR
    _print_header(settings, catalog_dir)

    # ── 1. Embedder + ContentStore (startup) ───────────────────────────
    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    from shopsage.src.database.vector_store import ContentStore

    embedder = GoogleGenerativeAIEmbeddings(model=settings.EMBEDDING_MODEL, google_api_key=settings.GOOGLE_API_KEY.get_secret_value())  # type: ignore[union-attr]
    store = ContentStore(embedder=embedder)
    startup_ms = (time.perf_counter() - t_start) * 1000
    logger.info("Startup complete in %.1fms — %r", startup_ms, store)

    if args.drop or args.drop_only:
        logger.warning("Dropping tables '%s' and '%s' as requested.", settings.PRODUCTS_TABLE, settings.ARTICLES_TABLE)
        store.drop_tables()
        if args.drop_only:
            _print_footer({"products_stored": 0, "articles_stored": 0, "records_skipped": 0}, time.perf_counter() - t_start, startup_ms)
            return 0

    # ── 2. Ingest ──────────────────────────────────────────────────────
    from shopsage.src.core.catalog_ingestor import CatalogIngestor

    summary = CatalogIngestor(store, catalog_dir=catalog_dir).run()

    # ── 3. Summary ─────────────────────────────────────────────────────
    _print_footer(summary, time.perf_counter() - t_start, startup_ms)
    return 0


# ── Pretty-print helpers ──────────────────────────────────────────────

def _print_header(settings: object, catalog_dir: Path) -> None:
    print()
    print("=" * 60)
    print("  SHOPSAGE — Catalog Vector Tables Setup")
    print("=" * 60)
    print(f"  Environment  : {settings.ENV}")              # type: ignore[attr-defined]
    print(f"  Embedding    : {settings.EMBEDDING_MODEL}")  # type: ignore[attr-defined]
    print(f"  LanceDB path : {settings.LANCEDB_PATH}")     # type: ignore[attr-defined]
    print(f"  Tables       : {settings.PRODUCTS_TABLE}, {settings.ARTICLES_TABLE}")  # type: ignore[attr-defined]
    print(f"  Catalog dir  : {catalog_dir}")
    print("=" * 60)
    print()


def _print_footer(summary: dict[str, object], elapsed: float, startup_ms: float) -> None:
    print()
    print("=" * 60)
    print("  EXECUTION SUMMARY")
    print("-" * 60)
    print(f"  Products stored      : {summary['products_stored']}")
    print(f"  Articles stored      : {summary['articles_stored']}")
    print(f"  Records skipped      : {summary['records_skipped']}")
    print("-" * 60)
    print(f"  Startup time         : {startup_ms:>8.1f}ms")
    print(f"  Processing time      : {elapsed - startup_ms / 1000:>8.2f}s")
    print(f"  Total elapsed        : {elapsed:>8.2f}s")
    print("=" * 60)
    print()


# ── Entry point ────────────────────────────────────────────────────────

if __name__ == "__main__":
    sys.exit(main())
