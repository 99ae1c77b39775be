"""
ShopSage - Embedding Client
============================
Turns free text into a fixed-size vector through an injected
LangChain-compatible embedder (``GoogleGenerativeAIEmbeddings`` in
production, a fake in tests).

Failure contract
----------------
``embed()`` raises ``EmbeddingError`` when:
  • the input is empty / whitespace-only (checked before any call),
  • the embedder raises or exceeds ``timeout_s``,
  • the response is not a non-empty list of numbers.
Callers degrade to a context-free answer; they never abort the request.
"""

from __future__ import annotations

import asyncio
import math
import time
from typing import Protocol, runtime_checkable

from shopsage.src.core.errors import EmbeddingError
from shopsage.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class Embedder(Protocol):
    """Anything that can produce embedding vectors from text."""

    def embed_documents(self, texts: list[str]) -> list[list[float]]: ...

    def embed_query(self, text: str) -> list[float]: ...


class EmbeddingClient:
    """
    Async, time-bounded wrapper around a blocking ``Embedder``.

    Parameters
    ----------
    embedder
        Object satisfying ``Embedder``.
    timeout_s
        Upper bound for a single ``embed_query`` call.
    """

    __slots__ = ("_embedder", "_timeout_s")

    def __init__(self, embedder: Embedder, timeout_s: float) -> None:
        self._embedder = embedder
        self._timeout_s = timeout_s


    async def embed(self, text: str) -> list[float]:
        if not isinstance(text, str) or not text.strip():
            raise EmbeddingError("Cannot generate embedding for empty or invalid text.")

        t_start = time.perf_counter()
        try:
            raw = await asyncio.wait_for(asyncio.to_thread(self._embedder.embed_query, text), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            logger.error("[EMBED] Embedding timed out after %.1fs.", self._timeout_s)
            raise EmbeddingError(f"Embedding timed out after {self._timeout_s:.1f}s.") from exc
        except Exception as exc:
            logger.error("[EMBED] Embedding service failed: %s", exc)
            raise EmbeddingError(f"Failed to generate embedding: {exc}") from exc

        vector = self._validate(raw)
        logger.debug("[EMBED] %d-dim vector in %.1fms.", len(vector), (time.perf_counter() - t_start) * 1000)
        return vector


    @staticmethod
    def _validate(raw: object) -> list[float]:
        """Coerce the embedder output to ``list[float]`` or raise ``EmbeddingError``."""
        if raw is None or isinstance(raw, (str, bytes)):
            raise EmbeddingError("Embedding response lacks a usable vector.")
        try:
            vector = [float(v) for v in raw]  # type: ignore[union-attr]
        except (TypeError, ValueError) as exc:
            raise EmbeddingError("Embedding response lacks a usable vector.") from exc
        if not vector or not all(math.isfinite(v) for v in vector):
            raise EmbeddingError("Embedding response lacks a usable vector.")
        return vector
