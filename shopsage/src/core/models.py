"""
ShopSage - Data Model
======================
Value types shared by the chat engine.

``Turn``
    One stored message.  For user turns the text is always the *clean*
    query, never the context-augmented composite sent to the LLM.
``RetrievedItem``
    A product or article surfaced by retrieval.  Built per request and
    never persisted beyond the request / interaction log.
``ContextBlock``
    The formatted retrieval results injected into one turn.
``InteractionLogRecord``
    Write-only audit record; the engine never reads it back.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class Role(str, Enum):
    USER = "user"
    MODEL = "model"


class ItemKind(str, Enum):
    PRODUCT = "product"
    ARTICLE = "article"


@dataclass(frozen=True, slots=True)
class Turn:
    role: Role
    text: str


@dataclass(frozen=True, slots=True)
class RetrievedItem:
    """
    A content-store match scored against the similarity threshold.

    Product-only fields: ``category``, ``short_description``.
    Article-only fields: ``excerpt``, ``blog_handle``.
    """

    kind: ItemKind
    title: str
    handle: str
    similarity: float
    category: str = ""
    short_description: str = ""
    excerpt: str = ""
    blog_handle: str = ""


@dataclass(frozen=True, slots=True)
class ContextBlock:
    text: str
    product_count: int = 0
    article_count: int = 0
    search_available: bool = True

    @property
    def item_count(self) -> int:
        return self.product_count + self.article_count


@dataclass(frozen=True, slots=True)
class InteractionLogRecord:
    session_id: str
    user_query: str
    context_summary: str
    ai_response: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_document(self) -> dict[str, str | datetime]:
        """Serialise for the log sink (snake_case keys, UTC timestamp)."""
        return {
            "session_id": self.session_id,
            "user_query": self.user_query,
            "retrieved_context_summary": self.context_summary,
            "ai_response": self.ai_response,
            "timestamp": self.timestamp,
        }
