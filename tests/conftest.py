"""
Shared fixtures and in-process fakes
=====================================

Every external service (Gemini embeddings, Gemini chat, the LanceDB
content store, MongoDB) is replaced by a small fake so the suite runs
offline and deterministically.
"""

# -----------------------------------------------------------------------------
# Libraries
# -----------------------------------------------------------------------------

import asyncio
from dataclasses import dataclass

import pytest
from langchain_core.messages import AIMessage

from shopsage.src.core.chat_engine import SessionManager
from shopsage.src.core.embedding import EmbeddingClient
from shopsage.src.core.history import HistoryManager
from shopsage.src.core.interaction_log import InteractionLogger
from shopsage.src.core.llm_client import LlmClient
from shopsage.src.core.retrieval import RetrievalService
from shopsage.src.core.session_store import InMemorySessionStore

# ----------------------------
# Fakes
# ----------------------------


class FakeEmbedder:
    """Returns a fixed vector, or a per-text vector from ``vectors``."""

    def __init__(self, vector=None, vectors=None, error=None):
        self.vector = vector if vector is not None else [0.1, 0.2, 0.3]
        self.vectors = vectors or {}
        self.error = error
        self.queries = []

    def embed_query(self, text):
        self.queries.append(text)
        if self.error:
            raise self.error
        return self.vectors.get(text, self.vector)

    def embed_documents(self, texts):
        if self.error:
            raise self.error
        return [self.vectors.get(t, self.vector) for t in texts]


class FakeContentStore:
    """Returns canned rows; a configured error makes that kind's query raise."""

    def __init__(self, products=None, articles=None, product_error=None, article_error=None):
        self.products = products or []
        self.articles = articles or []
        self.product_error = product_error
        self.article_error = article_error
        self.calls = []

    def match_products(self, vector, threshold, limit):
        self.calls.append(("product", threshold, limit))
        if self.product_error:
            raise self.product_error
        return list(self.products)

    def match_articles(self, vector, threshold, limit):
        self.calls.append(("article", threshold, limit))
        if self.article_error:
            raise self.article_error
        return list(self.articles)


class FakeChatModel:
    """
    Stand-in for ``ChatGoogleGenerativeAI.ainvoke``.

    Replies ``"reply <n>"`` unless ``replies`` is given.  ``error`` makes
    every call raise; ``delay`` makes every call sleep first.
    """

    def __init__(self, replies=None, error=None, delay=0.0):
        self.replies = list(replies or [])
        self.error = error
        self.delay = delay
        self.calls = []

    async def ainvoke(self, input, **kwargs):
        self.calls.append(list(input))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        if self.replies:
            return self.replies.pop(0)
        return AIMessage(content=f"reply {len(self.calls)}")


class FakeSink:
    def __init__(self, error=None):
        self.documents = []
        self.error = error

    async def insert_one(self, document):
        if self.error:
            raise self.error
        self.documents.append(document)
        return document


@dataclass
class Harness:
    manager: SessionManager
    store: InMemorySessionStore
    embedder: FakeEmbedder
    content: FakeContentStore
    model: FakeChatModel
    sink: FakeSink


PRODUCT_ROW = {"title": "ZenFlow Eco Yoga Mat", "handle": "zenflow-mat", "product_type": "Yoga Gear", "short_description": "Eco-friendly TPE mat.", "similarity": 0.91}
ARTICLE_ROW = {"title": "Beginner Yoga Poses", "handle": "beginner-poses", "excerpt": "Ten foundational poses.", "blog_handle": "news", "similarity": 0.82}


def build_harness(embedder=None, content=None, model=None, sink=None, max_turns=10, threshold=0.75, limit=3):
    embedder = embedder or FakeEmbedder()
    content = content or FakeContentStore(products=[PRODUCT_ROW], articles=[ARTICLE_ROW])
    model = model or FakeChatModel()
    sink = sink or FakeSink()
    store = InMemorySessionStore()
    manager = SessionManager(
        store=store,
        embedding=EmbeddingClient(embedder, timeout_s=1.0),
        retrieval=RetrievalService(content, timeout_s=1.0),
        llm=LlmClient(model, timeout_s=1.0),
        interaction_logger=InteractionLogger(sink, timeout_s=1.0),
        history=HistoryManager(max_turns),
        match_threshold=threshold,
        max_context_items=limit,
    )
    return Harness(manager=manager, store=store, embedder=embedder, content=content, model=model, sink=sink)

# ----------------------------
# Fixtures
# ----------------------------


@pytest.fixture
def harness():
    return build_harness()
