"""
ShopSage - Chat Engine
=======================
Orchestrates one storefront conversation end-to-end.

Architecture
------------
``SessionManager``
    Stateless over requests; all conversation state lives in the
    injected ``SessionStore``.  Flow of ``send_message``:
        1. Validate input → fail fast (``InvalidRequest`` / ``SessionNotFound``)
        2. Embed the query → on failure, use the "search unavailable" block
        3. Retrieve products + articles concurrently → each kind degrades alone
        4. Assemble the context block
        5. Under the session lock: compose, call the LLM, append the pair
        6. Schedule the interaction-log write (detached)
        7. Return the answer

    An ``LlmError`` leaves the history untouched; the caller classifies
    it into a safe message.

``build_session_manager``
    Wires the production collaborators (Gemini embeddings + chat model,
    LanceDB ``ContentStore``, optional MongoDB log sink) from ``Settings``.

Usage:
    from shopsage.src.core.chat_engine import build_session_manager
    manager = build_session_manager(settings)
    text, session_id = await manager.initialize("Acme", "acme.myshopify.com")
    answer = await manager.send_message(session_id, "Do you sell rain jackets?")
"""

from __future__ import annotations

import asyncio
import time

from shopsage.config.prompt_templates import WELCOME_CONTEXT_SUMMARY
from shopsage.config.settings import Settings
from shopsage.src.core.context import assemble, search_unavailable_block
from shopsage.src.core.embedding import EmbeddingClient
from shopsage.src.core.errors import MSG_SESSION_ALREADY_ENDED, ConfigurationError, EmbeddingError, InvalidRequest, LlmError, RetrievalError, SessionNotFound
from shopsage.src.core.history import HistoryManager
from shopsage.src.core.interaction_log import InteractionLogger, open_mongo_sink
from shopsage.src.core.llm_client import LlmClient
from shopsage.src.core.models import ContextBlock, InteractionLogRecord, ItemKind, RetrievedItem, Role, Turn
from shopsage.src.core.prompting import BOOTSTRAP_MESSAGE, build_system_instruction, compose_turn
from shopsage.src.core.retrieval import RetrievalService
from shopsage.src.core.session_store import InMemorySessionStore, SessionStore
from shopsage.src.utils.logger import get_logger

logger = get_logger(__name__)

MSG_EMPTY_MESSAGE = "User message cannot be empty."
MSG_MISSING_SESSION_ID = "Missing sessionId."
MSG_MISSING_STORE = "Missing storeName or storeDomain for initialization."


class SessionManager:
    """
    Initialize / send / end over injected collaborators.

    Parameters
    ----------
    store
        ``SessionStore`` holding live sessions.
    embedding
        ``EmbeddingClient`` for query vectors.
    retrieval
        ``RetrievalService`` over the content store.
    llm
        ``LlmClient`` that opens per-session chat handles.
    interaction_logger
        Fire-and-forget audit writer.
    history
        ``HistoryManager`` enforcing alternation and the turn cap.
    match_threshold, max_context_items, default_blog_handle
        Retrieval and prompt tunables (see ``Settings``).
    """

    __slots__ = ("_store", "_embedding", "_retrieval", "_llm", "_log", "_history", "_threshold", "_limit", "_blog_handle")

    def __init__(self, store: SessionStore, embedding: EmbeddingClient, retrieval: RetrievalService, llm: LlmClient, interaction_logger: InteractionLogger, history: HistoryManager, match_threshold: float = 0.75, max_context_items: int = 3, default_blog_handle: str = "news") -> None:
        self._store = store
        self._embedding = embedding
        self._retrieval = retrieval
        self._llm = llm
        self._log = interaction_logger
        self._history = history
        self._threshold = match_threshold
        self._limit = max_context_items
        self._blog_handle = default_blog_handle


    @property
    def interaction_logger(self) -> InteractionLogger:
        return self._log


    @property
    def store(self) -> SessionStore:
        return self._store

    # ══════════════════════════════════════════════════════════════════
    #  INITIALIZE
    # ══════════════════════════════════════════════════════════════════

    async def initialize(self, store_name: str, store_domain: str) -> tuple[str, str]:
        """
        Open a session bound to one store and generate its welcome message.

        Returns
        -------
        tuple[str, str]
            ``(welcome_text, session_id)``.

        Raises
        ------
        InvalidRequest
            Blank store name or domain.
        LlmError
            The welcome could not be generated; no session is left behind.
        """
        if not _non_blank(store_name) or not _non_blank(store_domain):
            raise InvalidRequest(MSG_MISSING_STORE)

        t_start = time.perf_counter()
        handle = self._llm.open_chat(build_system_instruction(store_name, store_domain, self._blog_handle))
        session_id = await self._store.create(handle)
        session = await self._store.get(session_id)

        async with session.lock:
            try:
                welcome = await handle.send([Turn(role=Role.USER, text=BOOTSTRAP_MESSAGE)])
            except LlmError as exc:
                logger.error("[CHAT] Welcome generation failed for '%s' (cause=%s); discarding session.", session_id, exc.cause.value)
                await self._store.delete(session_id)
                raise
            self._history.append(session, Role.USER, BOOTSTRAP_MESSAGE)
            self._history.append(session, Role.MODEL, welcome)
            session.touch()

        self._log.record_nowait(InteractionLogRecord(session_id=session_id, user_query=BOOTSTRAP_MESSAGE, context_summary=WELCOME_CONTEXT_SUMMARY, ai_response=welcome))
        logger.info("[CHAT] Session '%s' initialised for '%s' in %.1fms.", session_id, store_name.strip(), (time.perf_counter() - t_start) * 1000)
        return welcome, session_id

    # ══════════════════════════════════════════════════════════════════
    #  SEND MESSAGE
    # ══════════════════════════════════════════════════════════════════

    async def send_message(self, session_id: str, message: str) -> str:
        """
        Answer *message* in the context of *session_id*.

        Embedding and retrieval failures degrade the context; they never
        fail the request.  Only validation, lookup and LLM errors raise.
        """
        if not isinstance(message, str) or not message.strip():
            raise InvalidRequest(MSG_EMPTY_MESSAGE)
        if not _non_blank(session_id):
            raise InvalidRequest(MSG_MISSING_SESSION_ID)

        t_start = time.perf_counter()
        session = await self._store.get(session_id)

        # ── Context (outside the session lock) ────────────────────────
        t_context = time.perf_counter()
        context = await self._gather_context(message)
        context_ms = (time.perf_counter() - t_context) * 1000

        # ── Compose → LLM → append (serialised per session) ──────────
        t_llm = time.perf_counter()
        async with session.lock:
            if session.ended:
                raise SessionNotFound(session_id)
            turns = compose_turn(self._history.view(session), context, message)
            answer = await session.model_handle.send(turns)
            self._history.append(session, Role.USER, message)
            self._history.append(session, Role.MODEL, answer)
            session.touch()
            history_len = len(session.history)
        llm_ms = (time.perf_counter() - t_llm) * 1000

        self._log.record_nowait(InteractionLogRecord(session_id=session_id, user_query=message, context_summary=context.text, ai_response=answer))

        total_ms = (time.perf_counter() - t_start) * 1000
        logger.info("[CHAT] '%s' answered in %.1fms (context=%.1f, llm=%.1f, items=%d, history=%d).", session_id, total_ms, context_ms, llm_ms, context.item_count, history_len)
        return answer


    async def _gather_context(self, message: str) -> ContextBlock:
        try:
            vector = await self._embedding.embed(message)
        except EmbeddingError as exc:
            logger.warning("[CHAT] Embedding failed, answering without store context: %s", exc)
            return search_unavailable_block()

        products_result, articles_result = await asyncio.gather(
            self._retrieval.retrieve(vector, ItemKind.PRODUCT, self._threshold, self._limit),
            self._retrieval.retrieve(vector, ItemKind.ARTICLE, self._threshold, self._limit),
            return_exceptions=True,
        )
        products = _degrade(products_result)
        articles = _degrade(articles_result)
        return assemble(products, articles, self._limit)

    # ══════════════════════════════════════════════════════════════════
    #  END SESSION
    # ══════════════════════════════════════════════════════════════════

    async def end_session(self, session_id: str) -> None:
        """Delete the session.  A second call for the same id raises ``SessionNotFound``."""
        if not _non_blank(session_id):
            raise InvalidRequest(MSG_MISSING_SESSION_ID)
        try:
            await self._store.delete(session_id)
        except SessionNotFound as exc:
            raise SessionNotFound(session_id, MSG_SESSION_ALREADY_ENDED) from exc
        logger.info("[CHAT] Session '%s' ended.", session_id)


def _non_blank(value: object) -> bool:
    return isinstance(value, str) and bool(value.strip())


def _degrade(result: list[RetrievedItem] | BaseException) -> list[RetrievedItem]:
    """Turn a ``RetrievalError`` into an empty result; re-raise anything else."""
    if isinstance(result, RetrievalError):
        logger.warning("[CHAT] Retrieval degraded (%s).", result)
        return []
    if isinstance(result, BaseException):
        raise result
    return result


# ══════════════════════════════════════════════════════════════════════
#  WIRING
# ══════════════════════════════════════════════════════════════════════


def build_session_manager(config: Settings) -> SessionManager:
    """
    Build a ``SessionManager`` with the production collaborators.

    Raises
    ------
    ConfigurationError
        A required credential is missing.
    """
    missing = config.missing_credentials()
    if missing:
        raise ConfigurationError(f"Missing required configuration: {', '.join(missing)}")

    from langchain_google_genai import GoogleGenerativeAIEmbeddings

    from shopsage.src.database.vector_store import ContentStore

    api_key = config.GOOGLE_API_KEY.get_secret_value()  # type: ignore[union-attr]
    embedder = GoogleGenerativeAIEmbeddings(model=config.EMBEDDING_MODEL, google_api_key=api_key)
    content_store = ContentStore(embedder=embedder, db_path=str(config.LANCEDB_PATH), products_table=config.PRODUCTS_TABLE, articles_table=config.ARTICLES_TABLE)
    chat_model = LlmClient.build_chat_model(config.LLM_MODEL, config.LLM_TEMPERATURE, api_key)

    if config.MONGO_URI is not None and config.MONGO_URI.get_secret_value().strip():
        sink, _client = open_mongo_sink(config.MONGO_URI.get_secret_value(), config.MONGO_DB_NAME, config.INTERACTIONS_COLLECTION)
    else:
        logger.warning("[CHAT] MONGO_URI is not set; interaction logging is disabled.")
        sink = None

    logger.info("[CHAT] Session manager ready (embedding=%s, llm=%s, threshold=%.2f).", config.EMBEDDING_MODEL, config.LLM_MODEL, config.MATCH_THRESHOLD)
    return SessionManager(
        store=InMemorySessionStore(),
        embedding=EmbeddingClient(embedder, config.EMBEDDING_TIMEOUT_S),
        retrieval=RetrievalService(content_store, config.RETRIEVAL_TIMEOUT_S),
        llm=LlmClient(chat_model, config.LLM_TIMEOUT_S),
        interaction_logger=InteractionLogger(sink, config.LOG_WRITE_TIMEOUT_S),
        history=HistoryManager(config.MAX_HISTORY_TURNS),
        match_threshold=config.MATCH_THRESHOLD,
        max_context_items=config.MAX_CONTEXT_ITEMS,
        default_blog_handle=config.DEFAULT_BLOG_HANDLE,
    )
