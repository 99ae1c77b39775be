"""
ShopSage - Interaction Logger
==============================
Best-effort audit trail of answered turns, written to MongoDB through
``motor``.

``record_nowait()`` schedules the write as a detached task and returns
immediately; the request path never awaits it and never sees its
failure.  A failed or timed-out write is logged server-side
(``LogError``) and dropped.

Collection schema (``chat_interactions``)::

    {
        "session_id": str,
        "user_query": str,
        "retrieved_context_summary": str,
        "ai_response": str,
        "timestamp": datetime
    }
"""

from __future__ import annotations

import asyncio
from typing import Any, Protocol, runtime_checkable

from shopsage.src.core.errors import LogError
from shopsage.src.core.models import InteractionLogRecord
from shopsage.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class LogSink(Protocol):
    """Append-only sink; ``motor`` collections satisfy it."""

    async def insert_one(self, document: dict[str, Any]) -> object: ...


def open_mongo_sink(mongo_uri: str, db_name: str, collection_name: str) -> tuple[LogSink, Any]:
    """Return ``(collection, client)`` for the interaction log.  Connects lazily."""
    import motor.motor_asyncio

    client = motor.motor_asyncio.AsyncIOMotorClient(mongo_uri)
    logger.info("[LOG] MongoDB async client created (db=%s, collection=%s).", db_name, collection_name)
    return client[db_name][collection_name], client


class InteractionLogger:
    """
    Fire-and-forget writer.

    Parameters
    ----------
    sink
        Target collection, or ``None`` to disable logging.
    timeout_s
        Upper bound for one write.
    """

    __slots__ = ("_sink", "_timeout_s", "_pending")

    def __init__(self, sink: LogSink | None, timeout_s: float) -> None:
        self._sink = sink
        self._timeout_s = timeout_s
        self._pending: set[asyncio.Task[None]] = set()


    @property
    def enabled(self) -> bool:
        return self._sink is not None


    @property
    def pending(self) -> int:
        return len(self._pending)


    def record_nowait(self, record: InteractionLogRecord) -> asyncio.Task[None] | None:
        """Schedule *record* for writing.  Must be called from a running event loop."""
        if self._sink is None:
            logger.debug("[LOG] Interaction log disabled; skipping session '%s'.", record.session_id)
            return None

        task = asyncio.create_task(self._write(record), name=f"interaction-log:{record.session_id}")
        # Strong reference until done, or the loop may collect the task mid-write
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task


    async def _write(self, record: InteractionLogRecord) -> None:
        try:
            await self._insert(record)
        except LogError as exc:
            logger.error("[LOG] %s", exc)


    async def _insert(self, record: InteractionLogRecord) -> None:
        try:
            await asyncio.wait_for(self._sink.insert_one(record.to_document()), timeout=self._timeout_s)  # type: ignore[union-attr]
        except asyncio.TimeoutError as exc:
            raise LogError(f"Interaction log write for session '{record.session_id}' timed out after {self._timeout_s:.1f}s.") from exc
        except Exception as exc:
            raise LogError(f"Interaction log write for session '{record.session_id}' failed: {exc}") from exc
        logger.debug("[LOG] Interaction logged for session '%s'.", record.session_id)


    async def drain(self) -> None:
        """Wait for every scheduled write to finish (shutdown, tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
