"""
ShopSage - Session Store
=========================
Maps a session id to its conversational state.

``SessionStore`` is the seam the chat engine depends on; the in-process
``InMemorySessionStore`` is the only implementation.  State is
ephemeral: a process restart loses every session, and callers must
tolerate that (they receive ``SessionNotFound``).

Locking
-------
Each ``Session`` owns an ``asyncio.Lock``.  Requests for different
sessions never contend; requests for the same session serialise on it.
Store-level operations are plain dict reads/writes with no ``await``
in between, so they are atomic on the event loop.

Known leak
----------
There is no TTL or reaper.  Sessions whose widget never sends
``endSession`` stay in memory until the process exits.
"""

from __future__ import annotations

import asyncio
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from shopsage.src.core.errors import SessionNotFound
from shopsage.src.core.models import Turn
from shopsage.src.utils.logger import get_logger

if TYPE_CHECKING:
    from shopsage.src.core.llm_client import ChatHandle

logger = get_logger(__name__)

SESSION_ID_PREFIX = "session_"


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class Session:
    """
    Server-side state of one conversation.

    ``model_handle`` carries the system instruction bound at creation;
    it belongs to this session alone.  ``ended`` flips once, when the
    session is deleted, so a request that was waiting on ``lock`` can
    notice it lost the race.
    """

    id: str
    model_handle: ChatHandle
    history: list[Turn] = field(default_factory=list)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)
    ended: bool = False

    def touch(self) -> None:
        self.updated_at = _now()


@runtime_checkable
class SessionStore(Protocol):
    """Create / lookup / delete contract for session state."""

    async def create(self, model_handle: ChatHandle) -> str: ...

    async def get(self, session_id: str) -> Session: ...

    async def delete(self, session_id: str) -> None: ...


def new_session_id() -> str:
    """``session_<epoch ms>_<random hex>``; unguessable enough to avoid collisions."""
    return f"{SESSION_ID_PREFIX}{int(time.time() * 1000)}_{secrets.token_hex(6)}"


class InMemorySessionStore:
    """Process-local ``SessionStore`` backed by a dict."""

    __slots__ = ("_sessions",)

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}


    async def create(self, model_handle: ChatHandle) -> str:
        session_id = new_session_id()
        while session_id in self._sessions:
            session_id = new_session_id()
        self._sessions[session_id] = Session(id=session_id, model_handle=model_handle)
        logger.info("[SESSION] Created '%s' (%d active).", session_id, len(self._sessions))
        return session_id


    async def get(self, session_id: str) -> Session:
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session


    async def delete(self, session_id: str) -> None:
        session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFound(session_id)
        session.ended = True
        logger.info("[SESSION] Deleted '%s' (%d active).", session_id, len(self._sessions))


    def __len__(self) -> int:
        return len(self._sessions)


    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions
