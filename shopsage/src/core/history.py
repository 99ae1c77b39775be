"""
ShopSage - History Manager
===========================
Owns the ordered turn sequence of a session.

Turns strictly alternate roles.  After every append the history is
trimmed FIFO by whole user+model pairs so that it never holds more than
``2 * max_turns`` turns.  Trimming is lossy on purpose: the model
forgets the earliest exchanges.  A trailing unpaired turn is never
dropped.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from shopsage.src.core.models import Role, Turn
from shopsage.src.utils.logger import get_logger

if TYPE_CHECKING:
    from shopsage.src.core.session_store import Session

logger = get_logger(__name__)


class HistoryManager:
    """
    Append / view / trim operations over ``Session.history``.

    Callers must hold ``session.lock`` while appending.
    """

    __slots__ = ("_max_turns",)

    def __init__(self, max_turns: int) -> None:
        if max_turns < 1:
            raise ValueError(f"max_turns must be ≥ 1, got {max_turns}")
        self._max_turns = max_turns


    @property
    def max_turns(self) -> int:
        return self._max_turns


    def append(self, session: Session, role: Role, text: str) -> None:
        """Append one turn, then trim.  Raises ``ValueError`` if roles would not alternate."""
        history = session.history
        if history and history[-1].role == role:
            raise ValueError(f"Turn roles must alternate; last turn is already '{role.value}'.")
        history.append(Turn(role=role, text=text))
        self.trim(session)


    def view(self, session: Session) -> tuple[Turn, ...]:
        """Read-only snapshot of the history, oldest first."""
        return tuple(session.history)


    def trim(self, session: Session) -> int:
        """
        Drop the oldest pairs until the history fits.

        Returns
        -------
        int
            Number of turns removed.
        """
        history = session.history
        limit = 2 * self._max_turns
        excess = len(history) - limit
        if excess <= 0:
            return 0

        # Whole pairs only; rounding up keeps alternation intact
        drop = excess + (excess % 2)
        del history[:drop]
        logger.debug("[HISTORY] Session '%s' trimmed %d turn(s); %d remain.", session.id, drop, len(history))
        return drop
