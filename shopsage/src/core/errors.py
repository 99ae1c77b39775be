"""
ShopSage - Error Taxonomy & Classifier
========================================
Every failure inside the chat engine is raised as one of the exceptions
below.  ``classify()`` maps any exception to a ``ClassifiedError`` — an
HTTP status plus a *safe* message.  Provider error text never reaches
the client; it is logged server-side only.

Propagation policy
------------------
``EmbeddingError`` / ``RetrievalError`` / ``LogError``
    Degrade and continue.  The engine catches them and answers anyway.
``ConfigurationError`` / ``InvalidRequest`` / ``SessionNotFound`` / ``LlmError``
    Fail fast with classification.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum

# ── Safe client messages ──────────────────────────────────────────────
MSG_CONFIGURATION = "AI service or Database configuration error on server. Please check server logs."
MSG_SESSION_NOT_FOUND = "Chat session not found or expired."
MSG_SESSION_ALREADY_ENDED = "Session not found or already ended."
MSG_SAFETY_REJECTED = "The AI could not provide a response due to safety guidelines. Please try rephrasing your request."
MSG_AUTH_ERROR = "There's an issue with the AI service configuration or authentication on the server."
MSG_TIMEOUT = "The AI service took too long to respond. Please try again."
MSG_UNKNOWN = "An error occurred while processing your request with the AI service. Please check server logs for details."

# Lower-cased fragments found in provider error text
_SAFETY_MARKERS = ("safety", "blocked", "prohibited_content")
_AUTH_MARKERS = ("api key not valid", "api_key_invalid", "permission denied", "permission_denied", "unauthenticated", "invalid api key")
_AUTH_STATUS_CODES = {401, 403}


class LlmCause(str, Enum):
    """Sub-cause of an ``LlmError``; each maps to a distinct safe message."""

    SAFETY_REJECTED = "safety_rejected"
    AUTH_ERROR = "auth_error"
    TIMEOUT = "timeout"
    UNKNOWN = "unknown"


_LLM_MESSAGES: dict[LlmCause, str] = {
    LlmCause.SAFETY_REJECTED: MSG_SAFETY_REJECTED,
    LlmCause.AUTH_ERROR: MSG_AUTH_ERROR,
    LlmCause.TIMEOUT: MSG_TIMEOUT,
    LlmCause.UNKNOWN: MSG_UNKNOWN,
}


# ══════════════════════════════════════════════════════════════════════
#  EXCEPTIONS
# ══════════════════════════════════════════════════════════════════════


class ShopSageError(Exception):
    """Base class for every error raised by the chat engine."""


class ConfigurationError(ShopSageError):
    """Missing credentials or service wiring.  Fatal at startup."""


class InvalidRequest(ShopSageError):
    """Bad client input.  The message is safe to show as-is."""


class SessionNotFound(ShopSageError):
    """Unknown, ended, or expired session id."""

    def __init__(self, session_id: str, message: str = MSG_SESSION_NOT_FOUND) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.safe_message = message


class EmbeddingError(ShopSageError):
    """The query could not be turned into a vector."""


class RetrievalError(ShopSageError):
    """One content-store query failed.  Scoped to a single item kind."""

    def __init__(self, kind: str, message: str) -> None:
        super().__init__(f"{kind}: {message}")
        self.kind = kind


class LlmError(ShopSageError):
    """The chat model did not produce an answer."""

    def __init__(self, cause: LlmCause, message: str = "") -> None:
        super().__init__(message or cause.value)
        self.cause = cause


class LogError(ShopSageError):
    """An interaction-log write failed.  Never surfaced to clients."""


# ══════════════════════════════════════════════════════════════════════
#  CLASSIFIER
# ══════════════════════════════════════════════════════════════════════


@dataclass(frozen=True, slots=True)
class ClassifiedError:
    status_code: int
    message: str


def classify_llm_exception(exc: BaseException) -> LlmCause:
    """
    Map a raw provider exception to an ``LlmCause``.

    Checks, in order: timeouts, ``google.genai`` API status codes, then
    well-known fragments of the provider's error text.
    """
    if isinstance(exc, LlmError):
        return exc.cause
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return LlmCause.TIMEOUT

    from google.genai import errors as genai_errors

    if isinstance(exc, genai_errors.APIError):
        if exc.code in _AUTH_STATUS_CODES:
            return LlmCause.AUTH_ERROR
        if exc.code == 504:
            return LlmCause.TIMEOUT

    text = str(exc).lower()
    if any(marker in text for marker in _AUTH_MARKERS):
        return LlmCause.AUTH_ERROR
    if any(marker in text for marker in _SAFETY_MARKERS):
        return LlmCause.SAFETY_REJECTED
    if "deadline" in text or "timed out" in text:
        return LlmCause.TIMEOUT
    return LlmCause.UNKNOWN


def classify(exc: BaseException) -> ClassifiedError:
    """Return the HTTP status and client-safe message for *exc*."""
    if isinstance(exc, InvalidRequest):
        return ClassifiedError(400, str(exc))
    if isinstance(exc, SessionNotFound):
        return ClassifiedError(404, exc.safe_message)
    if isinstance(exc, ConfigurationError):
        return ClassifiedError(500, MSG_CONFIGURATION)
    if isinstance(exc, LlmError):
        return ClassifiedError(500, _LLM_MESSAGES[exc.cause])
    return ClassifiedError(500, MSG_UNKNOWN)
