"""
ShopSage - LLM Client
======================
Sends composed turns to the Gemini chat model (via LangChain's
``ChatGoogleGenerativeAI``) and returns the generated text.

``ChatHandle``
    The per-session model context: the client plus the system
    instruction bound at creation.  A handle cannot change its
    instruction; a new session gets a new handle.

Failure contract
----------------
Every failure surfaces as ``LlmError(cause)`` — network / provider
errors, rejected credentials, safety blocks (including an empty answer
with a SAFETY finish reason) and timeouts.  The raw provider message is
logged here and nowhere else.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Sequence
from typing import Protocol, runtime_checkable

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage

from shopsage.src.core.errors import LlmCause, LlmError, classify_llm_exception
from shopsage.src.core.models import Role, Turn
from shopsage.src.utils.logger import get_logger

logger = get_logger(__name__)


@runtime_checkable
class ChatModel(Protocol):
    """Anything exposing LangChain's async ``ainvoke`` over a message list."""

    async def ainvoke(self, input: list[BaseMessage], **kwargs: object) -> object: ...


def to_langchain_messages(turns: Sequence[Turn], system_instruction: str | None = None) -> list[BaseMessage]:
    """Map stored turns to LangChain messages, system instruction first."""
    messages: list[BaseMessage] = []
    if system_instruction:
        messages.append(SystemMessage(content=system_instruction))
    for turn in turns:
        if turn.role is Role.USER:
            messages.append(HumanMessage(content=turn.text))
        else:
            messages.append(AIMessage(content=turn.text))
    return messages


def _extract_text(response: object) -> str:
    """Flatten ``AIMessage.content`` (a string or a list of parts) into text."""
    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts: list[str] = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(str(part.get("text", "")))
        return "".join(parts)
    return "" if content is None else str(content)


def _blocked_by_safety(response: object) -> bool:
    metadata = getattr(response, "response_metadata", None) or {}
    finish_reason = str(metadata.get("finish_reason", ""))
    feedback = metadata.get("prompt_feedback") or {}
    block_reason = str(feedback.get("block_reason", "")) if isinstance(feedback, dict) else ""
    return "SAFETY" in finish_reason.upper() or bool(block_reason and block_reason not in ("0", "BLOCK_REASON_UNSPECIFIED"))


class LlmClient:
    """
    Time-bounded chat-completion client.

    Parameters
    ----------
    chat_model
        A ``ChatModel`` (``ChatGoogleGenerativeAI`` in production).
    timeout_s
        Upper bound for one generation.
    """

    __slots__ = ("_model", "_timeout_s")

    def __init__(self, chat_model: ChatModel, timeout_s: float) -> None:
        self._model = chat_model
        self._timeout_s = timeout_s


    @staticmethod
    def build_chat_model(model: str, temperature: float, api_key: str) -> ChatModel:
        """Initialise the Gemini chat model via LangChain."""
        from langchain_google_genai import ChatGoogleGenerativeAI

        llm = ChatGoogleGenerativeAI(model=model, temperature=temperature, google_api_key=api_key)
        logger.info("[LLM] Chat model initialised: %s (temperature=%.1f)", model, temperature)
        return llm


    def open_chat(self, system_instruction: str) -> ChatHandle:
        return ChatHandle(self, system_instruction)


    async def send(self, messages: Sequence[Turn], system_instruction: str | None = None) -> str:
        """Generate the next model turn for *messages*.  Raises ``LlmError``."""
        payload = to_langchain_messages(messages, system_instruction)

        t_start = time.perf_counter()
        try:
            response = await asyncio.wait_for(self._model.ainvoke(payload), timeout=self._timeout_s)
        except asyncio.TimeoutError as exc:
            logger.error("[LLM] Generation timed out after %.1fs.", self._timeout_s)
            raise LlmError(LlmCause.TIMEOUT, f"LLM call timed out after {self._timeout_s:.1f}s.") from exc
        except Exception as exc:
            cause = classify_llm_exception(exc)
            logger.exception("[LLM] Generation failed (cause=%s).", cause.value)
            raise LlmError(cause, str(exc)) from exc

        text = _extract_text(response).strip()
        if not text:
            cause = LlmCause.SAFETY_REJECTED if _blocked_by_safety(response) else LlmCause.UNKNOWN
            logger.error("[LLM] Empty response (cause=%s).", cause.value)
            raise LlmError(cause, "The model returned no text.")

        logger.info("[LLM] Response in %.1fms (%d chars, %d input message(s)).", (time.perf_counter() - t_start) * 1000, len(text), len(payload))
        return text


class ChatHandle:
    """Per-session model context with an immutable system instruction."""

    __slots__ = ("_client", "_system_instruction")

    def __init__(self, client: LlmClient, system_instruction: str) -> None:
        self._client = client
        self._system_instruction = system_instruction


    @property
    def system_instruction(self) -> str:
        return self._system_instruction


    async def send(self, messages: Sequence[Turn]) -> str:
        return await self._client.send(messages, system_instruction=self._system_instruction)
