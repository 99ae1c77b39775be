"""
shopsage/src/api/routes.py — API Route Definitions

Responsibility:
    Defines the storefront widget's single action endpoint:
      - POST /api/chat   {action: "initialize"}   → {text, sessionId}
      - POST /api/chat   {action: "sendMessage"}  → {text}
      - POST /api/chat   {action: "endSession"}   → {message}
      - any other method on /api/chat            → 405, Allow: POST
      - GET  /health                             → {ok: true}

    Each handler is a thin controller: it validates the envelope and
    payload, delegates to ``SessionManager``, and formats the response.
    Errors leave as ``{"error": <safe message>}``; raw exception text
    never reaches the client.

Related Files:
    - shopsage/src/main.py             → Router mounted and error handlers registered here
    - shopsage/src/core/chat_engine.py → Business logic invoked by the handlers
    - shopsage/src/core/errors.py      → Status / safe-message classification
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from shopsage.src.core.chat_engine import MSG_MISSING_SESSION_ID, MSG_MISSING_STORE, SessionManager
from shopsage.src.core.errors import ConfigurationError, InvalidRequest, ShopSageError, classify
from shopsage.src.utils.logger import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["Chat"])

MSG_INVALID_BODY = "Invalid request body."
MSG_INVALID_ACTION = "Invalid action specified."
MSG_MISSING_MESSAGE = "Missing userMessage or sessionId."
MSG_SESSION_ENDED = "Session ended."

_OTHER_METHODS = ["GET", "PUT", "PATCH", "DELETE"]


# ── Request / Response Models ─────────────────────────────────────────


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class InitializePayload(_Payload):
    store_name: str | None = Field(None, alias="storeName")
    store_domain: str | None = Field(None, alias="storeDomain")


class SendMessagePayload(_Payload):
    user_message: str | None = Field(None, alias="userMessage")
    session_id: str | None = Field(None, alias="sessionId")


class EndSessionPayload(_Payload):
    session_id: str | None = Field(None, alias="sessionId")


class ChatRequest(BaseModel):
    """Envelope posted by the widget."""

    action: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)


class InitializeResponse(_Payload):
    text: str
    session_id: str = Field(..., alias="sessionId")


class MessageResponse(BaseModel):
    text: str


class EndSessionResponse(BaseModel):
    message: str


# ── Dependencies ──────────────────────────────────────────────────────


def get_session_manager(request: Request) -> SessionManager:
    """Return the app's ``SessionManager`` or re-raise the startup configuration error."""
    manager: SessionManager | None = getattr(request.app.state, "session_manager", None)
    if manager is None:
        raise getattr(request.app.state, "startup_error", None) or ConfigurationError("Session manager is not configured.")
    return manager


async def _read_envelope(request: Request) -> ChatRequest:
    try:
        body = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise InvalidRequest(MSG_INVALID_BODY) from exc
    if not isinstance(body, dict):
        raise InvalidRequest(MSG_INVALID_BODY)
    if body.get("payload") is None:
        body = {**body, "payload": {}}
    try:
        return ChatRequest.model_validate(body)
    except ValidationError as exc:
        raise InvalidRequest(MSG_INVALID_BODY) from exc


def _parse(model: type[_Payload], payload: dict[str, Any], message: str) -> Any:
    try:
        return model.model_validate(payload)
    except ValidationError as exc:
        raise InvalidRequest(message) from exc


def _error_response(exc: BaseException) -> JSONResponse:
    classified = classify(exc)
    return JSONResponse(status_code=classified.status_code, content={"error": classified.message})


# ── Routes ────────────────────────────────────────────────────────────


@router.post("/api/chat")
async def chat(request: Request, manager: SessionManager = Depends(get_session_manager)) -> JSONResponse:
    """Dispatch one widget action."""
    envelope = await _read_envelope(request)
    action = envelope.action
    logger.debug("[API] action=%s", action)

    try:
        if action == "initialize":
            init = _parse(InitializePayload, envelope.payload, MSG_MISSING_STORE)
            if not init.store_name or not init.store_domain:
                raise InvalidRequest(MSG_MISSING_STORE)
            text, session_id = await manager.initialize(init.store_name, init.store_domain)
            return JSONResponse(InitializeResponse(text=text, sessionId=session_id).model_dump(by_alias=True))

        if action == "sendMessage":
            send = _parse(SendMessagePayload, envelope.payload, MSG_MISSING_MESSAGE)
            if send.user_message is None or not send.session_id:
                raise InvalidRequest(MSG_MISSING_MESSAGE)
            text = await manager.send_message(send.session_id, send.user_message)
            return JSONResponse(MessageResponse(text=text).model_dump())

        if action == "endSession":
            end = _parse(EndSessionPayload, envelope.payload, MSG_MISSING_SESSION_ID)
            if not end.session_id:
                raise InvalidRequest(MSG_MISSING_SESSION_ID)
            await manager.end_session(end.session_id)
            return JSONResponse(EndSessionResponse(message=MSG_SESSION_ENDED).model_dump())

        raise InvalidRequest(MSG_INVALID_ACTION)
    except ShopSageError:
        raise
    except Exception as exc:
        logger.exception("[API] Unhandled error during action '%s'.", action)
        return _error_response(exc)


@router.api_route("/api/chat", methods=_OTHER_METHODS, include_in_schema=False)
async def chat_method_not_allowed(request: Request) -> JSONResponse:
    return JSONResponse(status_code=405, content={"error": f"Method {request.method} Not Allowed"}, headers={"Allow": "POST"})


@router.get("/health")
async def health() -> dict[str, bool]:
    return {"ok": True}
