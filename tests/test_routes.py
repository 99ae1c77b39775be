"""
HTTP API Tests
==============

The widget-facing ``/api/chat`` contract: status mapping, safe error
bodies, validation messages and the 405 / health routes.  The app runs
against in-process fakes via FastAPI's ``TestClient``.
"""

import re
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from conftest import FakeChatModel, FakeEmbedder, build_harness
from shopsage.config.settings import Settings
from shopsage.src.core.errors import MSG_AUTH_ERROR, MSG_CONFIGURATION, MSG_SAFETY_REJECTED, MSG_UNKNOWN
from shopsage.src.main import create_app


@pytest.fixture
def client(harness):
    with TestClient(create_app(session_manager=harness.manager)) as test_client:
        yield test_client


def _post(client, action, **payload):
    return client.post("/api/chat", json={"action": action, "payload": payload})


def _initialize(client):
    response = _post(client, "initialize", storeName="Acme", storeDomain="acme.myshopify.com")
    assert response.status_code == 200
    return response.json()["sessionId"]

# ----------------------------
# Happy Path
# ----------------------------


def test_initialize_returns_text_and_session_id(client):
    response = _post(client, "initialize", storeName="Acme", storeDomain="acme.myshopify.com")

    assert response.status_code == 200
    body = response.json()
    assert body["text"]
    assert re.match(r"^session_", body["sessionId"])


def test_send_message_returns_text(client):
    session_id = _initialize(client)
    response = _post(client, "sendMessage", userMessage="Do you sell yoga mats?", sessionId=session_id)

    assert response.status_code == 200
    assert set(response.json()) == {"text"}


def test_end_session_then_again(client):
    session_id = _initialize(client)

    first = _post(client, "endSession", sessionId=session_id)
    assert first.status_code == 200
    assert first.json() == {"message": "Session ended."}

    second = _post(client, "endSession", sessionId=session_id)
    assert second.status_code == 404
    assert second.json() == {"error": "Session not found or already ended."}


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"ok": True}

# ----------------------------
# Client Errors
# ----------------------------


def test_empty_message_is_400(client):
    response = _post(client, "sendMessage", userMessage="", sessionId="session_x")
    assert response.status_code == 400
    assert response.json() == {"error": "User message cannot be empty."}


def test_unknown_session_is_404(client):
    response = _post(client, "sendMessage", userMessage="hello", sessionId="session_nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Chat session not found or expired."}


@pytest.mark.parametrize(
    "body, message",
    [
        ({"action": "initialize", "payload": {"storeName": "Acme"}}, "Missing storeName or storeDomain for initialization."),
        ({"action": "sendMessage", "payload": {"userMessage": "hi"}}, "Missing userMessage or sessionId."),
        ({"action": "sendMessage", "payload": {"sessionId": "session_x"}}, "Missing userMessage or sessionId."),
        ({"action": "endSession", "payload": {}}, "Missing sessionId."),
        ({"action": "endSession"}, "Missing sessionId."),
        ({"action": "dance", "payload": {}}, "Invalid action specified."),
        ({"payload": {}}, "Invalid action specified."),
        (["not", "an", "object"], "Invalid request body."),
    ],
)
def test_validation_messages(client, body, message):
    response = client.post("/api/chat", json=body)
    assert response.status_code == 400
    assert response.json() == {"error": message}


def test_non_json_body_is_400(client):
    response = client.post("/api/chat", content=b"not json", headers={"Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json() == {"error": "Invalid request body."}


@pytest.mark.parametrize("method", ["get", "put", "delete"])
def test_other_methods_are_405(client, method):
    response = getattr(client, method)("/api/chat")
    assert response.status_code == 405
    assert response.headers["allow"] == "POST"
    assert response.json() == {"error": f"Method {method.upper()} Not Allowed"}


@pytest.mark.parametrize("method", ["OPTIONS", "TRACE"])
def test_unrouted_methods_are_405_with_error_body(client, method):
    response = client.request(method, "/api/chat")
    assert response.status_code == 405
    assert "POST" in response.headers["allow"]
    assert response.json() == {"error": f"Method {method} Not Allowed"}


def test_unknown_path_uses_error_body(client):
    response = client.get("/api/nope")
    assert response.status_code == 404
    assert response.json() == {"error": "Not Found"}

# ----------------------------
# Degradation & Server Errors
# ----------------------------


def test_embedding_failure_is_still_200():
    h = build_harness(embedder=FakeEmbedder(error=RuntimeError("quota")))
    with TestClient(create_app(session_manager=h.manager)) as client:
        session_id = _initialize(client)
        response = _post(client, "sendMessage", userMessage="anything?", sessionId=session_id)
    assert response.status_code == 200


def test_llm_safety_block_is_500_with_safe_message(client, harness):
    session_id = _initialize(client)
    harness.model.error = Exception("Response was blocked due to SAFETY: HARM_CATEGORY_DANGEROUS")

    response = _post(client, "sendMessage", userMessage="edgy", sessionId=session_id)

    assert response.status_code == 500
    assert response.json() == {"error": MSG_SAFETY_REJECTED}


def test_initialize_auth_failure_is_500():
    h = build_harness(model=FakeChatModel(error=Exception("API key not valid")))
    with TestClient(create_app(session_manager=h.manager)) as client:
        response = _post(client, "initialize", storeName="Acme", storeDomain="acme.com")
    assert response.status_code == 500
    assert response.json() == {"error": MSG_AUTH_ERROR}


def test_missing_credentials_fail_every_chat_request():
    app = create_app(config=Settings(_env_file=None, GOOGLE_API_KEY=""))
    with TestClient(app) as client:
        response = _post(client, "initialize", storeName="Acme", storeDomain="acme.com")
        health = client.get("/health")

    assert response.status_code == 500
    assert response.json() == {"error": MSG_CONFIGURATION}
    assert health.status_code == 200


def test_unexpected_error_is_generic_500():
    manager = MagicMock()
    manager.send_message = AsyncMock(side_effect=RuntimeError("internal detail 10.0.0.7"))
    manager.interaction_logger.pending = 0
    manager.interaction_logger.drain = AsyncMock()

    with TestClient(create_app(session_manager=manager)) as client:
        response = _post(client, "sendMessage", userMessage="hi", sessionId="session_1")

    assert response.status_code == 500
    assert response.json() == {"error": MSG_UNKNOWN}
