"""
Chat Engine Tests
=================

End-to-end behavior of ``SessionManager`` over in-process fakes:
initialize / send / end, graceful degradation, history bounds and
per-session serialisation.
"""

import asyncio
import re

import pytest
from langchain_core.messages import HumanMessage

from conftest import ARTICLE_ROW, PRODUCT_ROW, FakeChatModel, FakeContentStore, FakeEmbedder, build_harness
from shopsage.config.prompt_templates import SEARCH_UNAVAILABLE_SENTENCE, WELCOME_CONTEXT_SUMMARY
from shopsage.config.settings import Settings
from shopsage.src.core.chat_engine import build_session_manager
from shopsage.src.core.errors import MSG_SESSION_ALREADY_ENDED, MSG_SESSION_NOT_FOUND, ConfigurationError, InvalidRequest, LlmCause, LlmError, SessionNotFound
from shopsage.src.core.models import Role
from shopsage.src.core.prompting import BOOTSTRAP_MESSAGE


def _last_prompt(model):
    """Text of the augmented user message of the latest model call."""
    return model.calls[-1][-1].content

# ----------------------------
# Initialize
# ----------------------------


@pytest.mark.asyncio
async def test_initialize_returns_welcome_and_session_id(harness):
    text, session_id = await harness.manager.initialize("Acme", "acme.myshopify.com")

    assert text
    assert re.match(r"^session_\d+_[0-9a-f]+$", session_id)

    session = await harness.store.get(session_id)
    assert [(t.role, t.text) for t in session.history] == [(Role.USER, BOOTSTRAP_MESSAGE), (Role.MODEL, text)]
    assert '"Acme"' in harness.model.calls[0][0].content


@pytest.mark.asyncio
async def test_initialize_logs_the_welcome(harness):
    _, session_id = await harness.manager.initialize("Acme", "acme.myshopify.com")
    await harness.manager.interaction_logger.drain()

    [doc] = harness.sink.documents
    assert doc["session_id"] == session_id
    assert doc["retrieved_context_summary"] == WELCOME_CONTEXT_SUMMARY


@pytest.mark.asyncio
async def test_sessions_do_not_share_system_instruction(harness):
    _, first = await harness.manager.initialize("Acme", "acme.com")
    _, second = await harness.manager.initialize("Globex", "globex.com")

    first_handle = (await harness.store.get(first)).model_handle
    second_handle = (await harness.store.get(second)).model_handle
    assert "Acme" in first_handle.system_instruction
    assert "Acme" not in second_handle.system_instruction


@pytest.mark.asyncio
@pytest.mark.parametrize("name, domain", [("", "acme.com"), ("Acme", "  ")])
async def test_initialize_requires_store_name_and_domain(harness, name, domain):
    with pytest.raises(InvalidRequest):
        await harness.manager.initialize(name, domain)


@pytest.mark.asyncio
async def test_failed_welcome_leaves_no_session():
    h = build_harness(model=FakeChatModel(error=Exception("API key not valid")))

    with pytest.raises(LlmError) as excinfo:
        await h.manager.initialize("Acme", "acme.com")

    assert excinfo.value.cause is LlmCause.AUTH_ERROR
    assert len(h.store) == 0

# ----------------------------
# Send Message
# ----------------------------


@pytest.mark.asyncio
async def test_send_message_injects_context_and_stores_clean_query(harness):
    _, session_id = await harness.manager.initialize("Acme", "acme.com")

    answer = await harness.manager.send_message(session_id, "Do you sell yoga mats?")

    prompt = _last_prompt(harness.model)
    assert "ZenFlow Eco Yoga Mat" in prompt
    assert "Beginner Yoga Poses" in prompt
    assert prompt.endswith("Do you sell yoga mats?")

    session = await harness.store.get(session_id)
    assert session.history[-2].text == "Do you sell yoga mats?"
    assert session.history[-1].text == answer
    assert len(session.history) == 4


@pytest.mark.asyncio
async def test_send_message_logs_retrieved_context(harness):
    _, session_id = await harness.manager.initialize("Acme", "acme.com")
    await harness.manager.send_message(session_id, "mats?")
    await harness.manager.interaction_logger.drain()

    doc = harness.sink.documents[-1]
    assert doc["user_query"] == "mats?"
    summary = doc["retrieved_context_summary"]
    assert "ZenFlow Eco Yoga Mat" in summary
    assert "Handle: zenflow-mat" in summary
    assert "Beginner Yoga Poses" in summary


@pytest.mark.asyncio
async def test_embedding_failure_is_logged_as_unavailable_context():
    h = build_harness(embedder=FakeEmbedder(error=RuntimeError("embedding quota")))
    _, session_id = await h.manager.initialize("Acme", "acme.com")
    await h.manager.send_message(session_id, "anything new?")
    await h.manager.interaction_logger.drain()

    assert h.sink.documents[-1]["retrieved_context_summary"] == SEARCH_UNAVAILABLE_SENTENCE


@pytest.mark.asyncio
async def test_empty_message_is_rejected_before_lookup(harness):
    with pytest.raises(InvalidRequest, match="User message cannot be empty."):
        await harness.manager.send_message("session_x", "")


@pytest.mark.asyncio
async def test_unknown_session_is_not_found(harness):
    with pytest.raises(SessionNotFound) as excinfo:
        await harness.manager.send_message("session_missing", "hello")
    assert excinfo.value.safe_message == MSG_SESSION_NOT_FOUND


@pytest.mark.asyncio
async def test_embedding_failure_still_answers():
    h = build_harness(embedder=FakeEmbedder(error=RuntimeError("embedding quota")))
    _, session_id = await h.manager.initialize("Acme", "acme.com")

    answer = await h.manager.send_message(session_id, "anything new?")

    assert answer
    assert SEARCH_UNAVAILABLE_SENTENCE in _last_prompt(h.model)
    assert h.content.calls == []


@pytest.mark.asyncio
async def test_one_failed_retrieval_keeps_the_other_kind():
    h = build_harness(content=FakeContentStore(products=[PRODUCT_ROW], articles=[ARTICLE_ROW], article_error=RuntimeError("rpc down")))
    _, session_id = await h.manager.initialize("Acme", "acme.com")

    await h.manager.send_message(session_id, "mats?")

    prompt = _last_prompt(h.model)
    assert "ZenFlow Eco Yoga Mat" in prompt
    assert "Articles:" not in prompt


@pytest.mark.asyncio
async def test_both_retrievals_failing_still_answers():
    h = build_harness(content=FakeContentStore(product_error=RuntimeError("a"), article_error=RuntimeError("b")))
    _, session_id = await h.manager.initialize("Acme", "acme.com")

    assert await h.manager.send_message(session_id, "mats?")
    assert "No specific products or articles" in _last_prompt(h.model)


@pytest.mark.asyncio
async def test_llm_failure_does_not_touch_history(harness):
    _, session_id = await harness.manager.initialize("Acme", "acme.com")
    harness.model.error = Exception("Response was blocked due to SAFETY")

    with pytest.raises(LlmError) as excinfo:
        await harness.manager.send_message(session_id, "something edgy")

    assert excinfo.value.cause is LlmCause.SAFETY_REJECTED
    session = await harness.store.get(session_id)
    assert len(session.history) == 2


@pytest.mark.asyncio
async def test_eleven_messages_keep_ten_pairs(harness):
    _, session_id = await harness.manager.initialize("Acme", "acme.com")

    for i in range(1, 12):
        await harness.manager.send_message(session_id, f"question {i}")

    session = await harness.store.get(session_id)
    texts = [t.text for t in session.history]
    assert len(session.history) == 20
    assert "question 1" not in texts
    assert BOOTSTRAP_MESSAGE not in texts
    assert texts[0] == "question 2"
    assert session.history[0].role is Role.USER


@pytest.mark.asyncio
async def test_concurrent_sends_are_serialised():
    h = build_harness(model=FakeChatModel(delay=0.05))
    _, session_id = await h.manager.initialize("Acme", "acme.com")

    await asyncio.gather(h.manager.send_message(session_id, "alpha question"), h.manager.send_message(session_id, "beta question"))

    first_call, second_call = h.model.calls[1], h.model.calls[2]
    first_query = "alpha question" if first_call[-1].content.endswith("alpha question") else "beta question"
    assert any(isinstance(m, HumanMessage) and m.content == first_query for m in second_call)

    session = await h.store.get(session_id)
    roles = [t.role for t in session.history]
    assert len(roles) == 6
    assert roles == [Role.USER, Role.MODEL] * 3

# ----------------------------
# End Session
# ----------------------------


@pytest.mark.asyncio
async def test_end_session_is_idempotent_in_effect(harness):
    _, session_id = await harness.manager.initialize("Acme", "acme.com")

    await harness.manager.end_session(session_id)

    with pytest.raises(SessionNotFound) as excinfo:
        await harness.manager.end_session(session_id)
    assert excinfo.value.safe_message == MSG_SESSION_ALREADY_ENDED

    with pytest.raises(SessionNotFound) as excinfo:
        await harness.manager.send_message(session_id, "still there?")
    assert excinfo.value.safe_message == MSG_SESSION_NOT_FOUND

# ----------------------------
# Wiring
# ----------------------------


def test_build_session_manager_requires_api_key():
    with pytest.raises(ConfigurationError, match="GOOGLE_API_KEY"):
        build_session_manager(Settings(_env_file=None, GOOGLE_API_KEY=""))
