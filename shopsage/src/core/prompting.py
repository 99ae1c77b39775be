"""
ShopSage - Prompt Composer
===========================
Builds what is sent to the chat model.

``build_system_instruction``
    Persona, link contract and grounding rules for one store.  Bound to
    the model handle once at ``initialize``; never part of a turn.
``compose_turn``
    Full history view followed by one synthetic ``user`` turn carrying
    the context block first and the raw query second.
"""

from __future__ import annotations

import re
from collections.abc import Sequence

from shopsage.config.prompt_templates import BOOTSTRAP_MESSAGE, CONTEXT_TURN_TEMPLATE, SYSTEM_INSTRUCTION_TEMPLATE
from shopsage.src.core.models import ContextBlock, Role, Turn

__all__ = ["BOOTSTRAP_MESSAGE", "build_system_instruction", "compose_turn", "normalize_store_domain"]

_RE_SCHEME = re.compile(r"^[a-z][a-z0-9+.\-]*://", re.IGNORECASE)


def normalize_store_domain(store_domain: str) -> str:
    """``"https://acme.myshopify.com/"`` → ``"acme.myshopify.com"``."""
    domain = _RE_SCHEME.sub("", store_domain.strip())
    return domain.rstrip("/")


def build_system_instruction(store_name: str, store_domain: str, default_blog_handle: str = "news") -> str:
    default_blog_handle = default_blog_handle.strip() or "news"
    fallback_blog_handle = "blog" if default_blog_handle != "blog" else "news"
    return SYSTEM_INSTRUCTION_TEMPLATE.format(
        store_name=store_name.strip(),
        store_domain=normalize_store_domain(store_domain),
        default_blog_handle=default_blog_handle,
        fallback_blog_handle=fallback_blog_handle,
    )


def compose_turn(history: Sequence[Turn], context: ContextBlock, query: str) -> list[Turn]:
    """Return ``[*history, user(context + query)]``; *history* is not modified."""
    augmented = CONTEXT_TURN_TEMPLATE.format(context=context.text, query=query)
    return [*history, Turn(role=Role.USER, text=augmented)]
