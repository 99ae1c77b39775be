"""
Context Assembler & Prompt Composer Tests
==========================================

Deterministic context layout, the no-match / unavailable sentences,
system instruction contents, and turn composition.
"""

from shopsage.config.prompt_templates import NO_MATCHES_SENTENCE, SEARCH_UNAVAILABLE_SENTENCE
from shopsage.src.core.context import assemble, search_unavailable_block
from shopsage.src.core.models import ItemKind, RetrievedItem, Role, Turn
from shopsage.src.core.prompting import BOOTSTRAP_MESSAGE, build_system_instruction, compose_turn, normalize_store_domain


def _product(title, handle="h", similarity=0.9, **kw):
    return RetrievedItem(kind=ItemKind.PRODUCT, title=title, handle=handle, similarity=similarity, **kw)


def _article(title, handle="a", similarity=0.9, **kw):
    return RetrievedItem(kind=ItemKind.ARTICLE, title=title, handle=handle, similarity=similarity, **kw)

# ----------------------------
# Context Assembler
# ----------------------------


def test_assemble_lists_products_then_articles():
    block = assemble([_product("Mat", category="Yoga", short_description="Grippy")], [_article("Poses", excerpt="Ten poses", blog_handle="news")], limit=3)

    lines = block.text.splitlines()
    assert lines[0] == "Relevant context from the store:"
    assert lines[1] == "Products:"
    assert lines[2] == "- Title: Mat, Category: Yoga, Description: Grippy, Handle: h"
    assert lines[3] == "Articles:"
    assert lines[4] == "- Title: Poses, Excerpt: Ten poses, Handle: a, Blog: news"
    assert (block.product_count, block.article_count) == (1, 1)


def test_assemble_uses_placeholder_for_missing_fields():
    block = assemble([_product("Mat")], [], limit=3)
    assert "Category: N/A, Description: N/A" in block.text
    assert "Articles:" not in block.text


def test_assemble_caps_items_per_kind():
    products = [_product(f"P{i}") for i in range(5)]
    block = assemble(products, [], limit=2)
    assert block.product_count == 2
    assert "P2" not in block.text


def test_assemble_without_matches_says_so():
    block = assemble([], [], limit=3)
    assert NO_MATCHES_SENTENCE in block.text
    assert block.item_count == 0
    assert block.search_available is True


def test_search_unavailable_block():
    block = search_unavailable_block()
    assert block.text == SEARCH_UNAVAILABLE_SENTENCE
    assert block.search_available is False

# ----------------------------
# Prompt Composer
# ----------------------------


def test_normalize_store_domain():
    assert normalize_store_domain("https://acme.myshopify.com/") == "acme.myshopify.com"
    assert normalize_store_domain("acme.myshopify.com") == "acme.myshopify.com"


def test_system_instruction_binds_store_and_links():
    instruction = build_system_instruction("Acme", "https://acme.myshopify.com/")
    assert '"Acme"' in instruction
    assert "https://acme.myshopify.com/products/{product_handle}" in instruction
    assert "https://acme.myshopify.com/blogs/{blog_handle}/{article_handle}" in instruction
    assert "'news' first, then 'blog'" in instruction


def test_system_instruction_blog_fallback_swaps():
    instruction = build_system_instruction("Acme", "acme.com", default_blog_handle="blog")
    assert "'blog' first, then 'news'" in instruction


def test_compose_turn_appends_one_augmented_user_turn():
    history = (Turn(Role.USER, BOOTSTRAP_MESSAGE), Turn(Role.MODEL, "Welcome!"))
    block = assemble([_product("Mat")], [], limit=3)

    turns = compose_turn(history, block, "Do you sell mats?")

    assert turns[:2] == list(history)
    assert len(turns) == 3
    assert turns[-1].role is Role.USER
    assert turns[-1].text.index(block.text) < turns[-1].text.index("Do you sell mats?")
    assert len(history) == 2
