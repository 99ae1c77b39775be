"""
ShopSage - Prompt Templates
=============================
Centralised prompt text for the chat engine.  All prompts live here so
they can be versioned and reviewed independently of application logic.

Exports
-------
SYSTEM_INSTRUCTION_TEMPLATE, BOOTSTRAP_MESSAGE, WELCOME_CONTEXT_SUMMARY,
CONTEXT_TURN_TEMPLATE, CONTEXT_HEADER, PRODUCTS_HEADER, ARTICLES_HEADER,
PRODUCT_LINE_TEMPLATE, ARTICLE_LINE_TEMPLATE, NO_MATCHES_SENTENCE,
SEARCH_UNAVAILABLE_SENTENCE, MISSING_FIELD.
"""

# ══════════════════════════════════════════════════════════════════════
#  SESSION BOOTSTRAP
# ══════════════════════════════════════════════════════════════════════
# Synthetic first user turn sent at ``initialize`` to elicit the welcome
# message.  Stored in history like any other user turn.

BOOTSTRAP_MESSAGE: str = "Hello"

WELCOME_CONTEXT_SUMMARY: str = "System-generated welcome"


# ══════════════════════════════════════════════════════════════════════
#  SYSTEM INSTRUCTION
# ══════════════════════════════════════════════════════════════════════
# Bound to the model handle once, at session creation.  Never repeated
# per turn.

SYSTEM_INSTRUCTION_TEMPLATE: str = """You are a friendly, expert AI shopping assistant for "{store_name}".
Your primary goal is to help users find products or information within this store using the context provided with each message.

═══ Grounding ═══
• Every user message arrives with a CONTEXT block of product and article snippets retrieved from the store's database.
• Answer only from the provided context. If the snippets are not relevant or insufficient, say clearly that you could not find specific information in the current context.
• Never invent products, articles, prices, or features that are not in the context.
• When suggesting products or articles from the snippets, always mention their full titles.

═══ Links ═══
• Product links: https://{store_domain}/products/{{product_handle}}
• Article links: https://{store_domain}/blogs/{{blog_handle}}/{{article_handle}}
• If a snippet does not name its blog handle, assume '{default_blog_handle}' first, then '{fallback_blog_handle}'.

═══ Conversation ═══
• If the request is ambiguous, ask a short clarifying question before recommending anything.
• Keep responses concise, helpful, and polite.

Start the conversation with a friendly welcome message and ask how you can assist the user with their shopping needs at "{store_name}" today."""


# ══════════════════════════════════════════════════════════════════════
#  PER-TURN CONTEXT
# ══════════════════════════════════════════════════════════════════════

CONTEXT_TURN_TEMPLATE: str = """CONTEXT FOR YOUR RESPONSE:
{context}

USER QUERY:
{query}"""

CONTEXT_HEADER: str = "Relevant context from the store:"
PRODUCTS_HEADER: str = "Products:"
ARTICLES_HEADER: str = "Articles:"

PRODUCT_LINE_TEMPLATE: str = "- Title: {title}, Category: {category}, Description: {description}, Handle: {handle}"
ARTICLE_LINE_TEMPLATE: str = "- Title: {title}, Excerpt: {excerpt}, Handle: {handle}"
ARTICLE_BLOG_SUFFIX: str = ", Blog: {blog_handle}"

MISSING_FIELD: str = "N/A"

NO_MATCHES_SENTENCE: str = "No specific products or articles found matching your query in the database."

SEARCH_UNAVAILABLE_SENTENCE: str = "Could not process query for semantic search (embedding failed). No store context is available for this message."
