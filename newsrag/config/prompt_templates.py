"""
NewsRAG - Prompt Templates & Fixed Responses
=============================================
Centralised prompt management for the RAG engine.  All prompts and the
plain-language fallback answers live here so they can be versioned and
reviewed independently of application logic.

Exports
-------
SYSTEM_INSTRUCTIONS, RAG_PROMPT_TEMPLATE, CONTEXT_BLOCK_TEMPLATE,
CONTEXT_SEPARATOR, NO_CONTEXT_RESPONSE, PIPELINE_ERROR_RESPONSE,
GENERATION_FALLBACK, SOCKET_ERROR_MESSAGE.
"""

# ══════════════════════════════════════════════════════════════════════
#  GROUNDING PROMPT
# ══════════════════════════════════════════════════════════════════════

SYSTEM_INSTRUCTIONS: str = """You are a helpful news assistant.
Answer the user's question using ONLY the news articles provided below.
If the articles do not contain the answer, say plainly that you couldn't
find relevant information in the stored news, instead of guessing.
Be concise: at most 3–4 short paragraphs."""

RAG_PROMPT_TEMPLATE: str = """{instructions}

--- CONTEXT FROM NEWS ARTICLES ---
{context}
----------------------------------

User's Question: "{question}"

Answer:"""

# One block per retrieved article, in descending similarity order
CONTEXT_BLOCK_TEMPLATE: str = "Article {index}: {title}\nSource: {source}\nContent: {summary}"

CONTEXT_SEPARATOR: str = "\n\n---\n\n"


# ══════════════════════════════════════════════════════════════════════
#  FIXED RESPONSES
# ══════════════════════════════════════════════════════════════════════

NO_CONTEXT_RESPONSE: str = "I couldn't find any relevant information from the stored news articles."

PIPELINE_ERROR_RESPONSE: str = "Something went wrong while processing your query. Please try again."

GENERATION_FALLBACK: str = "Sorry, I couldn't generate a response right now. Please try again in a moment."

SOCKET_ERROR_MESSAGE: str = "Failed to process your message. Please try again."
