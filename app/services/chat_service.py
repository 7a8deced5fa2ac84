"""
Chat: admit the request, retrieve context from the user's collection, assemble
the prompt, ask the LLM, and package the result.

Responsibility: Orchestration only. Returns one of the ChatOutcome variants so
the API layer maps every case explicitly; no HTTP here.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Union

from app.core.config import COLLECTION_SUFFIX, HISTORY_LIMIT, RETRIEVAL_TOP_K
from app.core.errors import CollaboratorError, InvalidRequestError
from app.core.rate_limiter import FixedWindowRateLimiter
from app.services.llm import complete_chat
from app.services.prompt_builder import assemble_messages, trim_history, updated_history
from app.services.retrieval_service import retrieve_fragments

logger = logging.getLogger(__name__)

Retriever = Callable[[str, str, int], list[dict]]
Completer = Callable[[list[dict[str, str]]], str]


@dataclass
class ChatAnswered:
    answer: str
    context: list[dict[str, Any]]
    messages: list[dict[str, str]]
    remaining: int


@dataclass
class ChatRateLimited:
    retry_after: int
    remaining: int = 0

    @property
    def error(self) -> str:
        return f"Rate limit exceeded. Try again in {self.retry_after} seconds."


@dataclass
class ChatRejected:
    """Invalid input; nothing was counted or called."""

    error: str


@dataclass
class ChatFailed:
    """Retrieval/LLM failure ("collaborator") or anything unexpected ("internal")."""

    error: str
    kind: str = "internal"


ChatOutcome = Union[ChatAnswered, ChatRateLimited, ChatRejected, ChatFailed]


def _escape_identity_char(ch: str) -> str:
    if ch.isascii() and ch.isalnum():
        return ch
    if ch == "_":
        return "__"
    return f"_x{ord(ch):x}_"


def collection_name_for(user_id: str) -> str:
    """
    Per-user collection name: "<encoded user_id>_collection".

    Milvus only accepts [0-9A-Za-z_] and no leading digit, so "_" is doubled and
    every other character becomes "_x<hex codepoint>_". A leading digit gets a
    single "_" prefix, which no other encoding produces, so distinct user ids
    never share a collection.
    """
    safe = "".join(_escape_identity_char(ch) for ch in user_id)
    if safe[:1].isdigit():
        safe = f"_{safe}"
    return f"{safe}{COLLECTION_SUFFIX}"


def validate_chat_input(query: str | None, user_id: str | None) -> tuple[str, str]:
    """
    Return (query, user_id) with user_id stripped and query as sent; raise
    InvalidRequestError when either is empty or whitespace.
    """
    query = query or ""
    user_id = (user_id or "").strip()
    if not query.strip() or not user_id:
        raise InvalidRequestError("Query and userId are required")
    return query, user_id



def answer_query(
    query: str | None,
    user_id: str | None,
    history: list[dict[str, Any]] | None,
    limiter: FixedWindowRateLimiter,
    retrieve: Retriever | None = None,
    complete: Completer | None = None,
    k: int = RETRIEVAL_TOP_K,
    history_limit: int = HISTORY_LIMIT,
) -> ChatOutcome:
    """Run one chat turn for user_id. Never raises; every failure becomes an outcome."""
    try:
        query, user_id = validate_chat_input(query, user_id)
    except InvalidRequestError as e:
        logger.info("[chat:answer_query] rejected: %s", e.message)
        return ChatRejected(error=e.message)

    logger.info("[chat:answer_query] IN  user_id=%s query=%r history_len=%d", user_id[:16], query, len(history or []))
    decision = limiter.check(user_id)
    if not decision.allowed:
        return ChatRateLimited(retry_after=decision.retry_after)

    history = history or []
    retrieve = retrieve or retrieve_fragments
    complete = complete or complete_chat
    try:
        fragments = retrieve(query, collection_name_for(user_id), k)
        messages = assemble_messages(query, fragments, history, history_limit)
        answer = complete(messages)
    except CollaboratorError as e:
        logger.warning("[chat:answer_query] collaborator failed: %s", e.message)
        return ChatFailed(error=e.message, kind="collaborator")
    except Exception as e:
        logger.exception("Chat pipeline failed")
        return ChatFailed(error=str(e) or "Internal server error", kind="internal")

    trimmed = trim_history(history, history_limit)
    logger.info("[chat:answer_query] OUT answer_len=%d fragments=%d remaining=%d", len(answer), len(fragments), decision.remaining)
    return ChatAnswered(
        answer=answer,
        context=fragments,
        messages=updated_history(trimmed, query, answer),
        remaining=decision.remaining,
    )
