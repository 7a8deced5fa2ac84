"""
Prompt assembly for document chat: system instruction + retrieved context,
the most recent conversation turns, then the new question.

Pure data transformation; nothing here talks to the network.
"""

from typing import Any

from app.core.config import HISTORY_LIMIT

FALLBACK_ANSWER = "I don't know from the documents."

SYSTEM_INSTRUCTION = (
    "You are an AI assistant who answers only using the provided context "
    "from the user's documents. If the answer is not in the context, say "
    f'"{FALLBACK_ANSWER}"'
)


def build_system_prompt(fragments: list[dict[str, Any]]) -> str:
    """Instruction followed by every fragment's content, blank-line separated, in retrieval order."""
    context = "\n\n".join(f.get("content") or "" for f in fragments)
    return f"{SYSTEM_INSTRUCTION}\n\nContext:\n{context}"


def trim_history(history: list[dict[str, Any]], limit: int = HISTORY_LIMIT) -> list[dict[str, str]]:
    """Return new {role, content} dicts for the last `limit` turns; older turns are dropped."""
    recent = history[-limit:] if limit > 0 else []
    return [{"role": m["role"], "content": m["content"]} for m in recent]


def assemble_messages(
    query: str,
    fragments: list[dict[str, Any]],
    history: list[dict[str, Any]],
    limit: int = HISTORY_LIMIT,
) -> list[dict[str, str]]:
    """Build the message list for the completion call: system, trimmed history, user."""
    return [
        {"role": "system", "content": build_system_prompt(fragments)},
        *trim_history(history, limit),
        {"role": "user", "content": query},
    ]


def updated_history(
    trimmed: list[dict[str, str]], query: str, answer: str
) -> list[dict[str, str]]:
    """History the client should keep for its next request."""
    return [
        *trimmed,
        {"role": "user", "content": query},
        {"role": "assistant", "content": answer},
    ]
