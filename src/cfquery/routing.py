"""Pick the request shape for a model and build the request body."""

from __future__ import annotations

from typing import Any, Sequence

from .models import Message, ModelCategory

RESPONSES_MARKER = "gpt-oss"
CHAT_MARKERS = ("llama", "mistral", "granite", "qwen", "gemma", "phi")


def classify_model(model: str) -> ModelCategory:
    """Map a model identifier to its request category (first match wins)."""
    if RESPONSES_MARKER in model:
        return ModelCategory.RESPONSES
    if any(marker in model for marker in CHAT_MARKERS):
        return ModelCategory.CHAT
    return ModelCategory.COMPLETION


def build_request(prompt: str, category: ModelCategory) -> dict[str, Any]:
    """Request body for a single prompt with no history."""
    if category is ModelCategory.RESPONSES:
        return {"input": [{"role": "user", "content": prompt}]}
    if category is ModelCategory.CHAT:
        return {"messages": [{"role": "user", "content": prompt}]}
    return {"prompt": prompt}


def _as_dict(message: Message | dict[str, Any]) -> dict[str, Any]:
    if isinstance(message, Message):
        return message.model_dump()
    return {"role": message["role"], "content": message["content"]}


def _flatten(messages: list[dict[str, Any]]) -> str:
    lines = [
        f"Q: {m['content']}" if m["role"] == "user" else f"A: {m['content']}"
        for m in messages
    ]
    return "\n\n".join(lines)


def build_request_with_history(
    messages: Sequence[Message | dict[str, Any]], category: ModelCategory
) -> dict[str, Any]:
    """Request body carrying a role-tagged history.

    Completion models have no notion of turns, so the history is flattened
    into one prompt with ``Q:``/``A:`` prefixes.
    """
    wire = [_as_dict(m) for m in messages]
    if category is ModelCategory.RESPONSES:
        return {"input": wire}
    if category is ModelCategory.CHAT:
        return {"messages": wire}
    return {"prompt": _flatten(wire)}
