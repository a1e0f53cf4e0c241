"""Turn stored exchanges back into role-tagged message history."""

from __future__ import annotations

from typing import Sequence

from .config import MAX_HISTORY_CHATS
from .models import Chat, Message


def chats_to_messages(chats: Sequence[Chat]) -> list[Message]:
    """Each chat becomes a user question followed by the assistant answer."""
    messages: list[Message] = []
    for chat in chats:
        messages.append(Message(role="user", content=chat.question))
        messages.append(Message(role="assistant", content=chat.answer))
    return messages


def limit_conversation_length(
    chats: Sequence[Chat], max_chats: int = MAX_HISTORY_CHATS
) -> list[Chat]:
    """Keep only the most recent ``max_chats`` exchanges."""
    if max_chats <= 0:
        return []
    if len(chats) <= max_chats:
        return list(chats)
    return list(chats[-max_chats:])


def build_history(
    chats: Sequence[Chat], question: str, max_chats: int = MAX_HISTORY_CHATS
) -> list[Message]:
    """Messages for a follow-up: truncated history plus the new question."""
    messages = chats_to_messages(limit_conversation_length(chats, max_chats))
    messages.append(Message(role="user", content=question))
    return messages
