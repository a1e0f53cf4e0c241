"""Conversation lifecycle: ask, follow up, pin, delete, clear."""

from __future__ import annotations

import logging
import threading

from .config import MAX_HISTORY_CHATS
from .errors import ConversationNotFoundError, InvalidInputError
from .history import build_history
from .models import Chat, Conversation
from .storage import ConversationStore

logger = logging.getLogger(__name__)


class ConversationManager:
    """In-memory working set of conversations, written back on every change.

    ``client`` is anything with ``query(prompt, model)`` and
    ``query_with_history(messages, model)``.
    """

    def __init__(self, store: ConversationStore, client=None, max_history: int = MAX_HISTORY_CHATS):
        self.store = store
        self.client = client
        self.max_history = max_history
        self._lock = threading.Lock()
        self._conversations: list[Conversation] = store.load()

    @property
    def recovered_from_corruption(self) -> bool:
        return self.store.recovered_from_corruption

    @property
    def conversations(self) -> list[Conversation]:
        """Pinned first, then the rest; each group newest first."""
        return self.pinned() + self.recent()

    def pinned(self) -> list[Conversation]:
        return sorted(
            (c for c in self._conversations if c.pinned),
            key=lambda c: c.updated_at,
            reverse=True,
        )

    def recent(self) -> list[Conversation]:
        return sorted(
            (c for c in self._conversations if not c.pinned),
            key=lambda c: c.updated_at,
            reverse=True,
        )

    def get(self, conversation_id: str) -> Conversation:
        """Look a conversation up by its id or a unique id prefix."""
        if not conversation_id.strip():
            raise ConversationNotFoundError("Please enter a conversation id")
        for conv in self._conversations:
            if conv.id == conversation_id:
                return conv
        matches = [c for c in self._conversations if c.id.startswith(conversation_id)]
        if len(matches) == 1:
            return matches[0]
        if matches:
            raise ConversationNotFoundError(
                f"Conversation id '{conversation_id}' is ambiguous ({len(matches)} matches)"
            )
        raise ConversationNotFoundError(f"No conversation with id '{conversation_id}'")

    def ask(self, prompt: str, model: str) -> Conversation:
        """Query a model and start a new conversation with the answer."""
        if not prompt.strip():
            raise InvalidInputError("Please enter a prompt")
        if not model:
            raise InvalidInputError("Please select a model")

        answer = self.client.query(prompt, model)
        conversation = Conversation(model=model, chats=[Chat(question=prompt, answer=answer)])

        def apply(stored: list[Conversation]):
            stored.append(conversation)

        self._write(apply)
        logger.info("Started conversation %s with %s", conversation.id, model)
        return conversation

    def follow_up(self, conversation_id: str, question: str) -> Chat:
        """Ask a question in an existing conversation, sending its history."""
        if not question.strip():
            raise InvalidInputError("Please enter a question")
        conversation = self.get(conversation_id)

        messages = build_history(conversation.chats, question, self.max_history)
        answer = self.client.query_with_history(messages, conversation.model)

        chat = Chat(question=question, answer=answer)
        conversation.add_chat(chat)

        def apply(stored: list[Conversation]):
            current = _find(stored, conversation.id)
            if current is None:
                stored.append(conversation)
            else:
                current.add_chat(chat)

        self._write(apply)
        return chat

    def toggle_pin(self, conversation_id: str) -> Conversation:
        conversation = self.get(conversation_id)
        conversation.toggle_pin()

        def apply(stored: list[Conversation]):
            current = _find(stored, conversation.id)
            if current is not None:
                current.pinned = conversation.pinned
                current.updated_at = conversation.updated_at

        self._write(apply)
        return conversation

    def delete(self, conversation_id: str) -> Conversation:
        conversation = self.get(conversation_id)

        def apply(stored: list[Conversation]):
            stored[:] = [c for c in stored if c.id != conversation.id]

        self._write(apply)
        return conversation

    def clear(self):
        with self._lock:
            self._conversations = []
            self.store.clear()

    def _write(self, apply):
        """Apply one change to freshly loaded state and write it back.

        Other processes may have saved since this manager loaded, so the
        change is replayed on what the store holds now rather than on the
        working set.
        """
        with self._lock:
            stored = self.store.load()
            apply(stored)
            self.store.save_all(stored)
            self._conversations = stored


def _find(conversations: list[Conversation], conversation_id: str) -> Conversation | None:
    for conv in conversations:
        if conv.id == conversation_id:
            return conv
    return None
