"""Data models for conversations, models and API payloads."""

from __future__ import annotations

import enum
import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

PREVIEW_CHARS = 100


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


def format_model_name(name: str) -> str:
    """Turn "@cf/meta/llama-3.1-8b-instruct" into "Llama 3.1 8b Instruct"."""
    model_name = name.split("/")[-1]
    return " ".join(word[:1].upper() + word[1:] for word in model_name.split("-"))


class ModelCategory(str, enum.Enum):
    """Request shape a hosted model expects."""

    RESPONSES = "responses"
    CHAT = "chat"
    COMPLETION = "completion"


class Message(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class Chat(BaseModel):
    """One completed question/answer exchange."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=_new_id)
    question: str
    answer: str
    created_at: datetime = Field(default_factory=_now)


class Conversation(BaseModel):
    id: str = Field(default_factory=_new_id)
    model: str
    chats: list[Chat] = []
    created_at: datetime = Field(default_factory=_now)
    updated_at: datetime = Field(default_factory=_now)
    pinned: bool = False

    def add_chat(self, chat: Chat) -> None:
        self.chats.append(chat)
        self.updated_at = _now()

    def toggle_pin(self) -> bool:
        self.pinned = not self.pinned
        self.updated_at = _now()
        return self.pinned

    @property
    def title(self) -> str:
        if not self.chats:
            return "Empty conversation"
        return self.chats[0].question

    @property
    def last_answer(self) -> str:
        return self.chats[-1].answer if self.chats else ""

    @property
    def preview(self) -> str:
        """Last answer, shortened for list views."""
        answer = self.last_answer
        if len(answer) > PREVIEW_CHARS:
            return answer[:PREVIEW_CHARS] + "..."
        return answer


class ModelInfo(BaseModel):
    name: str
    task: str | None = None
    description: str | None = None

    @property
    def title(self) -> str:
        return format_model_name(self.name)

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> ModelInfo:
        task = item.get("task") or {}
        return cls(
            name=item["name"],
            task=task.get("name") if isinstance(task, dict) else None,
            description=item.get("description"),
        )


class ApiErrorDetail(BaseModel):
    code: int | str | None = None
    message: str | None = None


class ApiEnvelope(BaseModel):
    """The ``{success, errors, result}`` wrapper around every API response."""

    success: bool = False
    errors: list[ApiErrorDetail] = []
    result: Any = None

    def first_error(self, default: str) -> str:
        if self.errors and self.errors[0].message:
            return self.errors[0].message
        return default
