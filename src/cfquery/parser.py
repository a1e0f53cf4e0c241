"""Reduce the differently shaped inference results to plain text.

Which envelope comes back depends on the model family that served the
request. Each known shape is a pydantic model; ``extract_text`` tries them in
order and the first one that both validates and yields text wins.
"""

from __future__ import annotations

import json
import logging
from typing import Annotated, Any

from pydantic import BaseModel, Field, RootModel, StrictStr, ValidationError

logger = logging.getLogger(__name__)

NonEmptyStr = Annotated[StrictStr, Field(min_length=1)]


def _first(items: list[Any], **expected: str) -> dict[str, Any] | None:
    """First dict item whose keys equal every expected value."""
    for item in items:
        if isinstance(item, dict) and all(item.get(k) == v for k, v in expected.items()):
            return item
    return None


def _non_empty(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


class _TextResponse(BaseModel):
    """``{"response": "..."}``, used by Llama, Mistral, Qwen and most models."""

    response: NonEmptyStr

    def text(self) -> str | None:
        return self.response


class _ResponsesOutput(BaseModel):
    """OpenAI Responses API output, used by the gpt-oss models."""

    output: list[Any]

    def text(self) -> str | None:
        message = _first(self.output, type="message", role="assistant")
        if message is None or not isinstance(message.get("content"), list):
            return None
        for part in message["content"]:
            if isinstance(part, dict) and part.get("type") == "output_text":
                text = _non_empty(part.get("text"))
                if text:
                    return text
        return None


class _ChatCompletion(BaseModel):
    """OpenAI chat completion, e.g. Granite."""

    choices: list[Any]

    def text(self) -> str | None:
        if not self.choices or not isinstance(self.choices[0], dict):
            return None
        message = self.choices[0].get("message")
        if not isinstance(message, dict):
            return None
        return _non_empty(message.get("content"))


class _RawText(RootModel[StrictStr]):
    def text(self) -> str | None:
        return self.root


class _GeneratedList(RootModel[Annotated[list[Any], Field(min_length=1)]]):
    """``[{"content": ...}]`` or ``[{"generated_text": ...}]``."""

    def text(self) -> str | None:
        first = self.root[0]
        if not isinstance(first, dict):
            return None
        return _non_empty(first.get("content")) or _non_empty(first.get("generated_text"))


_SHAPES = (_TextResponse, _ResponsesOutput, _ChatCompletion, _RawText, _GeneratedList)


def extract_text(result: Any) -> str:
    """Return the answer text contained in an inference ``result``.

    Never raises: an unrecognized shape comes back as indented JSON so the
    caller always has something to show.
    """
    for shape in _SHAPES:
        try:
            decoded = shape.model_validate(result)
        except ValidationError:
            continue
        text = decoded.text()
        if text is not None:
            return text

    dumped = json.dumps(result, indent=2, ensure_ascii=False, default=str)
    logger.warning("Unrecognized response shape: %s", dumped)
    return dumped
