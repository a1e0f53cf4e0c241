"""HTTP client for the Cloudflare Workers AI REST API."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Sequence

import httpx
from pydantic import ValidationError

from .config import API_BASE_URL, Settings
from .errors import CfQueryError, OperationError, TransportError, UpstreamError
from .models import ApiEnvelope, Message, ModelInfo
from .parser import extract_text
from .routing import build_request, build_request_with_history, classify_model

logger = logging.getLogger(__name__)

TEXT_GENERATION_TASK = "Text Generation"


@contextmanager
def _operation(description: str) -> Iterator[None]:
    """Re-raise lower-level errors prefixed with the failing operation."""
    try:
        yield
    except OperationError:
        raise
    except CfQueryError as exc:
        raise OperationError(f"{description}: {exc}") from exc


def _error_message(response: httpx.Response) -> str:
    """Pull the most useful message out of an error response."""
    try:
        envelope = ApiEnvelope.model_validate(response.json())
    except (ValueError, ValidationError):
        return response.text or response.reason_phrase
    return envelope.first_error(response.text or response.reason_phrase)


class WorkersAIClient:
    """Lists models and runs inference for one Cloudflare account."""

    def __init__(self, settings: Settings, http_client: httpx.Client | None = None):
        settings.require_credentials()
        self.settings = settings
        self.base_url = f"{API_BASE_URL}/accounts/{settings.account_id}/ai"
        self._headers = {"Authorization": f"Bearer {settings.api_token}"}
        self._owns_client = http_client is None
        self._http = http_client or httpx.Client(timeout=settings.timeout)

    def _request(self, method: str, path: str, **kwargs: Any) -> ApiEnvelope:
        url = f"{self.base_url}/{path}"
        logger.debug("%s %s", method, url)
        try:
            response = self._http.request(method, url, headers=self._headers, **kwargs)
        except httpx.HTTPError as exc:
            raise TransportError(f"Request failed: {exc}") from exc

        if response.is_error:
            raise TransportError(_error_message(response), status_code=response.status_code)

        try:
            return ApiEnvelope.model_validate(response.json())
        except ValueError as exc:
            # ValidationError is a ValueError too
            raise TransportError(
                f"Unexpected response body: {exc}", status_code=response.status_code
            ) from exc

    def list_models(self) -> list[ModelInfo]:
        """Text generation models available to the account."""
        with _operation("Failed to fetch models"):
            envelope = self._request("GET", "models/search")
            if not envelope.success:
                raise UpstreamError(envelope.first_error("Failed to fetch models"))

        items = envelope.result if isinstance(envelope.result, list) else []
        models = [
            ModelInfo.from_api(item)
            for item in items
            if isinstance(item, dict) and isinstance(item.get("name"), str)
        ]
        return [
            m
            for m in models
            if m.task == TEXT_GENERATION_TASK or "llama" in m.name or "mistral" in m.name
        ]

    def run_inference(self, model: str, body: dict[str, Any]) -> Any:
        """POST a request body to a model and return the raw ``result``."""
        envelope = self._request("POST", f"run/{model}", json=body)
        if not envelope.success:
            raise UpstreamError(envelope.first_error("Unknown error occurred"))
        return envelope.result

    def query(self, prompt: str, model: str) -> str:
        with _operation("Failed to query Cloudflare AI"):
            body = build_request(prompt, classify_model(model))
            return extract_text(self.run_inference(model, body))

    def query_with_history(self, messages: Sequence[Message], model: str) -> str:
        with _operation("Failed to query Cloudflare AI"):
            body = build_request_with_history(messages, classify_model(model))
            return extract_text(self.run_inference(model, body))

    def close(self):
        if self._owns_client:
            self._http.close()

    def __enter__(self) -> WorkersAIClient:
        return self

    def __exit__(self, *exc_info):
        self.close()
