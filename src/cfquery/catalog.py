"""Model list with cache and built-in fallbacks."""

from __future__ import annotations

import logging

from .config import FALLBACK_MODELS
from .errors import CfQueryError, StorageError
from .models import ModelInfo
from .storage import ModelCache

logger = logging.getLogger(__name__)


def get_models(client, cache: ModelCache) -> tuple[list[ModelInfo], str]:
    """Fetch the model list, falling back to the cache, then to built-ins.

    Returns the models and where they came from: "api", "cache" or "fallback".
    """
    try:
        models = client.list_models()
    except CfQueryError as exc:
        logger.warning("Error fetching models: %s", exc)
    else:
        try:
            cache.save(models)
        except StorageError:
            logger.error("Failed to cache models", exc_info=True)
        return models, "api"

    cached = cache.load()
    if cached:
        logger.info("Loading models from cache due to API failure")
        return cached, "cache"

    return [ModelInfo(name=name) for name in FALLBACK_MODELS], "fallback"


def resolve_default_model(models: list[ModelInfo], preferred: str = "") -> str:
    """The preferred model if it is offered, else the first one."""
    if preferred and any(m.name == preferred for m in models):
        return preferred
    return models[0].name if models else ""
