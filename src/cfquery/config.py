"""Central configuration for paths, constants and credentials."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path

from pydantic import BaseModel, ValidationError

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# Data directory, override with CFQUERY_DATA_DIR env var
DATA_DIR = Path(os.environ.get("CFQUERY_DATA_DIR", str(Path.home() / ".cfquery")))

DB_PATH = DATA_DIR / "cfquery.db"
CONFIG_PATH = DATA_DIR / "config.json"

# Keys in the key-value store
CONVERSATIONS_KEY = "cloudflare-ai-conversations"
MODELS_CACHE_KEY = "cached-models"
MODELS_CACHE_TS_KEY = "cached-models-timestamp"

API_BASE_URL = "https://api.cloudflare.com/client/v4"
DEFAULT_TIMEOUT = 60.0

# Most recent exchanges re-sent as context on a follow-up
MAX_HISTORY_CHATS = 25

# Used when the model list can't be fetched and nothing is cached
FALLBACK_MODELS = [
    "@cf/meta/llama-3.1-8b-instruct",
    "@cf/meta/llama-3.3-70b-instruct-fp8-fast",
    "@cf/mistral/mistral-7b-instruct-v0.1",
    "@cf/qwen/qwen1.5-14b-chat-awq",
    "@cf/google/gemma-7b-it",
    "@cf/openai/gpt-oss-120b",
]

_ENV_MAP = {
    "account_id": "CLOUDFLARE_ACCOUNT_ID",
    "api_token": "CLOUDFLARE_API_TOKEN",
    "default_model": "CFQUERY_DEFAULT_MODEL",
    "timeout": "CFQUERY_TIMEOUT",
}


class Settings(BaseModel):
    account_id: str = ""
    api_token: str = ""
    default_model: str = ""
    timeout: float = DEFAULT_TIMEOUT

    def require_credentials(self) -> None:
        missing = [
            _ENV_MAP[field]
            for field in ("account_id", "api_token")
            if not getattr(self, field)
        ]
        if missing:
            raise ConfigurationError(
                f"Missing Cloudflare credentials: set {', '.join(missing)} "
                f"or add them to {CONFIG_PATH}"
            )


def load_settings(config_path: Path | None = None) -> Settings:
    """Build Settings from the JSON config file, overridden by env vars."""
    config_path = config_path or CONFIG_PATH
    data: dict = {}
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigurationError(f"Invalid config file {config_path}: {exc}") from exc
        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid config file {config_path}: expected an object")

    for field, env_var in _ENV_MAP.items():
        value = os.environ.get(env_var)
        if value:
            data[field] = value

    try:
        return Settings(**data)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration: {exc}") from exc
