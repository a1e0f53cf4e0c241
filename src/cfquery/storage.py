"""SQLite-backed key-value storage for conversations and the model cache."""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

from pydantic import TypeAdapter, ValidationError

from .config import CONVERSATIONS_KEY, MODELS_CACHE_KEY, MODELS_CACHE_TS_KEY
from .errors import StorageError
from .models import Conversation, ModelInfo

logger = logging.getLogger(__name__)

_conversations_adapter = TypeAdapter(list[Conversation])
_models_adapter = TypeAdapter(list[ModelInfo])


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except (sqlite3.Error, OSError) as exc:
        raise StorageError(f"Failed to {action}: {exc}") from exc


class KeyValueStore:
    """Opaque string blobs keyed by name."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        with _storage_errors(f"open {db_path}"):
            db_path.parent.mkdir(parents=True, exist_ok=True)
            self.conn = sqlite3.connect(str(db_path))
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("PRAGMA journal_mode=WAL")
            self._migrate()

    def _migrate(self):
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS items (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
        """)
        self.conn.commit()

    def get_item(self, key: str) -> str | None:
        with _storage_errors(f"read {key!r}"):
            row = self.conn.execute("SELECT value FROM items WHERE key = ?", (key,)).fetchone()
        return row["value"] if row else None

    def set_item(self, key: str, value: str):
        with _storage_errors(f"write {key!r}"):
            self.conn.execute(
                """INSERT INTO items (key, value, updated_at) VALUES (?, ?, ?)
                   ON CONFLICT(key) DO UPDATE SET
                       value = excluded.value, updated_at = excluded.updated_at""",
                (key, value, datetime.now(timezone.utc).isoformat()),
            )
            self.conn.commit()

    def remove_item(self, key: str):
        with _storage_errors(f"remove {key!r}"):
            self.conn.execute("DELETE FROM items WHERE key = ?", (key,))
            self.conn.commit()

    def close(self):
        self.conn.close()

    def __enter__(self) -> KeyValueStore:
        return self

    def __exit__(self, *exc_info):
        self.close()


class ConversationStore:
    """Persists the whole conversation set as one JSON blob."""

    def __init__(self, kv: KeyValueStore, key: str = CONVERSATIONS_KEY):
        self.kv = kv
        self.key = key
        self.recovered_from_corruption = False

    def load(self) -> list[Conversation]:
        """Load stored conversations; unreadable data is treated as empty."""
        self.recovered_from_corruption = False
        stored = self.kv.get_item(self.key)
        if not stored:
            return []
        try:
            return _conversations_adapter.validate_json(stored)
        except ValidationError:
            logger.warning(
                "Failed to parse stored conversations, starting fresh", exc_info=True
            )
            self.recovered_from_corruption = True
            return []

    def save_all(self, conversations: list[Conversation]):
        """Overwrite stored state. Conversations without chats are not kept."""
        to_save = [c for c in conversations if c.chats]
        self.kv.set_item(self.key, _conversations_adapter.dump_json(to_save).decode())

    def clear(self):
        self.kv.remove_item(self.key)


class ModelCache:
    """Last successfully fetched model list."""

    def __init__(self, kv: KeyValueStore):
        self.kv = kv

    def save(self, models: list[ModelInfo]):
        self.kv.set_item(MODELS_CACHE_KEY, _models_adapter.dump_json(models).decode())
        self.kv.set_item(MODELS_CACHE_TS_KEY, datetime.now(timezone.utc).isoformat())

    def load(self) -> list[ModelInfo] | None:
        stored = self.kv.get_item(MODELS_CACHE_KEY)
        if not stored:
            return None
        try:
            return _models_adapter.validate_json(stored)
        except ValidationError:
            logger.warning("Ignoring unreadable model cache", exc_info=True)
            return None

    def cached_at(self) -> datetime | None:
        stored = self.kv.get_item(MODELS_CACHE_TS_KEY)
        if not stored:
            return None
        try:
            return datetime.fromisoformat(stored)
        except ValueError:
            return None
