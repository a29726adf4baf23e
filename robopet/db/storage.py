"""Key-value persistence.

Backends implement a four-call protocol (get, set, remove, list_keys) over
bytes. Backend is selected via the ROBOPET_STORAGE_BACKEND setting:
  - "sqlite" -> SqliteStore at ROBOPET_STORAGE_PATH (default)
  - "memory" -> MemoryStore, nothing survives the process

NamespacedStore sits on top of a backend and adds the key prefix, JSON
encoding, the privacy check before writes and shape validation on reads.
"""

import json
import logging
import sqlite3
from typing import Protocol, TypeVar

from pydantic import BaseModel, ValidationError
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from robopet.config import settings
from robopet.db.privacy import find_privacy_issues

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class StorageError(Exception):
    pass


class KeyValueStore(Protocol):
    def get(self, key: str) -> bytes | None: ...

    def set(self, key: str, value: bytes) -> bool: ...

    def remove(self, key: str) -> bool: ...

    def list_keys(self, prefix: str = "") -> list[str]: ...


# ── In-memory backend ─────────────────────────────────────────────────

class MemoryStore:
    def __init__(self):
        self._data: dict[str, bytes] = {}

    def get(self, key: str) -> bytes | None:
        return self._data.get(key)

    def set(self, key: str, value: bytes) -> bool:
        self._data[key] = bytes(value)
        return True

    def remove(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def list_keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))


# ── SQLite backend ────────────────────────────────────────────────────

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value BLOB NOT NULL,
    updated_at TEXT NOT NULL DEFAULT CURRENT_TIMESTAMP
)
"""

_write_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.05, min=0.05, max=1),
    retry=retry_if_exception_type(sqlite3.OperationalError),
    before_sleep=lambda retry_state: logger.warning(
        "SQLite write failed (attempt %d), retrying: %s",
        retry_state.attempt_number,
        retry_state.outcome.exception(),
    ),
    reraise=True,
)


class SqliteStore:
    """Synchronous SQLite key-value table. Writes commit immediately."""

    def __init__(self, path: str | None = None):
        self.path = path or settings.storage_path
        self._conn = sqlite3.connect(self.path)
        self._conn.execute(_SCHEMA)
        self._conn.commit()
        logger.info("Opened SQLite store at %s", self.path)

    def get(self, key: str) -> bytes | None:
        try:
            row = self._conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key}: {e}") from e
        return bytes(row[0]) if row else None

    def set(self, key: str, value: bytes) -> bool:
        try:
            self._write(
                "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                "ON CONFLICT(key) DO UPDATE SET value = excluded.value, updated_at = CURRENT_TIMESTAMP",
                (key, sqlite3.Binary(value)),
            )
        except sqlite3.Error as e:
            logger.error("Failed to write %s: %s", key, e)
            return False
        return True

    def remove(self, key: str) -> bool:
        try:
            return self._write("DELETE FROM kv_store WHERE key = ?", (key,)) > 0
        except sqlite3.Error as e:
            logger.error("Failed to remove %s: %s", key, e)
            return False

    def list_keys(self, prefix: str = "") -> list[str]:
        escaped = prefix.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        try:
            rows = self._conn.execute(
                "SELECT key FROM kv_store WHERE key LIKE ? ESCAPE '\\' ORDER BY key",
                (escaped + "%",),
            ).fetchall()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to list keys: {e}") from e
        return [r[0] for r in rows]

    def close(self) -> None:
        self._conn.close()

    @_write_retry
    def _write(self, sql: str, params: tuple) -> int:
        cursor = self._conn.execute(sql, params)
        self._conn.commit()
        return cursor.rowcount


def open_store(backend: str | None = None, path: str | None = None) -> KeyValueStore:
    """Build the backend named by settings (or the explicit arguments)."""
    backend = backend or settings.storage_backend
    if backend == "memory":
        return MemoryStore()
    if backend == "sqlite":
        return SqliteStore(path)
    raise ValueError(f"Unknown storage backend: {backend}")


# ── Namespaced JSON layer ─────────────────────────────────────────────

class NamespacedStore:
    def __init__(self, backend: KeyValueStore, namespace: str | None = None):
        self.backend = backend
        self.namespace = settings.storage_namespace if namespace is None else namespace

    def _key(self, key: str) -> str:
        return f"{self.namespace}{key}"

    def write(self, key: str, data: dict | list | BaseModel) -> bool:
        """Persist data as JSON. Returns False when the privacy check or the backend fails."""
        payload = data.model_dump(mode="json") if isinstance(data, BaseModel) else data
        issues = find_privacy_issues(payload)
        if issues:
            logger.error("Refusing to store %s: %s", key, "; ".join(issues))
            return False
        try:
            encoded = json.dumps(payload, separators=(",", ":")).encode("utf-8")
            return bool(self.backend.set(self._key(key), encoded))
        except Exception as e:
            logger.error("Failed to store %s: %s", key, e)
            return False

    def read(self, key: str):
        """Stored JSON value, or None when missing, unreadable or not privacy-safe."""
        try:
            raw = self.backend.get(self._key(key))
        except Exception as e:
            logger.error("Failed to read %s: %s", key, e)
            return None
        if raw is None:
            return None
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Discarding unreadable value for %s: %s", key, e)
            return None
        issues = find_privacy_issues(data)
        if issues:
            logger.warning("Discarding stored %s: %s", key, "; ".join(issues))
            return None
        return data

    def read_model(self, key: str, model: type[M]) -> M | None:
        data = self.read(key)
        if data is None:
            return None
        try:
            return model.model_validate(data)
        except ValidationError as e:
            logger.warning("Discarding stored %s with invalid shape: %s", key, e.error_count())
            return None

    def delete(self, key: str) -> bool:
        try:
            return self.backend.remove(self._key(key))
        except Exception as e:
            logger.error("Failed to delete %s: %s", key, e)
            return False

    def keys(self, prefix: str = "") -> list[str]:
        full = self._key(prefix)
        try:
            found = self.backend.list_keys(full)
        except Exception as e:
            logger.error("Failed to list keys under %s: %s", full, e)
            return []
        return [k[len(self.namespace):] for k in found]
