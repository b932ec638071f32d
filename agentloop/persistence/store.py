"""Key-value stores holding JSON-serializable run-state blobs."""
from __future__ import annotations

import asyncio
import json
import logging
import os
import sqlite3
import time
from pathlib import Path
from typing import Any, Dict, Optional, Protocol

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    """Opaque async get/set/delete keyed by loop-profile name."""

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        ...

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        ...

    async def delete(self, key: str) -> None:
        ...


def _json_dumps(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


class MemoryStateStore:
    """Process-local store; values are round-tripped through JSON like a real backend."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        raw = self._data.get(key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = _json_dumps(value)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStateStore:
    """All keys live in one JSON document, rewritten atomically on every change."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path).expanduser()
        self._lock = asyncio.Lock()

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as fh:
            content = fh.read()
        if not content.strip():
            return {}
        try:
            document = json.loads(content)
        except json.JSONDecodeError as exc:
            logger.error("State file %s is corrupt (%s); it will be overwritten", self.path, exc)
            return {}
        if not isinstance(document, dict):
            logger.error("State file %s does not hold an object; it will be overwritten", self.path)
            return {}
        return document

    def _write(self, document: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            fh.write(_json_dumps(document))
        os.replace(tmp, self.path)

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            document = await asyncio.to_thread(self._read)
        return document.get(key)

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        async with self._lock:
            document = await asyncio.to_thread(self._read)
            document[key] = value
            await asyncio.to_thread(self._write, document)

    async def delete(self, key: str) -> None:
        async with self._lock:
            document = await asyncio.to_thread(self._read)
            if document.pop(key, None) is not None:
                await asyncio.to_thread(self._write, document)


class SQLiteStateStore:
    """Single-table SQLite store for deployments that already keep a database file."""

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path).expanduser().resolve()
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._conn = sqlite3.connect(str(self.db_path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode = WAL;")
        self._conn.execute("PRAGMA synchronous = NORMAL;")
        self._conn.execute(
            """
            CREATE TABLE IF NOT EXISTS loop_state (
              key TEXT PRIMARY KEY,
              value_json TEXT NOT NULL,
              updated_at REAL NOT NULL
            );
            """
        )
        self._conn.commit()
        self._lock = asyncio.Lock()

    def close(self) -> None:
        self._conn.close()

    def _get(self, key: str) -> Optional[str]:
        row = self._conn.execute(
            "SELECT value_json FROM loop_state WHERE key = ?;", (key,)
        ).fetchone()
        return row[0] if row else None

    def _set(self, key: str, value_json: str) -> None:
        self._conn.execute(
            """
            INSERT INTO loop_state (key, value_json, updated_at) VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET value_json = excluded.value_json,
                                           updated_at = excluded.updated_at;
            """,
            (key, value_json, time.time()),
        )
        self._conn.commit()

    def _delete(self, key: str) -> None:
        self._conn.execute("DELETE FROM loop_state WHERE key = ?;", (key,))
        self._conn.commit()

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            raw = await asyncio.to_thread(self._get, key)
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        async with self._lock:
            await asyncio.to_thread(self._set, key, _json_dumps(value))

    async def delete(self, key: str) -> None:
        async with self._lock:
            await asyncio.to_thread(self._delete, key)


def create_store(backend: str, path: Optional[str] = None) -> StateStore:
    """Build a store from the configured backend name."""
    if backend == "memory":
        return MemoryStateStore()
    if backend == "json":
        return JsonFileStateStore(path or "data/agentloop-state.json")
    if backend == "sqlite":
        return SQLiteStateStore(path or "data/agentloop-state.db")
    raise ValueError(f"Unknown state backend '{backend}'")
