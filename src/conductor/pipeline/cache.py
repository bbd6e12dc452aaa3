"""Stage and command output caches behind an async get/set contract."""

from __future__ import annotations

import asyncio
import hashlib
import json
import sqlite3
import threading
import time
from collections import OrderedDict
from collections.abc import Callable
from typing import Any, Protocol

from conductor.session.manager import SessionManager

DEFAULT_MAX_ENTRIES = 100

SCHEMA_VERSIONS_DDL = """
CREATE TABLE IF NOT EXISTS schema_versions (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%fZ', 'now'))
);
"""

STAGE_CACHE_DDL = """
CREATE TABLE IF NOT EXISTS stage_cache (
    cache_key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    cached_at REAL NOT NULL,
    expires_at REAL,
    hit_count INTEGER NOT NULL DEFAULT 0
);
"""

MIGRATIONS: dict[int, list[str]] = {
    1: [
        STAGE_CACHE_DDL,
        "CREATE INDEX IF NOT EXISTS idx_stage_cache_expires ON stage_cache(expires_at);",
    ],
}


def _canonical(value: object) -> str:
    return json.dumps(value, sort_keys=True, separators=(",", ":"), default=str)


def stage_cache_key(command: str, stage: str, inputs: dict[str, Any]) -> str:
    """SHA256 hex of ``command:stage`` plus the canonical JSON of its resolved inputs."""
    payload = _canonical({"stage": f"{command}:{stage}", "inputs": inputs})
    return hashlib.sha256(payload.encode()).hexdigest()


def command_cache_key(command: str, args: list[str], flags: dict[str, Any]) -> str:
    payload = _canonical({"command": command, "args": args, "flags": flags})
    return hashlib.sha256(payload.encode()).hexdigest()


class CacheStore(Protocol):
    async def get(self, key: str) -> dict[str, Any] | None: ...

    async def set(self, key: str, value: dict[str, Any]) -> None: ...


class MemoryCacheStore:
    """Bounded in-process store; oldest entries are evicted first."""

    def __init__(
        self,
        ttl_seconds: float | None = None,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl = ttl_seconds
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float | None, dict[str, Any]]] = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    async def get(self, key: str) -> dict[str, Any] | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at is not None and expires_at <= self._clock():
            del self._entries[key]
            return None
        return dict(value)

    async def set(self, key: str, value: dict[str, Any]) -> None:
        expires_at = self._clock() + self._ttl if self._ttl is not None else None
        self._entries[key] = (expires_at, dict(value))
        self._entries.move_to_end(key)
        while len(self._entries) > self._max_entries:
            self._entries.popitem(last=False)

    def clear(self) -> None:
        self._entries.clear()


def _get_current_version(db: sqlite3.Connection) -> int:
    try:
        row = db.execute("SELECT MAX(version) FROM schema_versions").fetchone()
        return row[0] or 0
    except sqlite3.OperationalError:
        return 0


def _run_migrations(db: sqlite3.Connection) -> None:
    db.executescript(SCHEMA_VERSIONS_DDL)
    current = _get_current_version(db)
    for version in sorted(MIGRATIONS):
        if version <= current:
            continue
        for statement in MIGRATIONS[version]:
            db.executescript(statement)
        db.execute("INSERT INTO schema_versions (version) VALUES (?)", (version,))
    db.commit()


class SqliteCacheStore:
    """Persistent store with per-entry TTL and hit counting.

    Queries run in a worker thread so a parallel wave keeps making progress
    while sqlite blocks; one lock serialises access to the connection.
    """

    def __init__(
        self,
        path: str = ":memory:",
        ttl_seconds: float | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._ttl = ttl_seconds
        self._clock = clock
        _run_migrations(self._conn)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    async def get(self, key: str) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._get, key)

    async def set(self, key: str, value: dict[str, Any]) -> None:
        await asyncio.to_thread(self._set, key, value)

    def _get(self, key: str) -> dict[str, Any] | None:
        with self._lock:
            row = self._conn.execute(
                """SELECT value FROM stage_cache
                   WHERE cache_key = ? AND (expires_at IS NULL OR expires_at > ?)""",
                (key, self._clock()),
            ).fetchone()
            if row is None:
                return None
            self._conn.execute(
                "UPDATE stage_cache SET hit_count = hit_count + 1 WHERE cache_key = ?", (key,)
            )
            self._conn.commit()
        return json.loads(row["value"])

    def _set(self, key: str, value: dict[str, Any]) -> None:
        now = self._clock()
        expires_at = now + self._ttl if self._ttl is not None else None
        with self._lock:
            self._conn.execute(
                """INSERT OR REPLACE INTO stage_cache (cache_key, value, cached_at, expires_at)
                   VALUES (?, ?, ?, ?)""",
                (key, _canonical(value), now, expires_at),
            )
            self._conn.commit()

    def stats(self) -> dict[str, int]:
        """Return total_entries, total_hits, and expired entry count."""
        with self._lock:
            total_entries = self._conn.execute("SELECT COUNT(*) FROM stage_cache").fetchone()[0]
            total_hits = self._conn.execute(
                "SELECT COALESCE(SUM(hit_count), 0) FROM stage_cache"
            ).fetchone()[0]
            expired = self._conn.execute(
                "SELECT COUNT(*) FROM stage_cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (self._clock(),),
            ).fetchone()[0]
        return {"total_entries": total_entries, "total_hits": total_hits, "expired": expired}

    def prune(self) -> int:
        """Delete expired entries. Returns count of deleted rows."""
        with self._lock:
            cursor = self._conn.execute(
                "DELETE FROM stage_cache WHERE expires_at IS NOT NULL AND expires_at <= ?",
                (self._clock(),),
            )
            self._conn.commit()
        return cursor.rowcount


class SessionCacheStore:
    """Keeps entries in session context so later commands in a session can reuse them."""

    CONTEXT_KEY = "_stageCache"

    def __init__(self, session: SessionManager) -> None:
        self._session = session

    async def get(self, key: str) -> dict[str, Any] | None:
        entries = self._session.get_context(self.CONTEXT_KEY)
        if not isinstance(entries, dict):
            return None
        value = entries.get(key)
        return dict(value) if isinstance(value, dict) else None

    async def set(self, key: str, value: dict[str, Any]) -> None:
        self._session.update_context(self.CONTEXT_KEY, {key: dict(value)})
