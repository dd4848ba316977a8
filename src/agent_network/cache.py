"""
Snapshot store for the agent network.

Two key-value backends with per-key TTL, both holding serialized JSON
strings so a published snapshot can be served byte-for-byte:

1. ``MemoryKV``: in-process dict; single worker, lost on restart.
2. ``SQLiteKV``: ``aiosqlite`` file; survives restarts and is shared by
   every process pointing at the same file.

``SnapshotStore`` layers the network's keys on top: the published state
(whole-value put, never partial), the optional goal, and a memo cache.
"""

from __future__ import annotations

import json
import logging
import os
import time
from typing import Any, Optional, Protocol

from pydantic import ValidationError

from config import MEMO_CACHE_TTL_SECONDS, SNAPSHOT_TTL_SECONDS
from .constants import GOAL_KEY, MEMO_KEY_PREFIX, STATE_KEY
from .models import NetworkGoal, NetworkState, SwapEvent

logger = logging.getLogger(__name__)


class KVBackend(Protocol):
    async def get(self, key: str) -> Optional[str]: ...
    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None: ...
    async def delete(self, key: str) -> None: ...
    async def close(self) -> None: ...


class MemoryKV:
    """Dict-backed store; ``ttl=None`` keeps a key until deleted."""

    def __init__(self, max_entries: int = 10_000) -> None:
        self._store: dict[str, tuple[Optional[float], str]] = {}
        self._max_entries = max_entries

    async def get(self, key: str) -> Optional[str]:
        entry = self._store.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if expires_at is not None and time.monotonic() >= expires_at:
            del self._store[key]
            return None
        return value

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl if ttl is not None else None
        self._store[key] = (expires_at, value)
        if len(self._store) > self._max_entries:
            self._evict()

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def close(self) -> None:
        self._store.clear()

    def _evict(self) -> None:
        now = time.monotonic()
        for k in [k for k, (exp, _) in self._store.items() if exp is not None and now >= exp]:
            del self._store[k]
        overage = len(self._store) - self._max_entries
        if overage > 0:
            # soonest-expiring first; permanent keys last
            ordered = sorted(self._store, key=lambda k: self._store[k][0] or float("inf"))
            for k in ordered[:overage]:
                del self._store[k]

    def __len__(self) -> int:
        return len(self._store)


class SQLiteKV:
    """``aiosqlite``-backed store with a lazily opened persistent connection."""

    def __init__(self, db_path: str = "data/network.db") -> None:
        self._db_path = db_path
        self._conn: Any = None  # aiosqlite.Connection

    async def _get_conn(self) -> Any:
        import aiosqlite

        if self._conn is not None:
            return self._conn

        os.makedirs(os.path.dirname(self._db_path) or ".", exist_ok=True)
        conn = await aiosqlite.connect(self._db_path)
        await conn.execute("PRAGMA journal_mode=WAL")
        await conn.execute(
            """
            CREATE TABLE IF NOT EXISTS kv (
                key        TEXT PRIMARY KEY,
                value      TEXT NOT NULL,
                expires_at REAL
            )
            """
        )
        await conn.commit()
        self._conn = conn
        return conn

    async def get(self, key: str) -> Optional[str]:
        db = await self._get_conn()
        cursor = await db.execute("SELECT value, expires_at FROM kv WHERE key = ?", (key,))
        row = await cursor.fetchone()
        if row is None:
            return None
        value, expires_at = row
        if expires_at is not None and time.time() >= expires_at:
            await self.delete(key)
            return None
        return value

    async def put(self, key: str, value: str, ttl: Optional[int] = None) -> None:
        db = await self._get_conn()
        expires_at = time.time() + ttl if ttl is not None else None
        await db.execute(
            "INSERT OR REPLACE INTO kv (key, value, expires_at) VALUES (?, ?, ?)",
            (key, value, expires_at),
        )
        await db.commit()

    async def delete(self, key: str) -> None:
        db = await self._get_conn()
        await db.execute("DELETE FROM kv WHERE key = ?", (key,))
        await db.commit()

    async def purge_expired(self) -> int:
        """Delete expired rows. Returns the number removed."""
        db = await self._get_conn()
        cursor = await db.execute(
            "DELETE FROM kv WHERE expires_at IS NOT NULL AND expires_at <= ?", (time.time(),)
        )
        await db.commit()
        return cursor.rowcount

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None


class SnapshotStore:
    """Network keys on top of a ``KVBackend``.

    The orchestrator is the only writer of the state key.
    """

    def __init__(
        self,
        backend: KVBackend,
        *,
        snapshot_ttl: int = SNAPSHOT_TTL_SECONDS,
        memo_ttl: int = MEMO_CACHE_TTL_SECONDS,
    ) -> None:
        self.backend = backend
        self._snapshot_ttl = snapshot_ttl
        self._memo_ttl = memo_ttl

    # -- snapshot ----------------------------------------------------------

    async def publish(self, state: NetworkState) -> None:
        """Replace the published snapshot in one put. Errors propagate."""
        await self.backend.put(
            STATE_KEY, state.model_dump_json(by_alias=True), ttl=self._snapshot_ttl
        )

    async def load_raw(self) -> Optional[str]:
        try:
            return await self.backend.get(STATE_KEY)
        except Exception:
            logger.warning("Snapshot read failed", exc_info=True)
            return None

    async def load(self) -> Optional[NetworkState]:
        raw = await self.load_raw()
        if raw is None:
            return None
        try:
            return NetworkState.model_validate_json(raw)
        except ValidationError:
            logger.warning("Stored snapshot is corrupt – treated as absent")
            return None

    async def swaps_since(self, since_ms: int) -> Optional[tuple[list[SwapEvent], int]]:
        """Swaps newer than *since_ms* (0 = all) and the snapshot timestamp."""
        state = await self.load()
        if state is None:
            return None
        if since_ms <= 0:
            return state.swaps, state.timestamp
        since_s = since_ms / 1000
        return [s for s in state.swaps if s.timestamp > since_s], state.timestamp

    # -- goal --------------------------------------------------------------

    async def get_goal(self) -> Optional[NetworkGoal]:
        try:
            raw = await self.backend.get(GOAL_KEY)
        except Exception:
            logger.warning("Goal read failed", exc_info=True)
            return None
        if raw is None:
            return None
        try:
            return NetworkGoal.model_validate_json(raw)
        except ValidationError:
            logger.warning("Stored goal is invalid – ignored")
            return None

    async def set_goal(self, goal: NetworkGoal) -> None:
        await self.backend.put(GOAL_KEY, goal.model_dump_json(by_alias=True))

    async def clear_goal(self) -> None:
        await self.backend.delete(GOAL_KEY)

    # -- memo cache --------------------------------------------------------

    async def get_memos(self, tx_hashes: list[str]) -> dict[str, str]:
        found: dict[str, str] = {}
        for tx_hash in tx_hashes:
            try:
                raw = await self.backend.get(MEMO_KEY_PREFIX + tx_hash)
            except Exception:
                logger.debug("Memo cache read failed for %s", tx_hash, exc_info=True)
                continue
            if raw is None:
                continue
            try:
                memo = json.loads(raw)
            except ValueError:
                logger.debug("Corrupt memo cache entry for %s treated as a miss", tx_hash)
                continue
            if isinstance(memo, str):
                found[tx_hash] = memo
        return found

    async def put_memo(self, tx_hash: str, text: str) -> None:
        try:
            await self.backend.put(MEMO_KEY_PREFIX + tx_hash, json.dumps(text), ttl=self._memo_ttl)
        except Exception:
            logger.debug("Memo cache write failed for %s", tx_hash, exc_info=True)

    async def close(self) -> None:
        await self.backend.close()


def create_store(backend: str, sqlite_path: str) -> SnapshotStore:
    """Build the configured store (``"sqlite"`` or ``"memory"``)."""
    if backend == "sqlite":
        return SnapshotStore(SQLiteKV(sqlite_path))
    return SnapshotStore(MemoryKV())
