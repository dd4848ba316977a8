"""Tests for the key-value backends and SnapshotStore (cache.py)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock

import pytest

from agent_network.cache import MemoryKV, SnapshotStore, SQLiteKV, create_store
from agent_network.constants import GOAL_KEY, STATE_KEY
from agent_network.models import Agent, NetworkGoal, NetworkState, SwapEvent
from conftest import CREATOR_A, TOKEN_A


@pytest.fixture(params=["memory", "sqlite"])
async def backend(request, tmp_path):
    kv = MemoryKV() if request.param == "memory" else SQLiteKV(str(tmp_path / "kv.db"))
    yield kv
    await kv.close()


def _swap(tx: str, ts: int, memo: str | None = None) -> SwapEvent:
    return SwapEvent(
        token_address=TOKEN_A,
        token_name="Alpha",
        token_symbol="ALP",
        maker=CREATOR_A,
        type="buy",
        amount_eth=0.2,
        timestamp=ts,
        transaction_hash=tx,
        memo=memo,
    )


def _state() -> NetworkState:
    return NetworkState(
        agents=[Agent(token_address=TOKEN_A, name="Alpha", symbol="ALP", creator=CREATOR_A)],
        swaps=[_swap("0x3", 3_000), _swap("0x2", 2_000, memo="gm"), _swap("0x1", 1_000)],
        timestamp=1_700_000_000_000,
    )


# ------------------------------------------------------------------
# Backends
# ------------------------------------------------------------------


class TestBackends:

    @pytest.mark.asyncio
    async def test_get_miss(self, backend):
        assert await backend.get("nope") is None

    @pytest.mark.asyncio
    async def test_put_and_get(self, backend):
        await backend.put("k", '{"a":1}', ttl=60)
        assert await backend.get("k") == '{"a":1}'

    @pytest.mark.asyncio
    async def test_overwrite(self, backend):
        await backend.put("k", "v1")
        await backend.put("k", "v2")
        assert await backend.get("k") == "v2"

    @pytest.mark.asyncio
    async def test_delete(self, backend):
        await backend.put("k", "v")
        await backend.delete("k")
        assert await backend.get("k") is None
        # deleting again is harmless
        await backend.delete("k")

    @pytest.mark.asyncio
    async def test_expired_entry(self, backend):
        await backend.put("k", "v", ttl=0)
        assert await backend.get("k") is None

    @pytest.mark.asyncio
    async def test_no_ttl_persists(self, backend):
        await backend.put("k", "v", ttl=None)
        assert await backend.get("k") == "v"


class TestMemoryKV:

    @pytest.mark.asyncio
    async def test_eviction_keeps_permanent_keys(self):
        kv = MemoryKV(max_entries=2)
        await kv.put("goal", "g")
        await kv.put("a", "1", ttl=100)
        await kv.put("b", "2", ttl=200)
        assert len(kv) == 2
        assert await kv.get("goal") == "g"
        assert await kv.get("a") is None
        assert await kv.get("b") == "2"


class TestSQLiteKV:

    @pytest.mark.asyncio
    async def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "nested" / "kv.db")
        first = SQLiteKV(path)
        await first.put("k", "v", ttl=60)
        await first.close()

        second = SQLiteKV(path)
        assert await second.get("k") == "v"
        await second.close()

    @pytest.mark.asyncio
    async def test_purge_expired(self, tmp_path):
        kv = SQLiteKV(str(tmp_path / "kv.db"))
        await kv.put("old", "v", ttl=0)
        await kv.put("new", "v", ttl=60)
        await kv.put("forever", "v")
        assert await kv.purge_expired() == 1
        assert await kv.get("new") == "v"
        assert await kv.get("forever") == "v"
        await kv.close()


# ------------------------------------------------------------------
# SnapshotStore
# ------------------------------------------------------------------


class TestSnapshotStore:

    @pytest.mark.asyncio
    async def test_publish_and_load(self, backend):
        store = SnapshotStore(backend)
        state = _state()
        await store.publish(state)
        assert await store.load() == state

    @pytest.mark.asyncio
    async def test_raw_is_camel_case(self, memory_store):
        await memory_store.publish(_state())
        raw = json.loads(await memory_store.load_raw())
        assert set(raw) == {"agents", "swaps", "crossEdges", "goal", "timestamp"}
        assert "marketCapETH" in raw["agents"][0]
        assert "powerScore" in raw["agents"][0]
        assert "transactionHash" in raw["swaps"][0]
        assert "amountETH" in raw["swaps"][0]

    @pytest.mark.asyncio
    async def test_publish_replaces_whole_snapshot(self, memory_store):
        await memory_store.publish(_state())
        await memory_store.publish(NetworkState(timestamp=1))
        state = await memory_store.load()
        assert state.agents == [] and state.swaps == []

    @pytest.mark.asyncio
    async def test_publish_uses_snapshot_ttl(self):
        backend = AsyncMock()
        await SnapshotStore(backend, snapshot_ttl=240).publish(NetworkState(timestamp=1))
        key, _ = backend.put.await_args.args
        assert key == STATE_KEY
        assert backend.put.await_args.kwargs["ttl"] == 240

    @pytest.mark.asyncio
    async def test_publish_error_propagates(self):
        backend = AsyncMock()
        backend.put.side_effect = OSError("disk full")
        with pytest.raises(OSError):
            await SnapshotStore(backend).publish(NetworkState(timestamp=1))

    @pytest.mark.asyncio
    async def test_read_error_is_absent(self):
        backend = AsyncMock()
        backend.get.side_effect = OSError("locked")
        store = SnapshotStore(backend)
        assert await store.load() is None
        assert await store.get_goal() is None

    @pytest.mark.asyncio
    async def test_corrupt_snapshot_is_absent(self, memory_store):
        await memory_store.backend.put(STATE_KEY, '{"agents": "nope"}')
        assert await memory_store.load() is None

    @pytest.mark.asyncio
    async def test_swaps_since(self, memory_store):
        assert await memory_store.swaps_since(0) is None
        await memory_store.publish(_state())
        swaps, ts = await memory_store.swaps_since(0)
        assert [s.transaction_hash for s in swaps] == ["0x3", "0x2", "0x1"]
        assert ts == 1_700_000_000_000
        swaps, _ = await memory_store.swaps_since(2_000_000)
        assert [s.transaction_hash for s in swaps] == ["0x3"]

    @pytest.mark.asyncio
    async def test_goal_lifecycle(self, memory_store):
        assert await memory_store.get_goal() is None
        goal = NetworkGoal(id="g1", name="Grow", metric="onboards", weight=0.3, started_at=1)
        await memory_store.set_goal(goal)
        assert await memory_store.get_goal() == goal
        stored = json.loads(await memory_store.backend.get(GOAL_KEY))
        assert stored["startedAt"] == 1
        await memory_store.clear_goal()
        assert await memory_store.get_goal() is None

    @pytest.mark.asyncio
    async def test_invalid_goal_ignored(self, memory_store):
        await memory_store.backend.put(GOAL_KEY, '{"id": "g", "weight": 7}')
        assert await memory_store.get_goal() is None

    @pytest.mark.asyncio
    async def test_memo_cache(self, memory_store):
        await memory_store.put_memo("0x1", "hello")
        await memory_store.put_memo("0x2", 'quoted "text"')
        memos = await memory_store.get_memos(["0x1", "0x2", "0x3"])
        assert memos == {"0x1": "hello", "0x2": 'quoted "text"'}

    @pytest.mark.asyncio
    async def test_corrupt_memo_entry_is_a_miss(self, backend):
        store = SnapshotStore(backend)
        await store.put_memo("0x1", "hello")
        await backend.put("memo:0x2", "{not json")
        await backend.put("memo:0x3", "42")
        assert await store.get_memos(["0x1", "0x2", "0x3"]) == {"0x1": "hello"}

    @pytest.mark.asyncio
    async def test_memo_write_failure_swallowed(self):
        backend = AsyncMock()
        backend.put.side_effect = OSError("read-only")
        await SnapshotStore(backend).put_memo("0x1", "hi")


def test_create_store_backends(tmp_path):
    assert isinstance(create_store("memory", "").backend, MemoryKV)
    assert isinstance(create_store("sqlite", str(tmp_path / "x.db")).backend, SQLiteKV)
