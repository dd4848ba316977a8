"""Shared test fixtures for the agent network test suite."""

from __future__ import annotations

import sys
import os

# Ensure src/ is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import pytest

from agent_network.cache import MemoryKV, SnapshotStore


# ---------------------------------------------------------------------------
# Literal addresses
# ---------------------------------------------------------------------------

TOKEN_A = "0xAaaa000000000000000000000000000000000001"
TOKEN_B = "0xBbbb000000000000000000000000000000000002"
TOKEN_C = "0xCccc000000000000000000000000000000000003"
CREATOR_A = "0x1111111111111111111111111111111111111111"
CREATOR_B = "0x2222222222222222222222222222222222222222"
CREATOR_C = "0x3333333333333333333333333333333333333333"
WHALE = "0x9999999999999999999999999999999999999999"


@pytest.fixture
def memory_store():
    """A ``SnapshotStore`` over an in-process backend."""
    return SnapshotStore(MemoryKV(), snapshot_ttl=600, memo_ttl=600)


@pytest.fixture
def raw_swap():
    """One swap exactly as the Flaunch swaps endpoint returns it."""
    return {
        "txHash": "0xabc1",
        "maker": CREATOR_B,
        "type": "BUY",
        "timestamp": 1_700_000_000,
        "amounts": {
            "uniswap": {"amount0": "-150000000000000000"},
            "isp": {"amount0": "50000000000000000"},
        },
    }
