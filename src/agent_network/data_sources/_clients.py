"""
Singleton client management for the agent network.

Provides lazy-initialised clients for the Flaunch token API, the Base RPC
node and the wallet-activity indexer, plus the shared ``SnapshotStore``.

``init_clients`` / ``close_clients`` should be called at app startup/shutdown.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..cache import SnapshotStore, create_store
from .base_rpc import BaseRpcClient
from .flaunch import FlaunchClient
from .indexer import IndexerClient
from config import (
    BASE_RPC_ENDPOINT,
    CACHE_BACKEND,
    CACHE_SQLITE_PATH,
    FETCH_TIMEOUT_SECONDS,
    FLAUNCH_API_BASE,
    INDEXER_RPC_ENDPOINT,
    MEMO_MAGIC_PREFIX,
    MULTICALL3_ADDRESS,
    REVENUE_MANAGER_ADDRESS,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singletons (created once, reused)
# ---------------------------------------------------------------------------
_flaunch_client: Optional[FlaunchClient] = None
_rpc_client: Optional[BaseRpcClient] = None
_indexer_client: Optional[IndexerClient] = None
_store: Optional[SnapshotStore] = None


def get_flaunch_client() -> FlaunchClient:
    global _flaunch_client
    if _flaunch_client is None:
        _flaunch_client = FlaunchClient(
            base_url=FLAUNCH_API_BASE,
            manager_address=REVENUE_MANAGER_ADDRESS,
            timeout=FETCH_TIMEOUT_SECONDS,
        )
    return _flaunch_client


def get_rpc_client() -> BaseRpcClient:
    global _rpc_client
    if _rpc_client is None:
        _rpc_client = BaseRpcClient(
            BASE_RPC_ENDPOINT,
            revenue_manager=REVENUE_MANAGER_ADDRESS,
            multicall=MULTICALL3_ADDRESS,
            memo_prefix=MEMO_MAGIC_PREFIX,
            timeout=FETCH_TIMEOUT_SECONDS,
        )
    return _rpc_client


def get_indexer_client() -> IndexerClient:
    global _indexer_client
    if _indexer_client is None:
        _indexer_client = IndexerClient(
            INDEXER_RPC_ENDPOINT, get_rpc_client(), timeout=FETCH_TIMEOUT_SECONDS
        )
        if not _indexer_client.enabled:
            logger.info("INDEXER_RPC_ENDPOINT not set – wallet activity disabled")
    return _indexer_client


def get_store() -> SnapshotStore:
    global _store
    if _store is None:
        _store = create_store(CACHE_BACKEND, CACHE_SQLITE_PATH)
    return _store


async def init_clients() -> None:
    """Eagerly create the singletons (called at startup)."""
    get_flaunch_client()
    get_rpc_client()
    get_indexer_client()
    get_store()


async def close_clients() -> None:
    """Close singleton clients and the store gracefully (called at shutdown)."""
    global _flaunch_client, _rpc_client, _indexer_client, _store
    if _flaunch_client is not None:
        await _flaunch_client.close()
        _flaunch_client = None
    if _indexer_client is not None:
        await _indexer_client.close()
        _indexer_client = None
    if _rpc_client is not None:
        await _rpc_client.close()
        _rpc_client = None
    if _store is not None:
        await _store.close()
        _store = None
