"""
Wallet activity via an Alchemy-compatible indexing endpoint.

``alchemy_getAssetTransfers`` lists a wallet's most recent outgoing native
transfers with block timestamps.  Each transfer's input data is then looked
up on the Base RPC to recover any memo.  This surfaces agent trades on
tokens the per-token swap feed does not cover.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional

import httpx

from ..models import WalletTransfer
from ..utils import safe_float, to_unix_seconds
from ._retry import GatewayError, post_json_with_retry
from .base_rpc import BaseRpcClient

logger = logging.getLogger(__name__)


class IndexerClient:
    """Async client for ``alchemy_getAssetTransfers``."""

    def __init__(self, endpoint: str, rpc: BaseRpcClient, timeout: float = 8) -> None:
        self._endpoint = endpoint
        self._rpc = rpc
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    @property
    def enabled(self) -> bool:
        return bool(self._endpoint)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Content-Type": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    async def fetch_wallet_swaps(
        self,
        wallet: str,
        max_results: int = 10,
        known_memos: Optional[dict[str, str]] = None,
    ) -> list[WalletTransfer]:
        """Newest-first outgoing transfers for *wallet*, with memos resolved.

        *known_memos* short-circuits the per-transaction RPC lookup for hashes
        whose memo is already cached.  Returns ``[]`` on any failure.
        """
        if not self.enabled or not wallet:
            return []
        try:
            transfers = await self._get_transfers(wallet, max_results)
        except (GatewayError, httpx.HTTPError, ValueError, KeyError, TypeError) as exc:
            logger.warning("Wallet activity fetch failed for %s: %s", wallet, exc)
            return []

        known = known_memos or {}

        async def _resolve(raw: dict[str, Any]) -> Optional[WalletTransfer]:
            tx_hash = raw.get("hash")
            if not tx_hash:
                return None
            memo = known.get(tx_hash)
            if memo is None:
                memo = await self._rpc.fetch_memo(tx_hash)
            metadata = raw.get("metadata") or {}
            return WalletTransfer(
                hash=tx_hash,
                to=str(raw.get("to") or ""),
                value=safe_float(raw.get("value")),
                timestamp=to_unix_seconds(metadata.get("blockTimestamp")),
                memo=memo,
            )

        settled = await asyncio.gather(*(_resolve(t) for t in transfers), return_exceptions=True)
        txs = [t for t in settled if isinstance(t, WalletTransfer)]
        txs.sort(key=lambda t: t.timestamp, reverse=True)
        return txs

    async def _get_transfers(self, wallet: str, max_results: int) -> list[dict[str, Any]]:
        payload = {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "alchemy_getAssetTransfers",
            "params": [{
                "fromAddress": wallet,
                "category": ["external"],
                "order": "desc",
                "maxCount": hex(max_results),
                "withMetadata": True,
            }],
        }
        client = await self._get_client()
        body = await post_json_with_retry(
            client, self._endpoint, json_payload=payload, label="Indexer"
        )
        if not isinstance(body, dict) or body.get("error"):
            raise ValueError(f"indexer error: {body.get('error') if isinstance(body, dict) else body!r}")
        result = body.get("result") or {}
        transfers = result.get("transfers") or []
        return [t for t in transfers if isinstance(t, dict)]
