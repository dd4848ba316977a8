"""
Base chain JSON-RPC client.

Two jobs:

1. ``batch_read_balances``: claimable fees (``RevenueManager.balances``)
   and native ETH balances (``Multicall3.getEthBalance``) for N wallets in a
   single ``eth_call`` to ``Multicall3.aggregate3``.
2. Memo lookup: ``eth_getTransactionByHash`` for one transaction, or a
   JSON-RPC batch of them, decoding any memo appended to the input data.

Both degrade to empty results; the pipeline treats a missing balance as
zero and a missing memo as ``None``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from config import MEMO_MAGIC_PREFIX
from ..abi import AbiDecodeError, Call3, decode_aggregate3, encode_address_call, encode_aggregate3, wei_word_to_eth
from ..constants import BALANCES_SELECTOR, GET_ETH_BALANCE_SELECTOR
from ..memo import decode_memo, memo_text
from ._retry import GatewayError, post_json_with_retry

logger = logging.getLogger(__name__)

# eth_getTransactionByHash calls per JSON-RPC batch request
MEMO_BATCH_SIZE = 50


class RpcError(Exception):
    """The node answered with a JSON-RPC error object."""


class BaseRpcClient:
    """Async JSON-RPC client for an EVM node."""

    def __init__(
        self,
        endpoint: str,
        *,
        revenue_manager: str,
        multicall: str,
        memo_prefix: str = MEMO_MAGIC_PREFIX,
        timeout: float = 8,
    ) -> None:
        self._endpoint = endpoint
        self._revenue_manager = revenue_manager
        self._multicall = multicall
        self._memo_prefix = memo_prefix
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None
        self._id_counter = 0

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

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    def build_balance_calls(self, owners: list[str]) -> list[tuple[Call3, str, str]]:
        """``(call, owner, kind)`` per read, two reads per distinct owner."""
        calls: list[tuple[Call3, str, str]] = []
        for owner in dict.fromkeys(o.lower() for o in owners if o):
            try:
                claimable_data = encode_address_call(BALANCES_SELECTOR, owner)
                eth_data = encode_address_call(GET_ETH_BALANCE_SELECTOR, owner)
            except ValueError:
                logger.debug("Skipping malformed owner address %r", owner)
                continue
            calls.append((Call3(self._revenue_manager, claimable_data), owner, "claimable"))
            calls.append((Call3(self._multicall, eth_data), owner, "eth"))
        return calls

    async def batch_read_balances(
        self, owners: list[str]
    ) -> tuple[dict[str, float], dict[str, float]]:
        """Return ``(claimable_eth, wallet_eth)`` keyed by lower-cased owner.

        Owners whose read failed are simply absent from the maps.
        """
        claimable: dict[str, float] = {}
        wallet: dict[str, float] = {}
        calls = self.build_balance_calls(owners)
        if not calls:
            return claimable, wallet
        try:
            calldata = encode_aggregate3([c for c, _, _ in calls])
        except ValueError as exc:
            logger.warning("Cannot encode multicall: %s", exc)
            return claimable, wallet

        try:
            result = await self._call("eth_call", [{"to": self._multicall, "data": calldata}, "latest"])
        except (GatewayError, RpcError, httpx.HTTPError, ValueError) as exc:
            logger.warning("Multicall eth_call failed for %d owners: %s", len(calls) // 2, exc)
            return claimable, wallet

        if not isinstance(result, str) or len(result) < 10:
            logger.warning("Multicall returned no data: %r", result)
            return claimable, wallet

        return decode_balance_results(result, calls)

    # ------------------------------------------------------------------
    # Memos
    # ------------------------------------------------------------------

    async def get_transaction_input(self, tx_hash: str) -> Optional[str]:
        try:
            tx = await self._call("eth_getTransactionByHash", [tx_hash])
        except (GatewayError, RpcError, httpx.HTTPError, ValueError) as exc:
            logger.debug("eth_getTransactionByHash failed for %s: %s", tx_hash, exc)
            return None
        if isinstance(tx, dict) and isinstance(tx.get("input"), str):
            return tx["input"]
        return None

    async def fetch_memo(self, tx_hash: str) -> Optional[str]:
        """Memo text carried by *tx_hash*, or ``None``."""
        calldata = await self.get_transaction_input(tx_hash)
        return memo_text(decode_memo(calldata, prefix=self._memo_prefix))

    async def batch_fetch_memos(self, tx_hashes: list[str]) -> dict[str, str]:
        """Memo text per hash using JSON-RPC batch requests.

        Hashes without a memo, and whole chunks whose request failed, are
        absent from the result.
        """
        memos: dict[str, str] = {}
        unique = list(dict.fromkeys(h for h in tx_hashes if h))
        for start in range(0, len(unique), MEMO_BATCH_SIZE):
            chunk = unique[start:start + MEMO_BATCH_SIZE]
            payload = []
            by_id: dict[int, str] = {}
            for tx_hash in chunk:
                self._id_counter += 1
                by_id[self._id_counter] = tx_hash
                payload.append({
                    "jsonrpc": "2.0",
                    "id": self._id_counter,
                    "method": "eth_getTransactionByHash",
                    "params": [tx_hash],
                })
            try:
                client = await self._get_client()
                body = await post_json_with_retry(
                    client, self._endpoint, json_payload=payload, label="Base RPC (memo batch)"
                )
            except (GatewayError, httpx.HTTPError, ValueError) as exc:
                logger.warning("Memo batch of %d failed: %s", len(chunk), exc)
                continue
            if not isinstance(body, list):
                logger.warning("Memo batch answered with %s, expected a list", type(body).__name__)
                continue
            for entry in body:
                if not isinstance(entry, dict):
                    continue
                tx_hash = by_id.get(entry.get("id"))
                tx = entry.get("result")
                if tx_hash is None or not isinstance(tx, dict):
                    continue
                text = memo_text(decode_memo(tx.get("input"), prefix=self._memo_prefix))
                if text:
                    memos[tx_hash] = text
        return memos

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _call(self, method: str, params: list[Any]) -> Any:
        """Single JSON-RPC call; raises on transport, HTTP or RPC errors."""
        self._id_counter += 1
        payload = {"jsonrpc": "2.0", "id": self._id_counter, "method": method, "params": params}
        client = await self._get_client()
        body = await post_json_with_retry(
            client, self._endpoint, json_payload=payload, label=f"Base RPC ({method})"
        )
        if not isinstance(body, dict):
            raise ValueError(f"{method}: malformed JSON-RPC response")
        if body.get("error"):
            raise RpcError(f"{method}: {body['error']}")
        return body.get("result")


def decode_balance_results(
    result: str, calls: list[tuple[Call3, str, str]]
) -> tuple[dict[str, float], dict[str, float]]:
    """Map an ``aggregate3`` result back onto the calls that produced it."""
    claimable: dict[str, float] = {}
    wallet: dict[str, float] = {}
    try:
        returns = decode_aggregate3(result)
    except AbiDecodeError as exc:
        logger.warning("Multicall result could not be decoded: %s", exc)
        return {}, {}

    for (_, owner, kind), data in zip(calls, returns):
        if data is None:
            continue
        value = wei_word_to_eth(data)
        if value is None:
            continue
        (claimable if kind == "claimable" else wallet)[owner] = value
    return claimable, wallet
