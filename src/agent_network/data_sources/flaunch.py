"""
Flaunch token API client.

Endpoints used (all public, no key):

- ``GET /tokens?managerAddress=...``           paginated listing (discovery)
- ``GET /tokens/{address}/details``            owner, price, 24h volume
- ``GET /tokens/{address}/holders``            paginated holder list
- ``GET /tokens/{address}/swaps``              recent trades

Discovery is the one call allowed to fail loudly; every per-token fetcher
degrades to an empty result so one bad token never blocks the others.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from ..constants import WEI_PER_ETH
from ..models import Holder, HolderPage, ListedToken, TokenDetails, TokenSwap
from ..utils import safe_float, wei_to_eth
from ._retry import GatewayError, fetch_with_retry

logger = logging.getLogger(__name__)

TOKENS_PER_PAGE = 100
HOLDERS_PER_PAGE = 100
# Hard stop for runaway pagination
_MAX_PAGES = 200

_FETCH_ERRORS = (GatewayError, httpx.HTTPError, ValueError, KeyError, TypeError, AttributeError)


class FlaunchClient:
    """Async wrapper around the Flaunch token API."""

    def __init__(self, base_url: str, manager_address: str, timeout: float = 8) -> None:
        self._base_url = base_url.rstrip("/")
        self._manager = manager_address
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def fetch_tokens(self) -> list[ListedToken]:
        """Every token registered under the manager, newest first.

        Raises on any page failure: a partial listing would silently drop
        agents from the snapshot.
        """
        tokens: list[ListedToken] = []
        offset = 0
        for _ in range(_MAX_PAGES):
            data = await self._get_json(
                f"{self._base_url}/tokens",
                params={
                    "managerAddress": self._manager,
                    "orderBy": "datecreated",
                    "orderDirection": "desc",
                    "limit": TOKENS_PER_PAGE,
                    "offset": offset,
                },
                label="Flaunch tokens",
            )
            page = data.get("data") or []
            for raw in page:
                try:
                    tokens.append(ListedToken.model_validate(raw))
                except ValidationError as exc:
                    logger.debug("Skipping malformed listing entry %r: %s", raw, exc)
            if len(page) < TOKENS_PER_PAGE:
                break
            offset += TOKENS_PER_PAGE
        return tokens

    # ------------------------------------------------------------------
    # Per-token fetchers (never raise)
    # ------------------------------------------------------------------

    async def fetch_token_details(self, token_address: str) -> Optional[TokenDetails]:
        try:
            data = await self._get_json(
                f"{self._base_url}/tokens/{token_address}/details",
                label="Flaunch details",
            )
            return details_from_json(token_address, data)
        except _FETCH_ERRORS as exc:
            logger.warning("Details fetch failed for %s: %s", token_address, exc)
            return None

    async def fetch_holders(self, token_address: str) -> HolderPage:
        """All holders, paging until the reported total or a short page."""
        holders: list[Holder] = []
        total = 0
        try:
            offset = 0
            for _ in range(_MAX_PAGES):
                data = await self._get_json(
                    f"{self._base_url}/tokens/{token_address}/holders",
                    params={"limit": HOLDERS_PER_PAGE, "offset": offset},
                    label="Flaunch holders",
                )
                page = data.get("holders") or data.get("data") or []
                total = int(safe_float(data.get("totalHolders"), total))
                if not page:
                    break
                holders.extend(
                    Holder(address=str(h.get("id", "")), balance=str(h.get("balance", "0")))
                    for h in page
                    if h.get("id")
                )
                if len(holders) >= total or len(page) < HOLDERS_PER_PAGE:
                    break
                offset += HOLDERS_PER_PAGE
        except _FETCH_ERRORS as exc:
            # keep whatever pages arrived
            logger.warning("Holder fetch failed for %s after %d holders: %s", token_address, len(holders), exc)
        return HolderPage(holders=holders, total_holders=total or len(holders))

    async def fetch_swaps(self, token_address: str, limit: int = 100) -> list[TokenSwap]:
        try:
            data = await self._get_json(
                f"{self._base_url}/tokens/{token_address}/swaps",
                params={"limit": limit},
                label="Flaunch swaps",
            )
            raw_swaps = data.get("swaps") or data.get("data") or []
            if not isinstance(raw_swaps, list):
                return []
            return [s for s in (swap_from_json(r) for r in raw_swaps) if s is not None]
        except _FETCH_ERRORS as exc:
            logger.warning("Swap fetch failed for %s: %s", token_address, exc)
            return []

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    async def _get_json(
        self, url: str, params: dict | None = None, *, label: str
    ) -> dict[str, Any]:
        client = await self._get_client()
        resp = await fetch_with_retry(client, url, params=params, label=label)
        resp.raise_for_status()
        data = resp.json()
        if not isinstance(data, dict):
            raise ValueError(f"{label}: expected a JSON object, got {type(data).__name__}")
        return data


# ---------------------------------------------------------------------------
# Conversion helpers (pure data transforms)
# ---------------------------------------------------------------------------

def details_from_json(token_address: str, data: dict[str, Any]) -> TokenDetails:
    price = data.get("price") or {}
    volume = data.get("volume") or {}
    status = data.get("status") or {}
    return TokenDetails(
        token_address=token_address,
        owner=str(status.get("owner") or ""),
        market_cap_eth=wei_to_eth(price.get("marketCapETH") or "0"),
        price_change_24h=safe_float(price.get("priceChange24h")),
        volume_24h_eth=wei_to_eth(volume.get("volume24h") or "0"),
    )


def swap_from_json(raw: dict[str, Any]) -> Optional[TokenSwap]:
    """Normalise a raw swap; ETH amount is |uniswap.amount0| + |isp.amount0|."""
    tx_hash = raw.get("txHash") or raw.get("transactionHash")
    maker = raw.get("maker")
    if not tx_hash or not maker:
        return None
    amounts = raw.get("amounts") or {}
    uni = abs(safe_float((amounts.get("uniswap") or {}).get("amount0")))
    isp = abs(safe_float((amounts.get("isp") or {}).get("amount0")))
    return TokenSwap(
        maker=str(maker),
        side=str(raw.get("type") or "").lower(),
        amount_eth=(uni + isp) / WEI_PER_ETH,
        timestamp=int(safe_float(raw.get("timestamp"))),
        transaction_hash=str(tx_hash),
    )
