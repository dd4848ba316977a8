"""
Pydantic models used throughout the agent network pipeline.

Published models serialise with camelCase aliases (``model_dump(by_alias=True)``)
because that is the shape dashboard and CLI consumers read.  All of them
accept either snake_case or camelCase on input.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------
class PowerScore(_WireModel):
    """Composite 0-100 score plus the four unblended pillar values."""

    total: int = Field(0, ge=0, le=100)
    revenue: int = Field(0, ge=0, le=100)
    market: int = Field(0, ge=0, le=100)
    network: int = Field(0, ge=0, le=100)
    vitality: int = Field(0, ge=0, le=100)


class NetworkGoal(_WireModel):
    """Externally configured objective that reweights scoring."""

    id: str
    name: str
    description: str = ""
    metric: str
    weight: float = Field(0.0, ge=0.0, le=1.0)
    started_at: int = Field(0, description="Unix milliseconds")
    ends_at: Optional[int] = Field(None, description="Unix milliseconds, None = open-ended")

    def is_active(self, now_ms: int) -> bool:
        if now_ms < self.started_at:
            return False
        return self.ends_at is None or now_ms < self.ends_at


class OnboardCredit(_WireModel):
    agent_address: str
    agent_name: str


# ---------------------------------------------------------------------------
# Published snapshot
# ---------------------------------------------------------------------------
class Agent(_WireModel):
    """One tracked token and its creator wallet, rebuilt every run."""

    token_address: str
    name: str = "unnamed"
    symbol: str = "???"
    creator: str = ""
    market_cap_eth: float = Field(0.0, alias="marketCapETH")
    volume_24h_eth: float = Field(0.0, alias="volume24hETH")
    price_change_24h: float = Field(0.0, alias="priceChange24h")
    claimable_eth: float = Field(0.0, alias="claimableETH")
    wallet_eth: float = Field(0.0, alias="walletETH")
    image: str = ""
    description: str = ""
    token_url: str = Field("", alias="flaunchUrl")
    holders: int = 0
    cross_holdings: int = 0
    recent_swaps: int = 0
    cross_trade_count: int = 0
    memo_count: int = 0
    power_score: PowerScore = Field(default_factory=PowerScore)
    goal_score: int = 0
    onboards: list[OnboardCredit] = Field(default_factory=list)
    type: Literal["agent", "human", "unknown"] = "agent"


class SwapEvent(_WireModel):
    """A notable trade, unique per transaction hash within a snapshot."""

    token_address: str
    token_name: str
    token_symbol: str
    maker: str
    maker_name: Optional[str] = None
    maker_token_address: Optional[str] = None
    type: Literal["buy", "sell"]
    amount_eth: float = Field(0.0, alias="amountETH")
    timestamp: int = Field(..., description="Unix seconds")
    transaction_hash: str
    is_cross_trade: bool = False
    is_agent_swap: bool = False
    memo: Optional[str] = None


class CrossHoldingEdge(_WireModel):
    """Undirected, presence-only link between two agent tokens."""

    token_a: str
    token_b: str
    holder: str


class NetworkState(_WireModel):
    """The sole unit of publication."""

    agents: list[Agent] = Field(default_factory=list)
    swaps: list[SwapEvent] = Field(default_factory=list)
    cross_edges: list[CrossHoldingEdge] = Field(default_factory=list)
    goal: Optional[NetworkGoal] = None
    timestamp: int = Field(..., description="Unix milliseconds")


# ---------------------------------------------------------------------------
# Upstream data (normalised from the token API / indexer)
# ---------------------------------------------------------------------------
class ListedToken(BaseModel):
    """A candidate from the token-listing endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    token_address: str = Field(..., alias="tokenAddress")
    name: str = ""
    symbol: str = ""
    market_cap_wei: str | int | float = Field("0", alias="marketCapETH")
    created_at: int = Field(0, alias="createdAt")
    image: str = ""
    description: str = ""

    @field_validator("name", "symbol", "image", "description", mode="before")
    @classmethod
    def _null_text(cls, v: object) -> object:
        return "" if v is None else v

    @field_validator("market_cap_wei", "created_at", mode="before")
    @classmethod
    def _null_number(cls, v: object) -> object:
        return 0 if v is None else v


class TokenDetails(BaseModel):
    """Market details for a single token."""

    token_address: str
    owner: str = ""
    market_cap_eth: float = 0.0
    price_change_24h: float = 0.0
    volume_24h_eth: float = 0.0


class Holder(BaseModel):
    address: str
    balance: str = "0"


class HolderPage(BaseModel):
    """All holders collected for a token plus the API-reported total."""

    holders: list[Holder] = Field(default_factory=list)
    total_holders: int = 0


class TokenSwap(BaseModel):
    """A swap from the token feed with amounts normalised to ETH."""

    maker: str
    side: str
    amount_eth: float = 0.0
    timestamp: int = 0
    transaction_hash: str


class WalletTransfer(BaseModel):
    """An outgoing native transfer from a creator wallet."""

    hash: str
    to: str = ""
    value: float = 0.0
    timestamp: int = 0
    memo: Optional[str] = None


# ---------------------------------------------------------------------------
# Run bookkeeping
# ---------------------------------------------------------------------------
class RunReport(BaseModel):
    """Outcome of one pipeline run (kept by the scheduler, printed by the CLI)."""

    run_id: str
    state: str
    started_at: float
    finished_at: Optional[float] = None
    published: bool = False
    discovered: int = 0
    candidates: int = 0
    qualified: int = 0
    agents: int = 0
    swaps: int = 0
    edges: int = 0
    error: Optional[str] = None
