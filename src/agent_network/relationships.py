"""
On-chain relationships between agents.

Everything here works on lower-cased addresses and pure in-memory data:

- ``build_wallet_holdings`` inverts per-token holder lists into
  ``wallet -> {token}``;
- cross holdings are the other agent tokens an agent's creator holds;
- a cross trade is a swap whose maker is a *different* agent's creator
  (the token's own creator trading it is a wash trade);
- cross-holding edges are undirected and recorded once per token pair,
  whoever the holder is (presence only, multiplicity is not tracked);
- onboard credits go to an agent for every other agent whose creator
  holds its token.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Mapping, Sequence

from .models import CrossHoldingEdge, OnboardCredit


@dataclass(frozen=True)
class AgentRef:
    """The identity slice of an agent the relationship logic needs."""

    token_address: str
    creator: str
    name: str = ""


@dataclass(frozen=True)
class SwapClass:
    is_wash: bool
    is_cross: bool
    is_agent: bool


def build_wallet_holdings(
    holders_by_token: Mapping[str, Iterable[str]],
) -> dict[str, set[str]]:
    """Invert ``token -> [holder wallet]`` into ``wallet -> {token}``."""
    holdings: dict[str, set[str]] = {}
    for token, wallets in holders_by_token.items():
        token_key = token.lower()
        for wallet in wallets:
            if not wallet:
                continue
            holdings.setdefault(wallet.lower(), set()).add(token_key)
    return holdings


def count_cross_holdings(
    wallet_holdings: Mapping[str, set[str]], creator: str, token_address: str
) -> int:
    if not creator:
        return 0
    held = wallet_holdings.get(creator.lower())
    if not held:
        return 0
    return len(held - {token_address.lower()})


def classify_swap(maker: str, token_creator: str, creator_set: set[str]) -> SwapClass:
    """Classify a swap on a token created by *token_creator*."""
    maker_key = maker.lower()
    is_wash = bool(token_creator) and maker_key == token_creator.lower()
    is_agent = maker_key in creator_set
    return SwapClass(is_wash=is_wash, is_cross=is_agent and not is_wash, is_agent=is_agent)


def is_notable(swap_class: SwapClass, amount_eth: float, whale_eth: float) -> bool:
    """Wash trades never are; agent, cross or whale-sized swaps are."""
    if swap_class.is_wash:
        return False
    return swap_class.is_agent or swap_class.is_cross or amount_eth >= whale_eth


def build_cross_edges(
    agents: Sequence[AgentRef], wallet_holdings: Mapping[str, set[str]]
) -> list[CrossHoldingEdge]:
    """One undirected edge per unordered token pair linked by a creator holding."""
    display = {a.token_address.lower(): a.token_address for a in agents}
    edges: list[CrossHoldingEdge] = []
    seen: set[tuple[str, str]] = set()

    for agent in agents:
        creator = agent.creator.lower()
        if not creator:
            continue
        own = agent.token_address.lower()
        # sorted for a stable edge order between runs
        for held in sorted(wallet_holdings.get(creator, ())):
            if held == own:
                continue
            pair = (own, held) if own < held else (held, own)
            if pair in seen:
                continue
            seen.add(pair)
            edges.append(
                CrossHoldingEdge(
                    token_a=agent.token_address,
                    token_b=display.get(held, held),
                    holder=creator,
                )
            )
    return edges


def compute_onboard_credits(
    agents: Sequence[AgentRef], wallet_holdings: Mapping[str, set[str]]
) -> dict[str, list[OnboardCredit]]:
    """``token -> credits`` from every other agent whose creator holds that token."""
    credits: dict[str, list[OnboardCredit]] = {}
    for agent in agents:
        own = agent.token_address.lower()
        earned: list[OnboardCredit] = []
        for other in agents:
            if other.token_address.lower() == own or not other.creator:
                continue
            if own in wallet_holdings.get(other.creator.lower(), ()):
                earned.append(
                    OnboardCredit(agent_address=other.token_address, agent_name=other.name)
                )
        credits[own] = earned
    return credits
