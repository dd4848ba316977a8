"""
Absolute power score (0-100) from four weighted pillars.

No relative normalisation: every agent is measured against fixed ETH and
count thresholds, so a score is reproducible from the agent's own metrics
alone.  Rounding is half-up to keep scores stable across platforms.

Pillar weights
--------------
revenue 0.30 · market 0.25 · network 0.25 · vitality 0.20
"""

from __future__ import annotations

import math

from .models import Agent, PowerScore

WEIGHT_REVENUE = 0.30
WEIGHT_MARKET = 0.25
WEIGHT_NETWORK = 0.25
WEIGHT_VITALITY = 0.20

# Revenue
_CLAIMABLE_FULL_ETH = 0.5
_VOLUME_FULL_ETH = 1.0
# Market
_MCAP_FULL_ETH = 2.0
_PRICE_CHANGE_BOUND = 50.0
# Vitality wallet steps (ETH, points), checked top-down; the last step is exclusive
_WALLET_STEPS: tuple[tuple[float, int], ...] = ((0.05, 25), (0.01, 18))
_WALLET_DUST_ETH = 0.001
_WALLET_DUST_POINTS = 10
_DESCRIPTION_BONUS = 5
# Onboards goal: 32.5n - 2.5n^2 peaks at 100 for n = 5
_ONBOARDS_FOR_FULL_SCORE = 5


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _finite(value: float) -> float:
    return value if math.isfinite(value) else 0.0


def compute_revenue(agent: Agent) -> float:
    fee_part = min(60.0, _finite(agent.claimable_eth) / _CLAIMABLE_FULL_ETH * 60)
    vol_part = min(40.0, _finite(agent.volume_24h_eth) / _VOLUME_FULL_ETH * 40)
    return _clamp(max(0.0, fee_part) + max(0.0, vol_part), 0, 100)


def compute_market(agent: Agent) -> float:
    mcap_part = min(60.0, _finite(agent.market_cap_eth) / _MCAP_FULL_ETH * 60)
    pct = _clamp(_finite(agent.price_change_24h), -_PRICE_CHANGE_BOUND, _PRICE_CHANGE_BOUND)
    pct_part = (pct + _PRICE_CHANGE_BOUND) / (2 * _PRICE_CHANGE_BOUND) * 40
    return _clamp(max(0.0, mcap_part) + pct_part, 0, 100)


def compute_network(agent: Agent) -> float:
    holder_part = min(60, agent.holders * 12)
    cross_part = min(40, agent.cross_holdings * 20)
    return _clamp(max(0, holder_part) + max(0, cross_part), 0, 100)


def _wallet_points(wallet_eth: float) -> int:
    for threshold, points in _WALLET_STEPS:
        if wallet_eth >= threshold:
            return points
    return _WALLET_DUST_POINTS if wallet_eth > _WALLET_DUST_ETH else 0


def compute_vitality(agent: Agent) -> float:
    swap_part = max(0, min(30, agent.recent_swaps * 6))
    wallet_part = _wallet_points(_finite(agent.wallet_eth))
    setup_bonus = _DESCRIPTION_BONUS if agent.description else 0
    cross_part = max(0, min(20, agent.cross_trade_count * 7))
    memo_part = max(0, min(20, agent.memo_count * 10))
    return _clamp(swap_part + wallet_part + setup_bonus + cross_part + memo_part, 0, 100)


def compute_power_score(
    agent: Agent,
    goal_weight: float = 0.0,
    goal_score: float = 0.0,
) -> PowerScore:
    """Score *agent*; with ``goal_weight > 0`` blend *goal_score* into the total.

    Pillar values are always the unblended base values.
    """
    revenue = compute_revenue(agent)
    market = compute_market(agent)
    network = compute_network(agent)
    vitality = compute_vitality(agent)

    base = round_half_up(
        revenue * WEIGHT_REVENUE
        + market * WEIGHT_MARKET
        + network * WEIGHT_NETWORK
        + vitality * WEIGHT_VITALITY
    )
    total = int(_clamp(base, 0, 100))

    weight = _clamp(_finite(goal_weight), 0.0, 1.0)
    if weight > 0:
        goal = _clamp(_finite(goal_score), 0, 100)
        total = int(_clamp(round_half_up(total * (1 - weight) + goal * weight), 0, 100))

    return PowerScore(
        total=total,
        revenue=round_half_up(revenue),
        market=round_half_up(market),
        network=round_half_up(network),
        vitality=round_half_up(vitality),
    )


def compute_onboard_goal_score(onboard_count: int) -> int:
    """Concave reward for onboarding: 0, 30, 55, 75, 90, then 100 from 5 on.

    Each additional onboard is worth 5 points less than the previous one,
    front-loading the reward toward the first few.
    """
    if onboard_count <= 0:
        return 0
    if onboard_count >= _ONBOARDS_FOR_FULL_SCORE:
        return 100
    n = onboard_count
    return min(100, round_half_up(32.5 * n - 2.5 * n * n))
