"""Tests for the pydantic models (wire shape and goal activity)."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from agent_network.models import (
    Agent,
    ListedToken,
    NetworkGoal,
    NetworkState,
    PowerScore,
    SwapEvent,
)
from conftest import CREATOR_A, TOKEN_A


class TestWireAliases:

    def test_agent_dumps_camel_case(self):
        data = Agent(token_address=TOKEN_A, market_cap_eth=1.0, claimable_eth=0.1).model_dump(by_alias=True)
        assert data["tokenAddress"] == TOKEN_A
        assert data["marketCapETH"] == 1.0
        assert data["claimableETH"] == 0.1
        assert data["volume24hETH"] == 0.0
        assert data["priceChange24h"] == 0.0
        assert data["walletETH"] == 0.0
        assert data["crossTradeCount"] == 0
        assert data["powerScore"] == {"total": 0, "revenue": 0, "market": 0, "network": 0, "vitality": 0}
        assert data["type"] == "agent"

    def test_deep_link_published_as_flaunch_url(self):
        data = Agent(token_address=TOKEN_A, token_url="https://flaunch.test/coin/x").model_dump(by_alias=True)
        assert data["flaunchUrl"] == "https://flaunch.test/coin/x"
        assert "tokenUrl" not in data

    def test_agent_defaults(self):
        agent = Agent(token_address=TOKEN_A)
        assert (agent.name, agent.symbol, agent.creator) == ("unnamed", "???", "")
        assert agent.onboards == []

    def test_swap_event_aliases(self):
        swap = SwapEvent(
            token_address=TOKEN_A, token_name="A", token_symbol="A", maker=CREATOR_A,
            type="sell", amount_eth=0.3, timestamp=1, transaction_hash="0x1",
        )
        data = swap.model_dump(by_alias=True)
        assert data["amountETH"] == 0.3
        assert data["transactionHash"] == "0x1"
        assert data["isCrossTrade"] is False
        assert data["memo"] is None

    def test_swap_type_restricted(self):
        with pytest.raises(ValidationError):
            SwapEvent(
                token_address=TOKEN_A, token_name="A", token_symbol="A", maker=CREATOR_A,
                type="transfer", timestamp=1, transaction_hash="0x1",
            )

    def test_state_round_trips_from_camel_json(self):
        state = NetworkState(agents=[Agent(token_address=TOKEN_A, holders=7)], timestamp=5)
        again = NetworkState.model_validate_json(state.model_dump_json(by_alias=True))
        assert again == state
        assert "crossEdges" in state.model_dump(by_alias=True)

    def test_listed_token_null_fields_default(self):
        token = ListedToken.model_validate({
            "tokenAddress": TOKEN_A, "name": None, "symbol": None, "image": None,
            "description": None, "marketCapETH": None, "createdAt": None,
        })
        assert (token.name, token.symbol, token.image, token.description) == ("", "", "", "")
        assert token.market_cap_wei == 0
        assert token.created_at == 0

    def test_listed_token_requires_address(self):
        with pytest.raises(ValidationError):
            ListedToken.model_validate({"tokenAddress": None, "name": "x"})

    def test_listed_token_reads_api_names(self):
        token = ListedToken.model_validate(
            {"tokenAddress": TOKEN_A, "marketCapETH": "20000000000000000", "unknown": 1}
        )
        assert token.token_address == TOKEN_A
        assert token.market_cap_wei == "20000000000000000"


class TestPowerScore:

    @pytest.mark.parametrize("field", ["total", "revenue", "market", "network", "vitality"])
    def test_bounded(self, field):
        with pytest.raises(ValidationError):
            PowerScore(**{field: 101})


class TestNetworkGoal:

    def _goal(self, **kw) -> NetworkGoal:
        return NetworkGoal(id="g", name="Goal", metric="onboards", **kw)

    def test_camel_case_input(self):
        goal = NetworkGoal.model_validate(
            {"id": "g", "name": "Goal", "metric": "onboards", "weight": 0.4, "startedAt": 10, "endsAt": 20}
        )
        assert (goal.started_at, goal.ends_at) == (10, 20)

    @pytest.mark.parametrize("weight", [-0.1, 1.1])
    def test_weight_bounds(self, weight):
        with pytest.raises(ValidationError):
            self._goal(weight=weight)

    def test_open_ended(self):
        goal = self._goal(started_at=100)
        assert not goal.is_active(99)
        assert goal.is_active(100)
        assert goal.is_active(10**15)

    def test_end_is_exclusive(self):
        goal = self._goal(started_at=100, ends_at=200)
        assert goal.is_active(199)
        assert not goal.is_active(200)
