"""Tests for wallet relationships (relationships.py)."""

from __future__ import annotations

import pytest

from agent_network.relationships import (
    AgentRef,
    build_cross_edges,
    build_wallet_holdings,
    classify_swap,
    compute_onboard_credits,
    count_cross_holdings,
    is_notable,
)
from conftest import CREATOR_A, CREATOR_B, CREATOR_C, TOKEN_A, TOKEN_B, TOKEN_C, WHALE

A, B, C = TOKEN_A.lower(), TOKEN_B.lower(), TOKEN_C.lower()


@pytest.fixture
def agents() -> list[AgentRef]:
    return [
        AgentRef(TOKEN_A, CREATOR_A, "Alpha"),
        AgentRef(TOKEN_B, CREATOR_B, "Beta"),
        AgentRef(TOKEN_C, CREATOR_C, "Gamma"),
    ]


class TestWalletHoldings:

    def test_inverts_and_lowercases(self):
        holdings = build_wallet_holdings({
            TOKEN_A: [CREATOR_A, CREATOR_B.upper().replace("0X", "0x")],
            TOKEN_B: [CREATOR_B, ""],
        })
        assert holdings == {CREATOR_A: {A}, CREATOR_B: {A, B}}

    def test_cross_holdings_exclude_own_token(self):
        holdings = {CREATOR_A: {A, B, C}}
        assert count_cross_holdings(holdings, CREATOR_A, TOKEN_A) == 2
        assert count_cross_holdings(holdings, CREATOR_B, TOKEN_B) == 0
        assert count_cross_holdings(holdings, "", TOKEN_A) == 0


class TestClassifySwap:

    creators = {CREATOR_A, CREATOR_B}

    def test_wash_trade(self):
        cls = classify_swap(CREATOR_A, CREATOR_A, self.creators)
        assert cls.is_wash and cls.is_agent and not cls.is_cross
        assert not is_notable(cls, 100.0, 0.1)

    def test_cross_trade(self):
        cls = classify_swap(CREATOR_B.upper().replace("0X", "0x"), CREATOR_A, self.creators)
        assert cls.is_cross and cls.is_agent and not cls.is_wash
        assert is_notable(cls, 0.0, 0.1)

    @pytest.mark.parametrize("amount,notable", [(0.05, False), (0.1, True), (2.0, True)])
    def test_outsider_needs_whale_size(self, amount, notable):
        cls = classify_swap(WHALE, CREATOR_A, self.creators)
        assert not (cls.is_agent or cls.is_cross or cls.is_wash)
        assert is_notable(cls, amount, 0.1) is notable

    def test_unknown_creator_is_never_wash(self):
        assert not classify_swap(WHALE, "", self.creators).is_wash


class TestCrossEdges:

    def test_one_edge_per_pair(self, agents):
        # A holds B and B holds A: still one edge
        holdings = {CREATOR_A: {A, B}, CREATOR_B: {A, B}}
        edges = build_cross_edges(agents, holdings)
        assert len(edges) == 1
        edge = edges[0]
        assert (edge.token_a, edge.token_b, edge.holder) == (TOKEN_A, TOKEN_B, CREATOR_A)

    def test_edges_keep_display_casing(self, agents):
        edges = build_cross_edges(agents, {CREATOR_C: {A, C}})
        assert [(e.token_a, e.token_b) for e in edges] == [(TOKEN_C, TOKEN_A)]

    def test_untracked_token_kept_lowercase(self, agents):
        edges = build_cross_edges(agents, {CREATOR_A: {"0xdead"}})
        assert edges[0].token_b == "0xdead"

    def test_no_holdings_no_edges(self, agents):
        assert build_cross_edges(agents, {}) == []

    def test_full_mesh(self, agents):
        every = {A, B, C}
        holdings = {CREATOR_A: every, CREATOR_B: every, CREATOR_C: every}
        edges = build_cross_edges(agents, holdings)
        pairs = {tuple(sorted((e.token_a.lower(), e.token_b.lower()))) for e in edges}
        assert len(edges) == 3
        assert pairs == {(A, B), (A, C), (B, C)}


class TestOnboardCredits:

    def test_credit_from_each_holder_creator(self, agents):
        holdings = {CREATOR_B: {A, B}, CREATOR_C: {A}}
        credits = compute_onboard_credits(agents, holdings)
        assert [(c.agent_address, c.agent_name) for c in credits[A]] == [
            (TOKEN_B, "Beta"), (TOKEN_C, "Gamma"),
        ]
        assert credits[B] == []
        assert credits[C] == []

    def test_own_creator_holding_not_credited(self, agents):
        credits = compute_onboard_credits(agents, {CREATOR_A: {A}})
        assert credits[A] == []
