"""Tests for the Base RPC client (base_rpc.py)."""

from __future__ import annotations

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from agent_network.abi import Call3
from agent_network.data_sources.base_rpc import BaseRpcClient, decode_balance_results
from agent_network.memo import encode_memo
from conftest import CREATOR_A, CREATOR_B
from test_abi import _result_blob, _uint

RM = "0x3Bc08524d9DaaDEC9d1Af87818d809611F0fD669"
MULTICALL = "0xcA11bde05977b3631167028862bE2a173976CA11"
ONE_ETH = 10**18


def _client(handler) -> BaseRpcClient:
    rpc = BaseRpcClient("https://rpc.test", revenue_manager=RM, multicall=MULTICALL)
    rpc._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return rpc


class TestBuildBalanceCalls:

    def test_two_calls_per_distinct_owner(self):
        rpc = BaseRpcClient("https://rpc.test", revenue_manager=RM, multicall=MULTICALL)
        calls = rpc.build_balance_calls([CREATOR_A, CREATOR_A.upper().replace("0X", "0x"), CREATOR_B])
        assert [(owner, kind) for _, owner, kind in calls] == [
            (CREATOR_A, "claimable"),
            (CREATOR_A, "eth"),
            (CREATOR_B, "claimable"),
            (CREATOR_B, "eth"),
        ]
        assert calls[0][0].target == RM
        assert calls[1][0].target == MULTICALL

    def test_malformed_owner_skipped_alone(self):
        rpc = BaseRpcClient("https://rpc.test", revenue_manager=RM, multicall=MULTICALL)
        calls = rpc.build_balance_calls(["0xnothex", "", CREATOR_B])
        assert {owner for _, owner, _ in calls} == {CREATOR_B}


class TestDecodeBalanceResults:

    def test_maps_results_back_to_owners(self):
        calls = [
            (Call3(RM, b""), CREATOR_A, "claimable"),
            (Call3(MULTICALL, b""), CREATOR_A, "eth"),
            (Call3(RM, b""), CREATOR_B, "claimable"),
            (Call3(MULTICALL, b""), CREATOR_B, "eth"),
        ]
        blob = _result_blob([
            (True, _uint(ONE_ETH // 2)),
            (True, _uint(ONE_ETH // 20)),
            (False, b""),
            (True, _uint(3 * ONE_ETH)),
        ])
        claimable, wallet = decode_balance_results(blob, calls)
        assert claimable == {CREATOR_A: 0.5}
        assert wallet == {CREATOR_A: 0.05, CREATOR_B: 3.0}

    def test_undecodable_result_gives_empty_maps(self):
        calls = [(Call3(RM, b""), CREATOR_A, "claimable")]
        assert decode_balance_results("0x1234", calls) == ({}, {})


class TestBatchReadBalances:

    @pytest.mark.asyncio
    async def test_single_eth_call(self):
        requests = []

        def handler(request):
            body = json.loads(request.content)
            requests.append(body)
            blob = _result_blob([(True, _uint(ONE_ETH)), (True, _uint(2 * ONE_ETH))])
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": blob})

        rpc = _client(handler)
        claimable, wallet = await rpc.batch_read_balances([CREATOR_A])
        assert len(requests) == 1
        assert requests[0]["method"] == "eth_call"
        assert requests[0]["params"][0]["to"] == MULTICALL
        assert requests[0]["params"][0]["data"].startswith("0x82ad56cb")
        assert claimable == {CREATOR_A: 1.0}
        assert wallet == {CREATOR_A: 2.0}

    @pytest.mark.asyncio
    async def test_no_owners_makes_no_call(self):
        handler = AsyncMock()
        rpc = _client(handler)
        assert await rpc.batch_read_balances([]) == ({}, {})

    @pytest.mark.asyncio
    async def test_rpc_error_gives_empty_maps(self):
        rpc = _client(lambda r: httpx.Response(
            200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "reverted"}}
        ))
        assert await rpc.batch_read_balances([CREATOR_A]) == ({}, {})

    @pytest.mark.asyncio
    async def test_transport_failure_gives_empty_maps(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        rpc = _client(handler)
        with patch("agent_network.data_sources._retry.asyncio.sleep", new_callable=AsyncMock):
            assert await rpc.batch_read_balances([CREATOR_A]) == ({}, {})

    @pytest.mark.asyncio
    async def test_empty_result_gives_empty_maps(self):
        rpc = _client(lambda r: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": "0x"}))
        assert await rpc.batch_read_balances([CREATOR_A]) == ({}, {})


class TestMemoLookup:

    @pytest.mark.asyncio
    async def test_fetch_memo_decodes_input(self):
        calldata = "0xa9059cbb" + "00" * 64 + encode_memo({"reason": "bought the dip"})[2:]

        def handler(request):
            body = json.loads(request.content)
            assert body["method"] == "eth_getTransactionByHash"
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": {"input": calldata}})

        rpc = _client(handler)
        assert await rpc.fetch_memo("0xt1") == "bought the dip"

    @pytest.mark.asyncio
    async def test_fetch_memo_missing_tx(self):
        rpc = _client(lambda r: httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": None}))
        assert await rpc.fetch_memo("0xt1") is None

    @pytest.mark.asyncio
    async def test_batch_fetch_memos_maps_by_id(self):
        memo_input = "0x" + encode_memo({"memo": "gm"})[2:]
        batches = []

        def handler(request):
            body = json.loads(request.content)
            batches.append(body)
            # answer out of order; only the first hash carries a memo
            answers = []
            for entry in reversed(body):
                tx_input = memo_input if entry["params"][0] == "0xt1" else "0x"
                answers.append({"jsonrpc": "2.0", "id": entry["id"], "result": {"input": tx_input}})
            return httpx.Response(200, json=answers)

        rpc = _client(handler)
        memos = await rpc.batch_fetch_memos(["0xt1", "0xt2", "0xt1"])
        assert memos == {"0xt1": "gm"}
        assert len(batches) == 1
        assert len(batches[0]) == 2

    @pytest.mark.asyncio
    async def test_batch_failure_gives_empty(self):
        rpc = _client(lambda r: httpx.Response(400))
        assert await rpc.batch_fetch_memos(["0xt1"]) == {}

    @pytest.mark.asyncio
    async def test_batch_non_list_answer(self):
        rpc = _client(lambda r: httpx.Response(200, json={"error": "batch not supported"}))
        assert await rpc.batch_fetch_memos(["0xt1"]) == {}
