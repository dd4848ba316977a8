"""
Pipeline orchestrator for the agent network.

``run_pipeline`` is the main async entry point.  One run walks a fixed
sequence of states:

    discovering -> filtering-by-mcap -> filtering-by-holders -> enriching
    -> reading-balances -> relating -> resolving-memos -> scoring
    -> publishing -> done

and ends with exactly one whole-snapshot write to the ``SnapshotStore``.
Discovery is the only step allowed to fail the run; every per-token fetch
degrades to empty data inside its client.  Any exception, the overall
timeout, or cancellation aborts the run *without* publishing, so consumers
keep seeing the previous snapshot.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections import Counter
from typing import Optional

import sentry_sdk

from config import (
    BATCH_DELAY_SECONDS,
    BATCH_SIZE,
    MAX_PUBLISHED_SWAPS,
    MIN_HOLDERS,
    MIN_MARKET_CAP_ETH,
    PIPELINE_TIMEOUT_SECONDS,
    SWAP_LOOKBACK_SECONDS,
    SWAPS_PER_TOKEN,
    TOKEN_URL_BASE,
    WALLET_ACTIVITY_LIMIT,
    WHALE_SWAP_ETH,
)
from .cache import SnapshotStore
from .constants import GOAL_METRIC_ONBOARDS
from .data_sources._retry import batched_fetch
from .data_sources.base_rpc import BaseRpcClient
from .data_sources.flaunch import FlaunchClient
from .data_sources.indexer import IndexerClient
from .logging_config import correlation_id_ctx, generate_run_id
from .models import (
    Agent,
    HolderPage,
    ListedToken,
    NetworkGoal,
    NetworkState,
    RunReport,
    SwapEvent,
    TokenDetails,
    TokenSwap,
    WalletTransfer,
)
from .relationships import (
    AgentRef,
    build_cross_edges,
    build_wallet_holdings,
    classify_swap,
    compute_onboard_credits,
    count_cross_holdings,
    is_notable,
)
from .scoring import compute_onboard_goal_score, compute_power_score
from .utils import wei_to_eth

logger = logging.getLogger(__name__)


class PipelineState(str, enum.Enum):
    DISCOVERING = "discovering"
    FILTERING_BY_MCAP = "filtering-by-mcap"
    FILTERING_BY_HOLDERS = "filtering-by-holders"
    ENRICHING = "enriching"
    READING_BALANCES = "reading-balances"
    RELATING = "relating"
    RESOLVING_MEMOS = "resolving-memos"
    SCORING = "scoring"
    PUBLISHING = "publishing"
    DONE = "done"
    FAILED = "failed"


class DiscoveryError(Exception):
    """The token listing could not be fetched; the run publishes nothing."""


class PipelineAborted(Exception):
    """The run timed out or was cancelled before publishing."""


async def _enter(report: RunReport, state: PipelineState) -> None:
    report.state = state.value
    logger.debug("pipeline -> %s", state.value)
    # cancellation point between states
    await asyncio.sleep(0)


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------

async def run_pipeline(
    *,
    flaunch: Optional[FlaunchClient] = None,
    rpc: Optional[BaseRpcClient] = None,
    indexer: Optional[IndexerClient] = None,
    store: Optional[SnapshotStore] = None,
    timeout: float = PIPELINE_TIMEOUT_SECONDS,
) -> RunReport:
    """Run the pipeline once under *timeout* and return its report.

    Never raises except to propagate cancellation of the caller; failures
    are logged, sent to Sentry and recorded in the report.
    """
    if flaunch is None or rpc is None or indexer is None or store is None:
        from .data_sources._clients import (
            get_flaunch_client,
            get_indexer_client,
            get_rpc_client,
            get_store,
        )

        flaunch = flaunch or get_flaunch_client()
        rpc = rpc or get_rpc_client()
        indexer = indexer or get_indexer_client()
        store = store or get_store()

    run_id = generate_run_id()
    ctx_token = correlation_id_ctx.set(run_id)
    report = RunReport(run_id=run_id, state=PipelineState.DISCOVERING.value, started_at=time.time())
    logger.info("Pipeline run started")
    try:
        await asyncio.wait_for(
            execute_pipeline(flaunch=flaunch, rpc=rpc, indexer=indexer, store=store, report=report),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        _record_failure(report, PipelineAborted(f"run exceeded {timeout:.0f}s"))
    except asyncio.CancelledError:
        _record_failure(report, PipelineAborted("run cancelled"))
        raise
    except Exception as exc:
        _record_failure(report, exc)
    finally:
        report.finished_at = time.time()
        correlation_id_ctx.reset(ctx_token)
    return report


def _record_failure(report: RunReport, exc: BaseException) -> None:
    failed_in = report.state
    report.state = PipelineState.FAILED.value
    report.error = f"{failed_in}: {exc}"
    logger.error(
        "Pipeline aborted while %s – previous snapshot kept: %s",
        failed_in,
        exc,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    sentry_sdk.capture_exception(exc)


async def execute_pipeline(
    *,
    flaunch: FlaunchClient,
    rpc: BaseRpcClient,
    indexer: Optional[IndexerClient],
    store: SnapshotStore,
    report: Optional[RunReport] = None,
) -> NetworkState:
    """One full run without the timeout / error boundary of ``run_pipeline``.

    Returns the published state.  Raises ``DiscoveryError`` when the listing
    fails and lets store write errors propagate.
    """
    if report is None:
        report = RunReport(run_id=correlation_id_ctx.get(), state="", started_at=time.time())

    # --- Discovery -----------------------------------------------------------
    await _enter(report, PipelineState.DISCOVERING)
    goal = await store.get_goal()
    now_ms = int(time.time() * 1000)
    goal_active = goal is not None and goal.is_active(now_ms)
    goal_weight = goal.weight if goal_active else 0.0

    try:
        listed = await flaunch.fetch_tokens()
    except Exception as exc:
        raise DiscoveryError(f"token discovery failed: {exc}") from exc

    tokens = _dedupe_tokens(listed)
    report.discovered = len(tokens)
    logger.info("Discovered %d tokens", len(tokens))
    if not tokens:
        return await _publish_empty(store, report, goal)

    # --- Market cap filter (strict) ------------------------------------------
    await _enter(report, PipelineState.FILTERING_BY_MCAP)
    candidates = [t for t in tokens if wei_to_eth(t.market_cap_wei) > MIN_MARKET_CAP_ETH]
    report.candidates = len(candidates)
    logger.info("%d/%d tokens above %.4f ETH market cap", len(candidates), len(tokens), MIN_MARKET_CAP_ETH)
    if not candidates:
        return await _publish_empty(store, report, goal)

    # --- Holder filter (inclusive) -------------------------------------------
    await _enter(report, PipelineState.FILTERING_BY_HOLDERS)
    holder_results = await batched_fetch(
        candidates,
        lambda t: flaunch.fetch_holders(t.token_address),
        batch_size=BATCH_SIZE,
        delay=BATCH_DELAY_SECONDS,
    )
    holder_pages: dict[str, HolderPage] = {}
    for token, outcome in zip(candidates, holder_results):
        holder_pages[token.token_address.lower()] = (
            outcome if isinstance(outcome, HolderPage) else HolderPage()
        )
    qualified = [
        t for t in candidates if holder_pages[t.token_address.lower()].total_holders >= MIN_HOLDERS
    ]
    report.qualified = len(qualified)
    logger.info("%d/%d candidates have >= %d holders", len(qualified), len(candidates), MIN_HOLDERS)
    if not qualified:
        return await _publish_empty(store, report, goal)

    # --- Enrichment ----------------------------------------------------------
    await _enter(report, PipelineState.ENRICHING)

    async def _enrich(token: ListedToken) -> tuple[Optional[TokenDetails], list[TokenSwap]]:
        details, swaps = await asyncio.gather(
            flaunch.fetch_token_details(token.token_address),
            flaunch.fetch_swaps(token.token_address, limit=SWAPS_PER_TOKEN),
        )
        return details, swaps

    enrich_results = await batched_fetch(
        qualified, _enrich, batch_size=BATCH_SIZE, delay=BATCH_DELAY_SECONDS
    )
    details_by_token: dict[str, Optional[TokenDetails]] = {}
    swaps_by_token: dict[str, list[TokenSwap]] = {}
    for token, outcome in zip(qualified, enrich_results):
        key = token.token_address.lower()
        if isinstance(outcome, BaseException):
            details_by_token[key], swaps_by_token[key] = None, []
        else:
            details_by_token[key], swaps_by_token[key] = outcome
    logger.info(
        "Enriched %d tokens (%d with details)",
        len(qualified),
        sum(1 for d in details_by_token.values() if d is not None),
    )

    # --- Balances ------------------------------------------------------------
    await _enter(report, PipelineState.READING_BALANCES)
    owners = list(dict.fromkeys(
        d.owner.lower() for d in details_by_token.values() if d is not None and d.owner
    ))
    claimable, wallet = await rpc.batch_read_balances(owners)
    logger.info("Read balances for %d owners (%d resolved)", len(owners), len(wallet))

    # --- Relationships -------------------------------------------------------
    await _enter(report, PipelineState.RELATING)
    # creator -> (name, symbol, token); a creator with several tokens maps to the last one
    creator_info: dict[str, tuple[str, str, str]] = {}
    for token in qualified:
        details = details_by_token[token.token_address.lower()]
        if details is not None and details.owner:
            creator_info[details.owner.lower()] = (
                token.name or "unnamed",
                token.symbol or "???",
                token.token_address,
            )
    creator_set = set(creator_info)
    holdings = build_wallet_holdings({
        t.token_address: [h.address for h in holder_pages[t.token_address.lower()].holders]
        for t in qualified
    })

    cutoff_ms = now_ms - SWAP_LOOKBACK_SECONDS * 1000
    events: dict[str, SwapEvent] = {}
    agents: list[Agent] = []
    for token in qualified:
        key = token.token_address.lower()
        details = details_by_token[key]
        owner = details.owner if details is not None else ""
        owner_key = owner.lower()
        name = token.name or "unnamed"
        symbol = token.symbol or "???"

        recent = [s for s in swaps_by_token[key] if s.timestamp * 1000 > cutoff_ms]
        cross_trades = 0
        for swap in recent:
            swap_class = classify_swap(swap.maker, owner, creator_set)
            if swap_class.is_cross:
                cross_trades += 1
            if not is_notable(swap_class, swap.amount_eth, WHALE_SWAP_ETH):
                continue
            if swap.transaction_hash in events:
                continue
            maker_info = creator_info.get(swap.maker.lower())
            events[swap.transaction_hash] = SwapEvent(
                token_address=token.token_address,
                token_name=name,
                token_symbol=symbol,
                maker=swap.maker,
                maker_name=f"{maker_info[0]} ({maker_info[1]})" if maker_info else None,
                maker_token_address=maker_info[2] if maker_info else None,
                type="buy" if swap.side == "buy" else "sell",
                amount_eth=swap.amount_eth,
                timestamp=swap.timestamp,
                transaction_hash=swap.transaction_hash,
                is_cross_trade=swap_class.is_cross,
                is_agent_swap=swap_class.is_agent,
            )

        agents.append(
            Agent(
                token_address=token.token_address,
                name=name,
                symbol=symbol,
                creator=owner,
                market_cap_eth=wei_to_eth(token.market_cap_wei),
                volume_24h_eth=details.volume_24h_eth if details is not None else 0.0,
                price_change_24h=details.price_change_24h if details is not None else 0.0,
                claimable_eth=claimable.get(owner_key, 0.0),
                wallet_eth=wallet.get(owner_key, 0.0),
                image=token.image,
                description=token.description,
                token_url=f"{TOKEN_URL_BASE}/coin/{token.token_address}",
                holders=holder_pages[key].total_holders,
                cross_holdings=count_cross_holdings(holdings, owner, token.token_address),
                recent_swaps=len(recent),
                cross_trade_count=cross_trades,
            )
        )

    refs = [AgentRef(a.token_address, a.creator, a.name) for a in agents]
    cross_edges = build_cross_edges(refs, holdings)
    logger.info("Built %d agents, %d notable swaps, %d cross edges", len(agents), len(events), len(cross_edges))

    # --- Memos and wallet activity -------------------------------------------
    await _enter(report, PipelineState.RESOLVING_MEMOS)
    await _resolve_feed_memos(events, rpc, store)
    if indexer is not None and indexer.enabled and owners:
        await _merge_wallet_activity(events, owners, creator_info, indexer, store, cutoff_ms)

    swaps = sorted(events.values(), key=lambda s: s.timestamp, reverse=True)[:MAX_PUBLISHED_SWAPS]

    # --- Scoring -------------------------------------------------------------
    await _enter(report, PipelineState.SCORING)
    memo_swaps = Counter(s.maker.lower() for s in swaps if s.memo and s.is_agent_swap)
    for agent in agents:
        agent.memo_count = memo_swaps.get(agent.creator.lower(), 0) if agent.creator else 0

    if goal_active and goal is not None and goal.metric == GOAL_METRIC_ONBOARDS:
        credits = compute_onboard_credits(refs, holdings)
        for agent in agents:
            agent.onboards = credits.get(agent.token_address.lower(), [])
            agent.goal_score = compute_onboard_goal_score(len(agent.onboards))

    for agent in agents:
        agent.power_score = compute_power_score(agent, goal_weight, agent.goal_score)
    # stable: ties keep discovery order
    agents.sort(key=lambda a: a.power_score.total, reverse=True)

    # --- Publish -------------------------------------------------------------
    state = NetworkState(
        agents=agents,
        swaps=swaps,
        cross_edges=cross_edges,
        goal=goal,
        timestamp=int(time.time() * 1000),
    )
    await _publish(store, report, state)
    return state


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------

def _dedupe_tokens(tokens: list[ListedToken]) -> list[ListedToken]:
    """Drop repeated addresses (listing pages shift while new tokens land)."""
    seen: set[str] = set()
    unique: list[ListedToken] = []
    for token in tokens:
        key = token.token_address.lower()
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(token)
    return unique


async def _resolve_feed_memos(
    events: dict[str, SwapEvent], rpc: BaseRpcClient, store: SnapshotStore
) -> None:
    """Attach memos to feed swaps: cache first, then one batched RPC pass."""
    hashes = [h for h, ev in events.items() if not ev.memo]
    if not hashes:
        return
    memos = await store.get_memos(hashes)
    missing = [h for h in hashes if h not in memos]
    fetched = await rpc.batch_fetch_memos(missing) if missing else {}
    for tx_hash, text in fetched.items():
        await store.put_memo(tx_hash, text)
    memos.update(fetched)
    for tx_hash, text in memos.items():
        events[tx_hash].memo = text
    logger.info(
        "Memos: %d/%d resolved (%d cached)", len(memos), len(hashes), len(memos) - len(fetched)
    )


async def _merge_wallet_activity(
    events: dict[str, SwapEvent],
    owners: list[str],
    creator_info: dict[str, tuple[str, str, str]],
    indexer: IndexerClient,
    store: SnapshotStore,
    cutoff_ms: int,
) -> None:
    """Add creator-wallet transfers as agent buys, deduplicated by hash.

    A transfer already in the feed only contributes its memo.
    """
    known = {h: ev.memo for h, ev in events.items() if ev.memo}
    results = await batched_fetch(
        owners,
        lambda w: indexer.fetch_wallet_swaps(w, WALLET_ACTIVITY_LIMIT, known_memos=known),
        batch_size=BATCH_SIZE,
        delay=BATCH_DELAY_SECONDS,
    )
    added = merged = 0
    for owner, outcome in zip(owners, results):
        if isinstance(outcome, BaseException):
            continue
        info = creator_info.get(owner)
        for tx in outcome:
            existing = events.get(tx.hash)
            if existing is not None:
                if tx.memo and not existing.memo:
                    existing.memo = tx.memo
                    merged += 1
                continue
            if tx.timestamp * 1000 <= cutoff_ms:
                continue
            if tx.memo:
                await store.put_memo(tx.hash, tx.memo)
            events[tx.hash] = _wallet_event(owner, info, tx)
            added += 1
    logger.info("Wallet activity: %d swaps added, %d memos merged", added, merged)


def _wallet_event(
    owner: str, info: Optional[tuple[str, str, str]], tx: WalletTransfer
) -> SwapEvent:
    # outgoing ETH from a creator wallet is read as buying a token
    return SwapEvent(
        token_address=info[2] if info else "",
        token_name=info[0] if info else "unknown",
        token_symbol=info[1] if info else "???",
        maker=owner,
        maker_name=f"{info[0]} ({info[1]})" if info else None,
        maker_token_address=info[2] if info else None,
        type="buy",
        amount_eth=tx.value,
        timestamp=tx.timestamp,
        transaction_hash=tx.hash,
        is_cross_trade=False,
        is_agent_swap=True,
        memo=tx.memo,
    )


async def _publish_empty(
    store: SnapshotStore, report: RunReport, goal: Optional[NetworkGoal]
) -> NetworkState:
    """No qualifying tokens is a valid state, published as such."""
    state = NetworkState(goal=goal, timestamp=int(time.time() * 1000))
    await _publish(store, report, state)
    return state


async def _publish(store: SnapshotStore, report: RunReport, state: NetworkState) -> None:
    await _enter(report, PipelineState.PUBLISHING)
    await store.publish(state)
    report.published = True
    report.agents = len(state.agents)
    report.swaps = len(state.swaps)
    report.edges = len(state.cross_edges)
    report.state = PipelineState.DONE.value
    logger.info(
        "Published snapshot: %d agents, %d swaps, %d edges",
        report.agents,
        report.swaps,
        report.edges,
    )
