"""
Command line interface for the agent network.

Usage::

    python src/main.py run [--json]
    python src/main.py show [--sort power|mcap|volume|holders|newest] [--limit N] [--json]
    python src/main.py serve [--host HOST] [--port PORT]
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from typing import Optional

# Ensure ``src/`` is on the import path
sys.path.insert(0, os.path.dirname(__file__))

from agent_network.logging_config import setup_logging
from agent_network.models import Agent, NetworkState, SwapEvent

logger = logging.getLogger("agent_network.cli")

SORT_FIELDS = ("power", "mcap", "volume", "holders", "newest")


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------

def format_eth(value: float) -> str:
    if value >= 1:
        return f"{value:.4f} ETH"
    if value >= 0.001:
        return f"{value:.6f} ETH"
    if value == 0:
        return "0 ETH"
    return f"{value:.2e} ETH"


def truncate(addr: str) -> str:
    if len(addr) <= 10:
        return addr or "-"
    return f"{addr[:6]}...{addr[-4:]}"


def power_bar(score: int) -> str:
    filled = max(0, min(10, int(score / 10 + 0.5)))
    return "█" * filled + "░" * (10 - filled)


def sort_agents(agents: list[Agent], field: str) -> list[Agent]:
    if field == "mcap":
        return sorted(agents, key=lambda a: a.market_cap_eth, reverse=True)
    if field == "volume":
        return sorted(agents, key=lambda a: a.volume_24h_eth, reverse=True)
    if field == "holders":
        return sorted(agents, key=lambda a: a.holders, reverse=True)
    if field == "newest":
        # snapshot order carries no creation date; discovery is newest-first
        return list(reversed(agents))
    return sorted(agents, key=lambda a: a.power_score.total, reverse=True)


def latest_memos(swaps: list[SwapEvent]) -> dict[str, str]:
    """Newest memo per token (swaps are stored newest-first)."""
    memos: dict[str, str] = {}
    for swap in swaps:
        if swap.memo and swap.token_address not in memos:
            memos[swap.token_address] = swap.memo
    return memos


def render_state(state: NetworkState, sort: str = "power", limit: int = 0) -> str:
    agents = sort_agents(state.agents, sort)
    if limit > 0:
        agents = agents[:limit]
    memos = latest_memos(state.swaps)

    lines = ["=" * 60, f"  Agent Network – {len(state.agents)} agent(s)", "=" * 60]
    if state.goal is not None:
        lines.append(f"  Goal: {state.goal.name} (metric={state.goal.metric}, weight={state.goal.weight:.2f})")
        lines.append("-" * 60)
    if not agents:
        lines.append("  No agents qualified in the last run.")
    for rank, agent in enumerate(agents, 1):
        score = agent.power_score.total
        lines.append(f"  #{rank:<3} {agent.name} ({agent.symbol})".ljust(44) + f"{power_bar(score)} {score}")
        lines.append(
            f"       MCap: {format_eth(agent.market_cap_eth)} · Vol 24h: {format_eth(agent.volume_24h_eth)}"
            f" · {agent.holders} holders"
        )
        lines.append(f"       Fees: {format_eth(agent.claimable_eth)} · Creator: {truncate(agent.creator)}")
        if agent.cross_holdings or agent.cross_trade_count:
            lines.append(
                f"       Network: {agent.cross_holdings} cross holdings · {agent.cross_trade_count} cross trades"
            )
        if agent.token_address in memos:
            lines.append(f'       Memo: "{memos[agent.token_address]}"')
    lines.append("-" * 60)
    lines.append(f"  {len(state.swaps)} notable swaps · {len(state.cross_edges)} cross-holding edges")
    lines.append("=" * 60)
    return "\n".join(lines)


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

async def _run(as_json: bool) -> int:
    from agent_network.data_sources._clients import close_clients
    from agent_network.pipeline import run_pipeline

    try:
        report = await run_pipeline()
    finally:
        await close_clients()

    if as_json:
        print(report.model_dump_json(indent=2))
    else:
        print("=" * 60)
        print(f"  Pipeline run {report.run_id}: {report.state}")
        print("=" * 60)
        print(f"  Discovered : {report.discovered}")
        print(f"  Candidates : {report.candidates}")
        print(f"  Qualified  : {report.qualified}")
        print(f"  Published  : {'yes' if report.published else 'no'}")
        if report.published:
            print(f"  Snapshot   : {report.agents} agents · {report.swaps} swaps · {report.edges} edges")
        if report.error:
            print(f"  Error      : {report.error}")
        print("=" * 60)
    return 0 if report.published else 1


async def _show(sort: str, limit: int, as_json: bool) -> int:
    from agent_network.data_sources._clients import close_clients, get_store

    store = get_store()
    try:
        raw = await store.load_raw()
        state = await store.load() if raw is not None else None
    finally:
        await close_clients()

    if state is None:
        print("No snapshot published yet – run `agent-network run` first.", file=sys.stderr)
        return 1
    if as_json:
        print(raw)
    else:
        print(render_state(state, sort=sort, limit=limit))
    return 0


def _serve(host: Optional[str], port: Optional[int]) -> int:
    import uvicorn

    from config import API_HOST, API_PORT

    uvicorn.run("agent_network.api:app", host=host or API_HOST, port=port or API_PORT)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Score agent tokens on Base and publish a network snapshot"
    )
    sub = parser.add_subparsers(dest="command", required=True)

    run_p = sub.add_parser("run", help="Run the pipeline once and publish a snapshot")
    run_p.add_argument("--json", action="store_true", dest="as_json", help="Output the run report as JSON")

    show_p = sub.add_parser("show", help="Print the published snapshot")
    show_p.add_argument("--sort", choices=SORT_FIELDS, default="power", help="Ranking order (default: power)")
    show_p.add_argument("--limit", type=int, default=0, help="Show at most N agents (0 = all)")
    show_p.add_argument("--json", action="store_true", dest="as_json", help="Output the raw snapshot JSON")

    serve_p = sub.add_parser("serve", help="Serve the REST API (and the scheduler)")
    serve_p.add_argument("--host", default=None, help="Bind address (default: API_HOST)")
    serve_p.add_argument("--port", type=int, default=None, help="Port (default: API_PORT)")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the CLI."""
    args = build_parser().parse_args(argv)
    setup_logging()
    if args.command == "run":
        code = asyncio.run(_run(args.as_json))
    elif args.command == "show":
        code = asyncio.run(_show(args.sort, args.limit, args.as_json))
    else:
        code = _serve(args.host, args.port)
    sys.exit(code)


if __name__ == "__main__":
    main()
