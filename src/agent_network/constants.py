"""
Centralized protocol constants for the agent network pipeline.

Function selectors, word sizes and unit scales that MUST stay in sync
between the encoders and decoders.  Deployment-specific addresses live in
``config.py`` so they can be overridden per environment.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Units
# ---------------------------------------------------------------------------
WEI_PER_ETH = 10**18
WORD_BYTES = 32

# ---------------------------------------------------------------------------
# Function selectors (first 4 bytes of keccak256(signature))
# ---------------------------------------------------------------------------

# Multicall3.aggregate3((address,bool,bytes)[])
AGGREGATE3_SELECTOR = "82ad56cb"
# RevenueManager.balances(address) -> uint256 (claimable fees)
BALANCES_SELECTOR = "27e235e3"
# Multicall3.getEthBalance(address) -> uint256
GET_ETH_BALANCE_SELECTOR = "4d2301cc"

# ---------------------------------------------------------------------------
# Memo codec
# ---------------------------------------------------------------------------

# 64KB ceiling minus the 4-byte marker
MAX_MEMO_BYTES = 65_532
# Keys checked, in order, when reducing a decoded memo object to display text
MEMO_TEXT_KEYS: tuple[str, ...] = ("reason", "memo", "note")

# ---------------------------------------------------------------------------
# Store keys
# ---------------------------------------------------------------------------
STATE_KEY = "network:state"
GOAL_KEY = "network:goal"
MEMO_KEY_PREFIX = "memo:"

# ---------------------------------------------------------------------------
# Goal metrics
# ---------------------------------------------------------------------------
GOAL_METRIC_ONBOARDS = "onboards"
