"""
Project configuration for the agent network pipeline.

This module centralises every operator-tunable setting: API endpoints,
contract addresses, filtering thresholds, retry/batching knobs, cache and
logging options.  Each value can be overridden with an environment variable
of the same name.
"""

from __future__ import annotations

import logging
import os

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def _parse_float(name: str, default: str, *, low: float = 0.0, high: float = 1.0) -> float:
    """Parse an env var as a float and validate it within [low, high]."""
    raw = os.getenv(name, default)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = float(default)
    if not (low <= value <= high):
        logger.warning("%s=%.4f is outside [%.4f, %.1f] – clamped", name, value, low, high)
        value = max(low, min(value, high))
    return value


def _parse_int(name: str, default: str, *, minimum: int = 1) -> int:
    """Parse an env var as an int and enforce a minimum."""
    raw = os.getenv(name, default)
    try:
        value = int(raw)
    except (TypeError, ValueError):
        logger.error("Invalid value for %s: %r – using default %s", name, raw, default)
        value = int(default)
    if value < minimum:
        logger.warning("%s=%d is below minimum %d – clamped", name, value, minimum)
        value = minimum
    return value


def _parse_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


# ---------------------------------------------------------------------------
# External endpoints
# ---------------------------------------------------------------------------
FLAUNCH_API_BASE: str = os.getenv(
    "FLAUNCH_API_BASE", "https://api.flayerlabs.xyz/v1/base"
)
BASE_RPC_ENDPOINT: str = os.getenv("BASE_RPC_ENDPOINT", "https://mainnet.base.org")
# alchemy_getAssetTransfers-compatible endpoint; empty disables wallet activity
INDEXER_RPC_ENDPOINT: str = os.getenv("INDEXER_RPC_ENDPOINT", "")
TOKEN_URL_BASE: str = os.getenv("TOKEN_URL_BASE", "https://flaunch.gg/base")

# ---------------------------------------------------------------------------
# On-chain contracts / protocol constants
# ---------------------------------------------------------------------------
REVENUE_MANAGER_ADDRESS: str = os.getenv(
    "REVENUE_MANAGER_ADDRESS", "0x3Bc08524d9DaaDEC9d1Af87818d809611F0fD669"
)
MULTICALL3_ADDRESS: str = os.getenv(
    "MULTICALL3_ADDRESS", "0xcA11bde05977b3631167028862bE2a173976CA11"
)
MEMO_MAGIC_PREFIX: str = os.getenv("MEMO_MAGIC_PREFIX", "4d4c544c").lower()

# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
ADMIN_TOKEN: str = os.getenv("ADMIN_TOKEN", "")

# ---------------------------------------------------------------------------
# Filtering thresholds (ETH)
# ---------------------------------------------------------------------------
MIN_MARKET_CAP_ETH: float = _parse_float("MIN_MARKET_CAP_ETH", "0.01", high=1e9)
MIN_HOLDERS: int = _parse_int("MIN_HOLDERS", "5", minimum=0)
WHALE_SWAP_ETH: float = _parse_float("WHALE_SWAP_ETH", "0.1", high=1e9)

# ---------------------------------------------------------------------------
# Swap feed / snapshot shaping
# ---------------------------------------------------------------------------
SWAP_LOOKBACK_SECONDS: int = _parse_int("SWAP_LOOKBACK_SECONDS", "86400", minimum=60)
MAX_PUBLISHED_SWAPS: int = _parse_int("MAX_PUBLISHED_SWAPS", "100", minimum=1)
SWAPS_PER_TOKEN: int = _parse_int("SWAPS_PER_TOKEN", "100", minimum=1)
WALLET_ACTIVITY_LIMIT: int = _parse_int("WALLET_ACTIVITY_LIMIT", "15", minimum=1)

# ---------------------------------------------------------------------------
# Gateway: timeouts, retry, batching
# ---------------------------------------------------------------------------
FETCH_TIMEOUT_SECONDS: float = _parse_float("FETCH_TIMEOUT_SECONDS", "8", low=0.5, high=120.0)
FETCH_MAX_ATTEMPTS: int = _parse_int("FETCH_MAX_ATTEMPTS", "3", minimum=1)
BACKOFF_BASE_SECONDS: float = _parse_float("BACKOFF_BASE_SECONDS", "0.5", high=60.0)
BACKOFF_MULTIPLIER: float = _parse_float("BACKOFF_MULTIPLIER", "3", low=1.0, high=10.0)
BACKOFF_JITTER_SECONDS: float = _parse_float("BACKOFF_JITTER_SECONDS", "0.5", high=10.0)
BATCH_SIZE: int = _parse_int("BATCH_SIZE", "5", minimum=1)
BATCH_DELAY_SECONDS: float = _parse_float("BATCH_DELAY_SECONDS", "0.2", high=30.0)

# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------
PIPELINE_INTERVAL_SECONDS: int = _parse_int("PIPELINE_INTERVAL_SECONDS", "120", minimum=10)
PIPELINE_TIMEOUT_SECONDS: int = _parse_int("PIPELINE_TIMEOUT_SECONDS", "100", minimum=5)
SCHEDULER_ENABLED: bool = _parse_bool("SCHEDULER_ENABLED", "true")

# ---------------------------------------------------------------------------
# Snapshot store
# ---------------------------------------------------------------------------
SNAPSHOT_TTL_SECONDS: int = _parse_int("SNAPSHOT_TTL_SECONDS", "3600", minimum=1)
if SNAPSHOT_TTL_SECONDS < 2 * PIPELINE_INTERVAL_SECONDS:
    logger.warning(
        "SNAPSHOT_TTL_SECONDS=%d is shorter than two pipeline intervals – raised to %d",
        SNAPSHOT_TTL_SECONDS,
        2 * PIPELINE_INTERVAL_SECONDS,
    )
    SNAPSHOT_TTL_SECONDS = 2 * PIPELINE_INTERVAL_SECONDS
MEMO_CACHE_TTL_SECONDS: int = _parse_int("MEMO_CACHE_TTL_SECONDS", "604800", minimum=1)
CACHE_BACKEND: str = os.getenv("CACHE_BACKEND", "sqlite")  # "memory" or "sqlite"
CACHE_SQLITE_PATH: str = os.getenv("CACHE_SQLITE_PATH", "data/network.db")

# ---------------------------------------------------------------------------
# Sentry (error tracking)
# ---------------------------------------------------------------------------
SENTRY_DSN: str = os.getenv("SENTRY_DSN", "")
SENTRY_ENVIRONMENT: str = os.getenv("SENTRY_ENVIRONMENT", "production")
SENTRY_TRACES_SAMPLE_RATE: float = _parse_float(
    "SENTRY_TRACES_SAMPLE_RATE", "0.1", low=0.0, high=1.0
)

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_FORMAT: str = os.getenv("LOG_FORMAT", "text")  # "text" or "json"

# ---------------------------------------------------------------------------
# API server
# ---------------------------------------------------------------------------
API_HOST: str = os.getenv("API_HOST", "0.0.0.0")
API_PORT: int = _parse_int("API_PORT", "8000", minimum=1)
CORS_ORIGINS: list[str] = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "*").split(",")
    if o.strip()
]
RATE_LIMIT_READ: str = os.getenv("RATE_LIMIT_READ", "60/minute")
RATE_LIMIT_TRIGGER: str = os.getenv("RATE_LIMIT_TRIGGER", "2/minute")
