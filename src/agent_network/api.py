"""
REST API for the agent network using FastAPI.

Endpoints
---------
GET    /health                    - Health check + last pipeline run
GET    /api/network               - Published snapshot, served verbatim
GET    /api/network/swaps?since=  - Swaps newer than a millisecond cursor
POST   /api/network/trigger       - Start a pipeline run now
PUT    /api/network/goal          - Set the network goal (admin)
DELETE /api/network/goal          - Clear the network goal (admin)

The API only reads the snapshot store; the pipeline is the sole writer of
the snapshot.  Rate limiting via slowapi (per-IP), internal error details
are hidden from clients.
"""

from __future__ import annotations

import logging
import secrets
import time
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
from fastapi import FastAPI, Header, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.middleware.base import BaseHTTPMiddleware

from config import (
    ADMIN_TOKEN,
    BASE_RPC_ENDPOINT,
    CACHE_BACKEND,
    CORS_ORIGINS,
    FLAUNCH_API_BASE,
    RATE_LIMIT_READ,
    RATE_LIMIT_TRIGGER,
    SCHEDULER_ENABLED,
    SENTRY_DSN,
    SENTRY_ENVIRONMENT,
    SENTRY_TRACES_SAMPLE_RATE,
)
from .data_sources._clients import close_clients, get_store, init_clients
from .logging_config import correlation_id_ctx, generate_request_id, setup_logging
from .models import NetworkGoal
from .scheduler import PipelineScheduler

# Initialise structured logging early
setup_logging()
logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Sentry – initialise before anything else so startup errors are captured
# ---------------------------------------------------------------------------
if SENTRY_DSN:
    sentry_sdk.init(
        dsn=SENTRY_DSN,
        environment=SENTRY_ENVIRONMENT,
        traces_sample_rate=SENTRY_TRACES_SAMPLE_RATE,
        send_default_pii=False,
        # Don't capture 4xx client errors as Sentry events
        before_send=lambda event, hint: (
            None
            if (hint.get("exc_info") and
                isinstance(hint["exc_info"][1], HTTPException) and
                (hint["exc_info"][1].status_code or 500) < 500)
            else event
        ),
    )
    logger.info("Sentry initialised (env=%s)", SENTRY_ENVIRONMENT)
else:
    logger.info("SENTRY_DSN not set – error tracking disabled")

_start_time = time.monotonic()

limiter = Limiter(key_func=get_remote_address)
scheduler = PipelineScheduler()


# ---------------------------------------------------------------------------
# Lifespan: startup / shutdown
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(application: FastAPI):
    """Initialise shared clients and the scheduler on startup, close on shutdown."""
    for name, url in (("FLAUNCH_API_BASE", FLAUNCH_API_BASE), ("BASE_RPC_ENDPOINT", BASE_RPC_ENDPOINT)):
        if not url.startswith("http"):
            logger.error("%s is not a valid URL: %s", name, url)
            raise RuntimeError(f"Invalid {name} – must be an HTTP(S) URL")

    logger.info("Starting up – initialising clients …")
    await init_clients()
    if SCHEDULER_ENABLED:
        scheduler.start()
    else:
        logger.info("SCHEDULER_ENABLED=false – runs only via /api/network/trigger")
    yield
    logger.info("Shutting down – stopping scheduler and closing clients …")
    await scheduler.stop()
    await close_clients()


app = FastAPI(
    title="Agent Network API",
    description="Scored snapshot of agent tokens on Base, their trades and cross holdings.",
    version="1.0.0",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["Content-Type", "Accept", "Authorization"],
)


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Attach a unique request ID to every request for tracing."""

    async def dispatch(self, request: Request, call_next):
        rid = generate_request_id()
        token = correlation_id_ctx.set(rid)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            correlation_id_ctx.reset(token)
        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = rid
        logger.info(
            "%s %s -> %s (%.1f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )
        return response


app.add_middleware(RequestIdMiddleware)


def _require_admin(authorization: Optional[str]) -> None:
    if not ADMIN_TOKEN:
        raise HTTPException(status_code=403, detail="Goal updates are disabled (ADMIN_TOKEN not set)")
    expected = f"Bearer {ADMIN_TOKEN}"
    if not authorization or not secrets.compare_digest(authorization, expected):
        raise HTTPException(status_code=401, detail="Invalid or missing admin token")


# ------------------------------------------------------------------
# Endpoints
# ------------------------------------------------------------------


@app.get("/health", tags=["system"])
async def health() -> dict:
    """Health check including uptime and the last pipeline run."""
    last = scheduler.last_report
    return {
        "status": "ok",
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
        "store": CACHE_BACKEND,
        "pipeline": {
            "running": scheduler.is_running,
            "last_run": last.model_dump() if last is not None else None,
        },
    }


@app.get("/api/network", tags=["network"])
@limiter.limit(RATE_LIMIT_READ)
async def get_network(request: Request) -> Response:
    """Return the published snapshot exactly as stored."""
    raw = await get_store().load_raw()
    if raw is None:
        raise HTTPException(status_code=503, detail="No data yet – pipeline has not run")
    return Response(content=raw, media_type="application/json")


@app.get("/api/network/swaps", tags=["network"])
@limiter.limit(RATE_LIMIT_READ)
async def get_swaps(
    request: Request,
    since: int = Query(0, ge=0, description="Unix milliseconds; 0 returns every swap"),
) -> dict:
    """Swaps newer than *since*, for incremental polling."""
    result = await get_store().swaps_since(since)
    if result is None:
        raise HTTPException(status_code=503, detail="No data yet")
    swaps, timestamp = result
    return {
        "swaps": [s.model_dump(by_alias=True) for s in swaps],
        "timestamp": timestamp,
    }


@app.post("/api/network/trigger", status_code=202, tags=["network"])
@limiter.limit(RATE_LIMIT_TRIGGER)
async def trigger_pipeline(request: Request) -> dict:
    """Start a pipeline run now unless one is already in flight."""
    started = scheduler.trigger()
    return {"status": "Pipeline triggered" if started else "Pipeline already running"}


@app.put("/api/network/goal", tags=["goal"])
@limiter.limit(RATE_LIMIT_READ)
async def put_goal(
    request: Request,
    goal: NetworkGoal,
    authorization: Optional[str] = Header(None),
) -> dict:
    """Set the goal the next pipeline run scores against."""
    _require_admin(authorization)
    try:
        await get_store().set_goal(goal)
    except Exception as exc:
        logger.exception("Failed to store goal %s", goal.id)
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    logger.info("Network goal set: %s (metric=%s, weight=%.2f)", goal.id, goal.metric, goal.weight)
    return {"goal": goal.model_dump(by_alias=True)}


@app.delete("/api/network/goal", tags=["goal"])
@limiter.limit(RATE_LIMIT_READ)
async def delete_goal(
    request: Request,
    authorization: Optional[str] = Header(None),
) -> dict:
    """Clear the goal; the next run scores on base pillars only."""
    _require_admin(authorization)
    try:
        await get_store().clear_goal()
    except Exception as exc:
        logger.exception("Failed to clear goal")
        raise HTTPException(status_code=500, detail="Internal server error") from exc
    logger.info("Network goal cleared")
    return {"goal": None}
