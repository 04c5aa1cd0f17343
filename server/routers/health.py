"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (can the app reach its game store?)
- /metrics - Game counts by status for monitoring
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response

from services.game_manager import get_game_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health")
async def health_check():
    """
    Basic liveness check.

    Always 200 while the process is alive.
    """
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check(response: Response):
    """
    Readiness check.

    Pings the game store; 503 if it can't be reached.
    """
    store = get_game_manager().store
    try:
        healthy = await store.ping()
        check = {"status": "ok" if healthy else "error"}
    except Exception as e:
        logger.warning(f"Game store health check failed: {e}")
        healthy = False
        check = {"status": "error", "message": str(e)}

    response.status_code = 200 if healthy else 503
    return {
        "status": "ok" if healthy else "degraded",
        "checks": {"store": {"backend": type(store).__name__, **check}},
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/metrics")
async def metrics():
    """Number of stored games per status."""
    metrics_data = {"timestamp": datetime.now(timezone.utc).isoformat()}
    try:
        games = await get_game_manager().store.count_by_status()
        metrics_data["games"] = games
        metrics_data["total_games"] = sum(games.values())
    except Exception as e:
        logger.warning(f"Failed to collect game metrics: {e}")
    return metrics_data
