"""
Health Check Endpoint
Provides health status for Docker health checks and monitoring
"""
from datetime import datetime
from typing import Any, Dict

from fastapi import APIRouter, Request, status

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check(request: Request) -> Dict[str, Any]:
    """
    Health check endpoint for Docker and monitoring systems.

    Returns:
        Status, timestamp and a short component summary
    """
    health: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat() + "Z",
        "service": "callshield",
    }

    state = request.app.state
    if hasattr(state, "engine"):
        health["providers_enabled"] = state.aggregator.enabled_providers()
        health["strategy"] = state.aggregator.strategy.value
        health["cache"] = state.cache.get_stats()["tiers"]
        health["sessions"] = state.sessions.get_statistics()["total_sessions"]
    else:
        health["status"] = "starting"

    return health
