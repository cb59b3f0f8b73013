"""
Health Check Endpoint
Provides health status for Docker health checks and monitoring
"""
from fastapi import APIRouter, status
from datetime import datetime, timezone
from typing import Any, Dict

from consult_call.domain.services.call_manager import CallManager

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
async def health_check() -> Dict[str, Any]:
    """
    Health check endpoint for Docker and monitoring systems.

    Returns:
        Dict with status, timestamp and call manager state
    """
    health: Dict[str, Any] = {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "consult-call",
    }

    try:
        manager = await CallManager.get_instance()
        health["transport"] = manager.transport.name
        health["active_sessions"] = manager.get_active_session_count()
    except RuntimeError as e:
        health["call_manager"] = f"error: {str(e)}"

    return health


@router.get("/", status_code=status.HTTP_200_OK)
async def root() -> Dict[str, str]:
    """
    Root endpoint.

    Returns:
        Welcome message
    """
    return {
        "message": "Consultation Video Call API",
        "version": "1.0.0",
        "docs": "/docs"
    }
