"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from weather_relay.api.deps import get_registry
from weather_relay.api.schemas import HealthResponse
from weather_relay.streaming.registry import ConnectionRegistry

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
def health_check(registry: ConnectionRegistry = Depends(get_registry)):
    return HealthResponse(
        status="ok",
        message="Service is healthy",
        timestamp=datetime.now(timezone.utc),
        connections=len(registry),
    )
