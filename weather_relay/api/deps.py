"""FastAPI dependency injection helpers."""

from __future__ import annotations

from fastapi import Request

from weather_relay.streaming.registry import ConnectionRegistry
from weather_relay.streaming.scheduler import SupportsFetch


def get_provider(request: Request) -> SupportsFetch:
    """Return the weather provider created during application startup."""
    return request.app.state.provider


def get_registry(request: Request) -> ConnectionRegistry:
    return request.app.state.registry
