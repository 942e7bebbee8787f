"""FastAPI application — main entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from weather_relay.api.routes import health, stream, weather
from weather_relay.config.settings import Settings, get_settings
from weather_relay.providers.openweather import WeatherProvider
from weather_relay.streaming.registry import ConnectionRegistry
from weather_relay.streaming.scheduler import PushScheduler, SupportsFetch

logger = logging.getLogger(__name__)


def create_app(
    provider: SupportsFetch | None = None,
    settings: Settings | None = None,
) -> FastAPI:
    """Build the application.

    ``provider`` replaces the OpenWeatherMap client (tests pass a fake). When
    it is omitted the API key is required and startup fails without it.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup: build registry, provider and scheduler; Shutdown: drain them."""
        cfg = settings or get_settings()
        owned_provider: WeatherProvider | None = None
        active_provider = provider
        if active_provider is None:
            try:
                cfg.require_api_key()
            except RuntimeError:
                logger.critical("FATAL ERROR: OPENWEATHER_API_KEY not set!")
                raise
            logger.info("Weather API key verified")
            owned_provider = active_provider = WeatherProvider(settings=cfg)

        registry = ConnectionRegistry()
        scheduler = PushScheduler(registry, active_provider, interval=cfg.BROADCAST_INTERVAL_SECONDS)
        app.state.settings = cfg
        app.state.provider = active_provider
        app.state.registry = registry
        app.state.scheduler = scheduler
        scheduler.start()
        logger.info("Starting weather relay (WebSocket path: %s)", cfg.WS_PATH or "/")
        try:
            yield
        finally:
            logger.info("Shutting down weather relay")
            await scheduler.stop()
            await scheduler.drain()
            if owned_provider is not None:
                await owned_provider.aclose()

    cfg = settings or get_settings()
    app = FastAPI(
        title="Weather Relay",
        description="Live weather updates over HTTP and WebSocket",
        version="0.1.0",
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=cfg.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Routers
    app.include_router(health.router)
    app.include_router(weather.router)
    app.include_router(stream.router)

    # Global exception handler
    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})

    return app


app = create_app()
