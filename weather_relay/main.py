"""Server entry point: ``weather-relay``."""

from __future__ import annotations

import sys

from weather_relay.config.settings import get_settings
from weather_relay.logging.logger import get_logger

logger = get_logger("weather_relay")


def main() -> None:
    """Validate configuration and serve the API with uvicorn."""
    settings = get_settings()
    try:
        settings.require_api_key()
    except RuntimeError:
        logger.critical("FATAL ERROR: OPENWEATHER_API_KEY not set!")
        sys.exit(1)
    logger.info("Weather API key verified")

    import uvicorn

    ws_path = settings.WS_PATH or "/"
    logger.info("Server running on port %d", settings.API_PORT)
    logger.info("WebSocket endpoint: ws://localhost:%d%s?location=London", settings.API_PORT, ws_path)
    logger.info("HTTP weather endpoint: http://localhost:%d/weather?location=London", settings.API_PORT)
    logger.info("Health check: http://localhost:%d/health", settings.API_PORT)

    uvicorn.run(
        "weather_relay.api.app:app",
        host=settings.API_HOST,
        port=settings.API_PORT,
        reload=settings.DEBUG,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
