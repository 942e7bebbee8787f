"""OpenWeatherMap current-weather client.

Every call is normalised into a ``WeatherResult``: callers never see an
exception from this module, only a ``WeatherFailure`` carrying the upstream
message (or a generic fallback).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from weather_relay.api.schemas import WeatherData, WeatherFailure, WeatherResult, WeatherSuccess
from weather_relay.config.settings import Settings, get_settings

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "Weather fetch failed"


class UpstreamFetchError(Exception):
    """Raised internally when the upstream call or its payload is unusable."""

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or FALLBACK_MESSAGE)
        self.upstream_message = message


class WeatherProvider:
    """Fetches current conditions for a city name from OpenWeatherMap."""

    def __init__(
        self,
        api_key: str | None = None,
        *,
        base_url: str | None = None,
        units: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
        settings: Settings | None = None,
    ) -> None:
        settings = settings or get_settings()
        self._api_key = api_key if api_key is not None else settings.require_api_key()
        self._base_url = (base_url or settings.OPENWEATHER_BASE_URL).rstrip("/")
        self._units = units or settings.OPENWEATHER_UNITS
        self._timeout = timeout if timeout is not None else settings.FETCH_TIMEOUT_SECONDS
        self._client = client or httpx.AsyncClient(timeout=self._timeout)
        self._owns_client = client is None

    async def fetch(self, location: str) -> WeatherResult:
        """Return the current weather for ``location``. Never raises."""
        logger.info("Fetching weather for %s", location)
        try:
            payload = await self._get(location)
            data = self._parse(payload)
        except UpstreamFetchError as exc:
            logger.warning("Weather fetch error for %s: %s", location, exc, exc_info=True)
            return WeatherFailure(message=exc.upstream_message or FALLBACK_MESSAGE)
        except Exception:
            logger.warning("Weather fetch error for %s", location, exc_info=True)
            return WeatherFailure(message=FALLBACK_MESSAGE)
        return WeatherSuccess(data=data)

    async def _get(self, location: str) -> dict[str, Any]:
        try:
            resp = await self._client.get(
                f"{self._base_url}/weather",
                params={"q": location, "appid": self._api_key, "units": self._units},
                timeout=self._timeout,
            )
        except httpx.HTTPError as exc:
            raise UpstreamFetchError() from exc

        try:
            body = resp.json()
        except ValueError:
            body = None

        if resp.is_error:
            message = body.get("message") if isinstance(body, dict) else None
            raise UpstreamFetchError(str(message) if message else None)
        if not isinstance(body, dict):
            raise UpstreamFetchError()
        return body

    @staticmethod
    def _parse(body: dict[str, Any]) -> WeatherData:
        try:
            main = body["main"]
            condition = body["weather"][0]
            return WeatherData(
                location=body["name"],
                temp=main["temp"],
                humidity=main["humidity"],
                description=condition["description"],
                icon=condition["icon"],
                timestamp=datetime.now(timezone.utc),
            )
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            message = body.get("message")
            raise UpstreamFetchError(str(message) if message else None) from exc

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()
