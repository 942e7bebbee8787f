"""Console client: ``weather-relay-client <city>``.

Prints each weather update pushed by the relay until the connection is
closed, rejected, or the reconnector gives up.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys

from weather_relay.api.schemas import WeatherData
from weather_relay.client.reconnector import ClientReconnector, ClientState
from weather_relay.config.settings import get_settings
from weather_relay.logging.logger import get_logger

logger = logging.getLogger(__name__)

ICON_URL = "https://openweathermap.org/img/wn/{icon}@2x.png"


def render_weather(data: WeatherData) -> str:
    """Format one update the way the dashboard card shows it."""
    updated = data.timestamp.astimezone().strftime("%H:%M:%S")
    return "\n".join(
        [
            data.location,
            f"  {data.temp:g}°C, {data.description}",
            f"  Humidity: {data.humidity:g}%",
            f"  Updated: {updated}",
            f"  Icon: {ICON_URL.format(icon=data.icon)}",
        ]
    )


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    settings = get_settings()
    parser = argparse.ArgumentParser(description="Stream live weather for a city.")
    parser.add_argument("location", help="City name, e.g. London")
    parser.add_argument("--url", default=settings.CLIENT_WS_URL, help="Relay WebSocket URL")
    return parser.parse_args(argv)


async def _stream(location: str, url: str) -> int:
    settings = get_settings()
    failed = False

    def on_error(message: str) -> None:
        nonlocal failed
        failed = True
        print(f"Error: {message}", file=sys.stderr)

    def on_status(state: ClientState, message: str) -> None:
        if message:
            print(f"[{state.value}] {message}", file=sys.stderr)

    reconnector = ClientReconnector(
        url,
        on_weather=lambda data: print(render_weather(data), flush=True),
        on_error=on_error,
        on_status=on_status,
        ceiling=settings.CLIENT_MAX_RECONNECT_ATTEMPTS,
        backoff=settings.CLIENT_RECONNECT_BACKOFF_SECONDS,
        timeout=settings.CLIENT_CONNECT_TIMEOUT_SECONDS,
        heartbeat_interval=settings.CLIENT_HEARTBEAT_SECONDS,
    )

    loop = asyncio.get_running_loop()
    handled = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(reconnector.disconnect()))
            handled.append(sig)
        except (NotImplementedError, RuntimeError):
            # no signal support on Windows loops or outside the main thread
            pass

    try:
        if not await reconnector.connect(location):
            return 2
        await reconnector.wait()
    finally:
        for sig in handled:
            loop.remove_signal_handler(sig)
    if reconnector.state is ClientState.GIVEN_UP or failed:
        return 1
    return 0


def main(argv: list[str] | None = None) -> None:
    """Parse arguments and stream until the connection ends."""
    get_logger("weather_relay")
    args = _parse_args(argv)
    try:
        code = asyncio.run(_stream(args.location, args.url))
    except KeyboardInterrupt:
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    main()
