"""Client-side connection state machine with bounded reconnects.

``ClientReconnector`` opens a WebSocket to the relay for one location and
keeps it alive:

- a connection attempt that is not accepted within ``timeout`` is abandoned;
- while open, a heartbeat ``"ping"`` text is sent every ``heartbeat_interval``
  and server ping frames are answered with a pong;
- an unexpected close is retried up to ``ceiling`` times, ``backoff`` seconds
  apart, after which the reconnector gives up until the next ``connect``;
- the retry count resets only once the server delivers a weather result, so
  a server that accepts and immediately drops every connection still runs
  out the budget;
- a normal close (1000) or a policy close (1008, location rejected) is final.

Every timer runs inside the single attempt task, so cancelling that task on
``connect``/``disconnect`` cancels all of them.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any
from urllib.parse import urlencode

from pydantic import ValidationError
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidStatus

from weather_relay.api.schemas import WeatherData, WeatherSuccess, parse_weather_result

logger = logging.getLogger(__name__)

CLOSE_NORMAL = 1000
CLOSE_ABNORMAL = 1006
CLOSE_POLICY_VIOLATION = 1008

HEARTBEAT_FRAME = "ping"
PONG_FRAME = json.dumps({"type": "pong"})

EMPTY_LOCATION_MESSAGE = "Please enter a city name"
TIMEOUT_MESSAGE = "Server not responding"
CONNECTION_ERROR_MESSAGE = "Connection error"
GIVEN_UP_MESSAGE = "Connection lost. Please reconnect."
PARSE_ERROR_MESSAGE = "Invalid server response"
FETCH_ERROR_MESSAGE = "Couldn't fetch weather"


def location_rejected_message(location: str) -> str:
    return f"Weather data not available for {location}"


class ClientState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    GIVEN_UP = "given_up"


@dataclass
class ReconnectState:
    attempt_count: int = 0
    ceiling: int = 3
    backoff: float = 3.0
    timeout: float = 5.0


def build_url(base_url: str, location: str) -> str:
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'location': location})}"


def _close_code(exc: ConnectionClosed) -> int:
    if exc.rcvd is not None:
        return exc.rcvd.code
    return CLOSE_ABNORMAL


class ClientReconnector:
    """Keeps one live weather subscription open on behalf of a user."""

    def __init__(
        self,
        url: str,
        *,
        on_weather: Callable[[WeatherData], Any] | None = None,
        on_error: Callable[[str], Any] | None = None,
        on_status: Callable[[ClientState, str], Any] | None = None,
        ceiling: int = 3,
        backoff: float = 3.0,
        timeout: float = 5.0,
        heartbeat_interval: float = 30.0,
        connector: Callable[..., Any] = ws_connect,
    ) -> None:
        self.url = url
        self.reconnect = ReconnectState(ceiling=ceiling, backoff=backoff, timeout=timeout)
        self.heartbeat_interval = heartbeat_interval
        self._on_weather = on_weather or (lambda data: logger.info("Weather update: %s", data))
        self._on_error = on_error or (lambda message: logger.error("%s", message))
        self._on_status = on_status or (lambda state, message: None)
        self._connector = connector
        self._state = ClientState.IDLE
        self._location: str | None = None
        self._task: asyncio.Task | None = None
        self._ws = None

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def location(self) -> str | None:
        return self._location

    def _set_state(self, state: ClientState, message: str = "") -> None:
        logger.debug("State: %s -> %s %s", self._state.value, state.value, message)
        self._state = state
        self._on_status(state, message)

    # ------------------------------------------------------------------
    # User actions
    # ------------------------------------------------------------------

    async def connect(self, location: str | None) -> bool:
        """Start streaming ``location``, replacing any current connection.

        Returns False (and reports an error) when the location is blank.
        """
        location = (location or "").strip()
        if not location:
            self._on_error(EMPTY_LOCATION_MESSAGE)
            return False

        await self._cancel()
        self.reconnect.attempt_count = 0
        self._location = location
        self._task = asyncio.create_task(self._run(location))
        return True

    async def disconnect(self) -> None:
        """Close the current connection normally and stop retrying."""
        await self._cancel()
        self.reconnect.attempt_count = 0
        if self._state is not ClientState.IDLE:
            self._set_state(ClientState.CLOSED, "Disconnected")

    async def wait(self) -> None:
        """Wait until the current connection sequence finishes."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _cancel(self) -> None:
        task, ws = self._task, self._ws
        self._task = None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        if ws is not None:
            self._set_state(ClientState.CLOSING, "New connection requested")
            try:
                await ws.close(CLOSE_NORMAL, "New connection requested")
            except Exception:
                logger.debug("Error closing previous connection", exc_info=True)
            self._ws = None

    # ------------------------------------------------------------------
    # Connection sequence
    # ------------------------------------------------------------------

    async def _run(self, location: str) -> None:
        while await self._attempt(location):
            self.reconnect.attempt_count += 1
            attempt, ceiling = self.reconnect.attempt_count, self.reconnect.ceiling
            logger.warning("Disconnected (attempt %d/%d)", attempt, ceiling)
            if attempt > ceiling:
                logger.error("Max reconnection attempts reached")
                self._set_state(ClientState.GIVEN_UP, GIVEN_UP_MESSAGE)
                self._on_error(GIVEN_UP_MESSAGE)
                return
            self._set_state(ClientState.CLOSED, f"Reconnecting... ({attempt}/{ceiling})")
            await asyncio.sleep(self.reconnect.backoff)

    async def _attempt(self, location: str) -> bool:
        """Run one connection to completion. Returns True if it should be retried."""
        self._set_state(ClientState.CONNECTING, f"Connecting to {location}...")
        url = build_url(self.url, location)
        try:
            ws = await asyncio.wait_for(
                self._connector(url, open_timeout=None, ping_interval=None),
                timeout=self.reconnect.timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("Connection timeout reached for %s", url)
            self._set_state(ClientState.CLOSED, "Connection error")
            self._on_error(TIMEOUT_MESSAGE)
            return True
        except InvalidStatus as exc:
            status = exc.response.status_code
            logger.warning("Handshake rejected with HTTP %d", status)
            self._set_state(ClientState.CLOSED, "Connection rejected")
            if status in (400, 403):
                self._on_error(location_rejected_message(location))
                return False
            if 400 <= status < 500:
                self._on_error(f"Server rejected the connection ({status})")
                return False
            self._on_error(CONNECTION_ERROR_MESSAGE)
            return True
        except (OSError, InvalidHandshake):
            logger.warning("Connection error for %s", url, exc_info=True)
            self._set_state(ClientState.CLOSED, "Connection error")
            self._on_error(CONNECTION_ERROR_MESSAGE)
            return True

        self._ws = ws
        self._set_state(ClientState.OPEN, f"Live data: {location}")
        heartbeat = asyncio.create_task(self._heartbeat(ws))
        try:
            code = await self._receive(ws)
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat
            self._ws = None

        logger.info("Connection closed: code=%d", code)
        self._set_state(ClientState.CLOSED, f"Closed ({code})")
        if code == CLOSE_POLICY_VIOLATION:
            self._on_error(location_rejected_message(location))
            return False
        return code != CLOSE_NORMAL

    async def _receive(self, ws) -> int:
        """Handle messages until the connection closes; returns the close code."""
        while True:
            try:
                raw = await ws.recv()
            except ConnectionClosed as exc:
                return _close_code(exc)
            await self._handle_message(ws, raw)

    async def _handle_message(self, ws, raw: str | bytes) -> None:
        try:
            payload = json.loads(raw)
        except ValueError:
            logger.error("Parse error, raw data: %r", raw)
            self._on_error(PARSE_ERROR_MESSAGE)
            return

        if isinstance(payload, dict) and payload.get("type") == "ping":
            with contextlib.suppress(ConnectionClosed):
                await ws.send(PONG_FRAME)
            return

        try:
            result = parse_weather_result(payload) if isinstance(payload, dict) else None
        except ValidationError:
            result = None
        if result is None:
            logger.error("Unexpected payload: %r", raw)
            self._on_error(PARSE_ERROR_MESSAGE)
            return
        # a server that answers with a result has proved the connection
        self.reconnect.attempt_count = 0
        if isinstance(result, WeatherSuccess):
            self._on_weather(result.data)
        else:
            logger.error("Server error: %s", result.message)
            self._on_error(result.message or FETCH_ERROR_MESSAGE)

    async def _heartbeat(self, ws) -> None:
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await ws.send(HEARTBEAT_FRAME)
            except ConnectionClosed:
                return
            logger.debug("Sent heartbeat ping")
