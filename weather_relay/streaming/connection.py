"""One accepted WebSocket, with lifecycle state and a liveness flag."""

from __future__ import annotations

import json
import logging
from enum import Enum

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from weather_relay.logging.logger import new_connection_id

logger = logging.getLogger(__name__)

PING_FRAME = json.dumps({"type": "ping"})

CLOSE_NORMAL = 1000
CLOSE_GOING_AWAY = 1001
CLOSE_POLICY_VIOLATION = 1008


class ConnectionState(str, Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class TransportError(Exception):
    """Sending on a connection that is closed or closing failed."""


def is_pong(text: str) -> bool:
    """Return True for a liveness reply: ``pong`` or ``{"type": "pong"}``."""
    if text.strip().lower() == "pong":
        return True
    try:
        message = json.loads(text)
    except ValueError:
        return False
    return isinstance(message, dict) and message.get("type") == "pong"


class Connection:
    """Wraps a Starlette ``WebSocket`` behind a text-frame transport."""

    def __init__(self, websocket: WebSocket, connection_id: str | None = None) -> None:
        self.websocket = websocket
        self.id = connection_id or new_connection_id()
        self.is_alive = True
        self._closing = False

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, state={self.state.value})"

    @property
    def state(self) -> ConnectionState:
        app_state = self.websocket.application_state
        client_state = self.websocket.client_state
        if WebSocketState.DISCONNECTED in (app_state, client_state):
            return ConnectionState.CLOSED
        if app_state == WebSocketState.CONNECTING:
            return ConnectionState.CONNECTING
        if self._closing:
            return ConnectionState.CLOSING
        return ConnectionState.OPEN

    @property
    def is_open(self) -> bool:
        return self.state is ConnectionState.OPEN

    async def send_text(self, text: str) -> None:
        if not self.is_open:
            raise TransportError(f"connection {self.id} is {self.state.value}")
        try:
            await self.websocket.send_text(text)
        except Exception as exc:
            raise TransportError(f"send failed on connection {self.id}: {exc}") from exc

    async def ping(self) -> None:
        await self.send_text(PING_FRAME)

    def handle_message(self, text: str) -> None:
        """Process an inbound frame. Only pongs have an effect."""
        if is_pong(text):
            self.is_alive = True
        else:
            logger.debug("Ignoring client message: %s", text[:100])

    async def close(self, code: int = CLOSE_NORMAL, reason: str = "") -> None:
        if self.state in (ConnectionState.CLOSING, ConnectionState.CLOSED):
            return
        self._closing = True
        try:
            await self.websocket.close(code=code, reason=reason)
        except Exception:
            # peer already gone
            logger.debug("Close on connection %s failed", self.id, exc_info=True)

    async def terminate(self) -> None:
        """Force-close a connection that failed its liveness check."""
        await self.close(CLOSE_GOING_AWAY, "Liveness check failed")
