"""Periodic weather push and liveness checking for subscribed connections.

Each broadcast tick walks a snapshot of the registry. Connections that did
not answer the previous ping are terminated and dropped; the rest get a new
ping and a fresh fetch for their location. Fetches run concurrently and
every completion re-checks its own connection before sending, since a
client may disconnect while the upstream call is in flight.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from weather_relay.api.schemas import WeatherResult
from weather_relay.streaming.connection import (
    CLOSE_GOING_AWAY,
    PING_FRAME,
    Connection,
    TransportError,
)
from weather_relay.streaming.registry import ConnectionRegistry

logger = logging.getLogger(__name__)


class SupportsFetch(Protocol):
    async def fetch(self, location: str) -> WeatherResult: ...


class PushScheduler:
    """Drives the broadcast and liveness ticks over a ``ConnectionRegistry``."""

    def __init__(
        self,
        registry: ConnectionRegistry,
        provider: SupportsFetch,
        interval: float = 120.0,
    ) -> None:
        self.registry = registry
        self.provider = provider
        self.interval = interval
        self._task: asyncio.Task | None = None
        self._pending: set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def subscribe(self, conn: Connection, location: str) -> asyncio.Task:
        """Register ``conn`` and push one result immediately.

        Returns the task performing the initial push.
        """
        self.registry.add(conn, location)
        task = asyncio.create_task(self.push(conn, location))
        self._pending.add(task)
        task.add_done_callback(self._push_done)
        return task

    def _push_done(self, task: asyncio.Task) -> None:
        self._pending.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Initial weather push failed", exc_info=exc)

    def unsubscribe(self, conn: Connection) -> None:
        self.registry.remove(conn)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def _send(self, conn: Connection, text: str) -> bool:
        try:
            await conn.send_text(text)
        except TransportError as exc:
            logger.warning("WebSocket send failed: %s", exc)
            self.registry.remove(conn)
            return False
        return True

    async def push(self, conn: Connection, location: str) -> None:
        """Fetch weather for ``location`` and send it if ``conn`` is still open."""
        result = await self.provider.fetch(location)
        if not conn.is_open:
            logger.debug("Connection %s closed during fetch for %s, dropping result", conn.id, location)
            return
        await self._send(conn, result.model_dump_json())

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    async def tick(self) -> None:
        """Run one liveness check and broadcast over the current connections."""
        refreshes = []
        for conn, location in self.registry.snapshot():
            if not conn.is_open:
                self.registry.remove(conn)
                continue
            if not conn.is_alive:
                logger.info("Connection %s for %s missed its pong, terminating", conn.id, location)
                await conn.terminate()
                self.registry.remove(conn)
                continue
            conn.is_alive = False
            if not await self._send(conn, PING_FRAME):
                continue
            refreshes.append(self.push(conn, location))

        results = await asyncio.gather(*refreshes, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("Weather push failed", exc_info=result)

    async def run(self) -> None:
        """Tick every ``interval`` seconds until cancelled."""
        logger.info("Push scheduler started (interval=%.1fs)", self.interval)
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.tick()
            except Exception:
                logger.error("Broadcast tick failed", exc_info=True)

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self.run())

    async def stop(self) -> None:
        """Cancel the tick loop and any in-flight initial pushes."""
        tasks = list(self._pending)
        if self._task is not None:
            tasks.append(self._task)
            self._task = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Push scheduler stopped")

    async def drain(self) -> None:
        """Close every registered connection and empty the registry."""
        for conn, _location in self.registry.snapshot():
            await conn.close(CLOSE_GOING_AWAY, "Server shutting down")
        self.registry.clear()
