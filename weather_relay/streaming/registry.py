"""
Connection Registry
Tracks which location each live WebSocket connection is subscribed to
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator

from weather_relay.streaming.connection import Connection

logger = logging.getLogger(__name__)


class ConnectionRegistry:
    """Owns the Connection -> location subscriptions for the running server.

    Iteration always works on a snapshot, so connections removed while a
    broadcast is in progress neither break the loop nor cause other entries
    to be skipped or visited twice.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[Connection, str] = {}

    def __len__(self) -> int:
        return len(self._subscriptions)

    def __contains__(self, conn: object) -> bool:
        return conn in self._subscriptions

    def __iter__(self) -> Iterator[tuple[Connection, str]]:
        return iter(self.snapshot())

    def add(self, conn: Connection, location: str) -> None:
        """Register ``conn`` for ``location``. Re-adding overwrites the location."""
        if conn in self._subscriptions:
            logger.warning(
                "Connection %s re-registered (%s -> %s)",
                conn.id,
                self._subscriptions[conn],
                location,
            )
        self._subscriptions[conn] = location
        logger.info(
            "Client subscribed to %s. Total connections: %d", location, len(self._subscriptions)
        )

    def remove(self, conn: Connection) -> None:
        """Unregister ``conn``. No-op if it is not registered."""
        location = self._subscriptions.pop(conn, None)
        if location is not None:
            logger.info(
                "Client unsubscribed from %s. Total connections: %d",
                location,
                len(self._subscriptions),
            )

    def location_of(self, conn: Connection) -> str | None:
        return self._subscriptions.get(conn)

    def snapshot(self) -> list[tuple[Connection, str]]:
        return list(self._subscriptions.items())

    def for_each(self, fn: Callable[[Connection, str], None]) -> None:
        for conn, location in self.snapshot():
            fn(conn, location)

    def clear(self) -> None:
        self._subscriptions.clear()
