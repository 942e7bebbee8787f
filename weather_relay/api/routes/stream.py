"""WebSocket endpoint streaming weather updates for one location."""

from __future__ import annotations

import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from weather_relay.logging.logger import connection_id_ctx
from weather_relay.streaming.connection import Connection, ConnectionState
from weather_relay.streaming.scheduler import PushScheduler
from weather_relay.streaming.upgrade import Rejection, admit, reject

logger = logging.getLogger(__name__)

router = APIRouter(tags=["stream"])


# Matches every path so the configured WS_PATH (or the bare root) is decided
# by the upgrade gate rather than by routing.
@router.websocket("/{path:path}")
async def weather_stream(websocket: WebSocket, path: str):
    settings = websocket.app.state.settings
    scheduler: PushScheduler = websocket.app.state.scheduler

    decision = admit(
        websocket.url.path,
        websocket.query_params,
        websocket.headers,
        expected_path=settings.WS_PATH,
    )
    if isinstance(decision, Rejection):
        await reject(websocket, decision)
        return

    await websocket.accept()
    conn = Connection(websocket)
    with connection_id_ctx(conn.id):
        logger.info("New WebSocket connection for %s", decision.location)
        scheduler.subscribe(conn, decision.location)
        try:
            while conn.state is not ConnectionState.CLOSED:
                message = await websocket.receive()
                if message["type"] == "websocket.disconnect":
                    raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
                text = message.get("text")
                if text is None:
                    # binary frames carry nothing the relay understands
                    logger.debug("Ignoring binary frame from client")
                    continue
                conn.handle_message(text)
        except WebSocketDisconnect as exc:
            logger.info("WebSocket closed for %s (code=%s)", decision.location, exc.code)
        finally:
            scheduler.unsubscribe(conn)
