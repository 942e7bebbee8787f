"""Admission checks for inbound WebSocket upgrade requests."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum

from fastapi import WebSocket
from fastapi.responses import JSONResponse

from weather_relay.streaming.connection import CLOSE_POLICY_VIOLATION

logger = logging.getLogger(__name__)

MIN_LOCATION_LENGTH = 2

_DENIAL_EXTENSION = "websocket.http.response"


class RejectionReason(str, Enum):
    NOT_FOUND = "not_found"
    BAD_REQUEST = "bad_request"
    UPGRADE_REQUIRED = "upgrade_required"


_STATUS_CODES = {
    RejectionReason.NOT_FOUND: 404,
    RejectionReason.BAD_REQUEST: 400,
    RejectionReason.UPGRADE_REQUIRED: 426,
}


@dataclass(frozen=True)
class Admission:
    location: str


@dataclass(frozen=True)
class Rejection:
    reason: RejectionReason
    message: str

    @property
    def status_code(self) -> int:
        return _STATUS_CODES[self.reason]


def normalise_location(raw: str | None) -> str | None:
    """Trim ``raw`` and return it if long enough to be a city name."""
    if raw is None:
        return None
    location = raw.strip()
    if len(location) < MIN_LOCATION_LENGTH:
        return None
    return location


def _declares_websocket(headers: Mapping[str, str]) -> bool:
    if headers.get("upgrade", "").lower() == "websocket":
        return True
    return bool(headers.get("sec-websocket-key"))


def admit(
    path: str,
    query_params: Mapping[str, str],
    headers: Mapping[str, str],
    expected_path: str = "",
) -> Admission | Rejection:
    """Validate an upgrade request.

    Checks run in order: path (only when ``expected_path`` is set), then the
    ``location`` query parameter, then the upgrade headers. ``headers`` must be
    a mapping with lower-case keys (Starlette ``Headers`` qualifies).

    Starlette only routes websocket-scope requests here, so a live server
    never produces ``UPGRADE_REQUIRED``; only direct calls can.
    """
    if expected_path and path.rstrip("/") != expected_path:
        logger.info("Invalid WebSocket path: %s", path)
        return Rejection(RejectionReason.NOT_FOUND, f"Unknown WebSocket path: {path}")

    location = normalise_location(query_params.get("location"))
    if location is None:
        logger.info("Missing or invalid location parameter in WebSocket request")
        return Rejection(
            RejectionReason.BAD_REQUEST,
            f"location must be at least {MIN_LOCATION_LENGTH} characters",
        )

    if not _declares_websocket(headers):
        logger.info("Invalid upgrade header")
        return Rejection(RejectionReason.UPGRADE_REQUIRED, "WebSocket upgrade required")

    return Admission(location=location)


async def reject(websocket: WebSocket, rejection: Rejection) -> None:
    """Refuse a not-yet-accepted WebSocket with the rejection's HTTP status.

    Falls back to a pre-accept close (policy violation) when the server does
    not support denial responses.
    """
    if _DENIAL_EXTENSION in (websocket.scope.get("extensions") or {}):
        response = JSONResponse(
            status_code=rejection.status_code,
            content={"success": False, "message": rejection.message},
        )
        await websocket.send_denial_response(response)
    else:
        await websocket.close(code=CLOSE_POLICY_VIOLATION, reason=rejection.message)
