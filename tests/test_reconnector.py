"""Tests for weather_relay/client — reconnecting WebSocket client and console rendering."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
from websockets.datastructures import Headers
from websockets.exceptions import ConnectionClosedError, ConnectionClosedOK, InvalidStatus
from websockets.frames import Close
from websockets.http11 import Response

from tests.fakes import make_success
from weather_relay.api.schemas import WeatherData, WeatherFailure
from weather_relay.client import cli
from weather_relay.client.cli import render_weather
from weather_relay.client.reconnector import (
    EMPTY_LOCATION_MESSAGE,
    GIVEN_UP_MESSAGE,
    PARSE_ERROR_MESSAGE,
    TIMEOUT_MESSAGE,
    ClientReconnector,
    ClientState,
    build_url,
)

URL = "ws://relay.test/weather"


def _closed(code: int) -> Exception:
    if code == 1000:
        return ConnectionClosedOK(Close(1000, ""), None)
    if code == 1006:
        # no close frame received
        return ConnectionClosedError(None, None)
    return ConnectionClosedError(Close(code, "closed"), None)


class FakeServerConnection:
    """Client-side connection double fed from a queue of frames and close events."""

    def __init__(self, *frames, close_code: int | None = None) -> None:
        self.incoming: asyncio.Queue = asyncio.Queue()
        for frame in frames:
            self.incoming.put_nowait(frame)
        if close_code is not None:
            self.incoming.put_nowait(_closed(close_code))
        self.sent: list[str] = []
        self.closed_with: int | None = None

    async def recv(self):
        item = await self.incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def send(self, message: str) -> None:
        if self.closed_with is not None:
            raise _closed(1000)
        self.sent.append(message)

    async def close(self, code: int = 1000, reason: str = "") -> None:
        self.closed_with = code
        self.incoming.put_nowait(_closed(code))


class Connector:
    """Plays back one outcome per connection attempt; the last one repeats."""

    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.urls: list[str] = []
        self.times: list[float] = []

    async def __call__(self, url: str, **kwargs):
        self.urls.append(url)
        self.times.append(asyncio.get_running_loop().time())
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if outcome == "hang":
            await asyncio.sleep(3600)
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class Recorder:
    def __init__(self) -> None:
        self.weather: list[WeatherData] = []
        self.errors: list[str] = []
        self.statuses: list[tuple[ClientState, str]] = []

    def reconnector(self, connector, **kwargs) -> ClientReconnector:
        kwargs.setdefault("backoff", 0.01)
        kwargs.setdefault("timeout", 1.0)
        return ClientReconnector(
            URL,
            on_weather=self.weather.append,
            on_error=self.errors.append,
            on_status=lambda state, message: self.statuses.append((state, message)),
            connector=connector,
            **kwargs,
        )


async def _until(predicate, timeout: float = 1.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# Connect request validation
# ---------------------------------------------------------------------------


class TestConnectValidation:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("location", ["", "   ", None])
    async def test_blank_location_makes_no_network_call(self, location):
        rec = Recorder()
        connector = Connector(FakeServerConnection())
        client = rec.reconnector(connector)

        assert await client.connect(location) is False

        assert rec.errors == [EMPTY_LOCATION_MESSAGE]
        assert connector.urls == []
        assert client.state is ClientState.IDLE

    def test_build_url_encodes_location(self):
        assert build_url(URL, "New York") == f"{URL}?location=New+York"
        assert build_url(f"{URL}?v=1", "Oslo") == f"{URL}?v=1&location=Oslo"


# ---------------------------------------------------------------------------
# Close classification
# ---------------------------------------------------------------------------


class TestCloseCodes:
    @pytest.mark.asyncio
    async def test_normal_close_does_not_retry(self):
        rec = Recorder()
        connector = Connector(FakeServerConnection(close_code=1000))
        client = rec.reconnector(connector)

        await client.connect("Paris")
        await client.wait()

        assert len(connector.urls) == 1
        assert rec.errors == []
        assert client.state is ClientState.CLOSED
        assert client.reconnect.attempt_count == 0

    @pytest.mark.asyncio
    async def test_policy_close_reports_location(self):
        rec = Recorder()
        connector = Connector(FakeServerConnection(close_code=1008))
        client = rec.reconnector(connector)

        await client.connect("London")
        await client.wait()

        assert len(connector.urls) == 1
        assert rec.errors == ["Weather data not available for London"]
        assert client.reconnect.attempt_count == 0
        assert client.state is ClientState.CLOSED

    @pytest.mark.asyncio
    async def test_abnormal_close_retries_up_to_ceiling(self):
        rec = Recorder()
        connector = Connector(
            FakeServerConnection(close_code=1006),
            ConnectionRefusedError("refused"),
        )
        client = rec.reconnector(connector, ceiling=3, backoff=0.02)

        await client.connect("Paris")
        await client.wait()

        assert len(connector.urls) == 4  # first connection + 3 retries
        assert all(url.endswith("location=Paris") for url in connector.urls)
        gaps = [b - a for a, b in zip(connector.times, connector.times[1:])]
        assert all(gap >= 0.019 for gap in gaps)
        assert client.state is ClientState.GIVEN_UP
        assert rec.errors[-1] == GIVEN_UP_MESSAGE
        reconnecting = [msg for state, msg in rec.statuses if msg.startswith("Reconnecting")]
        assert reconnecting == ["Reconnecting... (1/3)", "Reconnecting... (2/3)", "Reconnecting... (3/3)"]

    @pytest.mark.asyncio
    async def test_first_result_resets_attempts(self):
        rec = Recorder()
        connector = Connector(
            ConnectionRefusedError("refused"),
            FakeServerConnection(make_success("Paris").model_dump_json(), close_code=1000),
        )
        client = rec.reconnector(connector)

        await client.connect("Paris")
        await client.wait()

        assert len(connector.urls) == 2
        assert client.reconnect.attempt_count == 0
        assert client.state is ClientState.CLOSED

    @pytest.mark.asyncio
    async def test_open_then_dropped_still_gives_up(self):
        """Connections that open but drop before any result use up the retry budget."""
        rec = Recorder()
        connector = Connector(*[FakeServerConnection(close_code=1006) for _ in range(5)])
        client = rec.reconnector(connector, ceiling=3, backoff=0.001)

        await client.connect("Paris")
        await asyncio.wait_for(client.wait(), timeout=1.0)

        assert len(connector.urls) == 4
        assert client.state is ClientState.GIVEN_UP
        assert rec.errors == [GIVEN_UP_MESSAGE]

    @pytest.mark.asyncio
    async def test_open_without_result_keeps_count(self):
        rec = Recorder()
        connector = Connector(
            ConnectionRefusedError("refused"),
            FakeServerConnection(close_code=1000),
        )
        client = rec.reconnector(connector)

        await client.connect("Paris")
        await client.wait()

        assert len(connector.urls) == 2
        assert client.reconnect.attempt_count == 1

    @pytest.mark.asyncio
    async def test_handshake_timeout(self):
        rec = Recorder()
        client = rec.reconnector(Connector("hang"), timeout=0.02, ceiling=0)

        await client.connect("Paris")
        await client.wait()

        assert rec.errors == [TIMEOUT_MESSAGE, GIVEN_UP_MESSAGE]
        assert client.state is ClientState.GIVEN_UP

    @pytest.mark.asyncio
    async def test_rejected_handshake_is_policy(self):
        rec = Recorder()
        rejected = InvalidStatus(Response(400, "Bad Request", Headers(), b""))
        connector = Connector(rejected)
        client = rec.reconnector(connector)

        await client.connect("X1")
        await client.wait()

        assert len(connector.urls) == 1
        assert rec.errors == ["Weather data not available for X1"]


# ---------------------------------------------------------------------------
# Messages while open
# ---------------------------------------------------------------------------


class TestMessages:
    @pytest.mark.asyncio
    async def test_weather_round_trip(self):
        """A server-serialised result reaches on_weather with every field intact."""
        pushed = make_success("Paris", temp=17.25)
        rec = Recorder()
        server = FakeServerConnection(pushed.model_dump_json(), close_code=1000)
        client = rec.reconnector(Connector(server))

        await client.connect("Paris")
        await client.wait()

        assert rec.weather == [pushed.data]
        assert rec.weather[0].timestamp.tzinfo is not None

    @pytest.mark.asyncio
    async def test_failure_message_surfaces(self):
        rec = Recorder()
        server = FakeServerConnection(
            WeatherFailure(message="city not found").model_dump_json(), close_code=1000
        )
        client = rec.reconnector(Connector(server))

        await client.connect("Atlantis")
        await client.wait()

        assert rec.errors == ["city not found"]

    @pytest.mark.asyncio
    async def test_parse_error_does_not_reconnect(self):
        rec = Recorder()
        server = FakeServerConnection("not json", json.dumps({"foo": 1}))
        connector = Connector(server)
        client = rec.reconnector(connector)

        await client.connect("Paris")
        await _until(lambda: len(rec.errors) == 2)

        assert rec.errors == [PARSE_ERROR_MESSAGE, PARSE_ERROR_MESSAGE]
        assert client.state is ClientState.OPEN
        assert len(connector.urls) == 1
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_server_ping_is_answered(self):
        rec = Recorder()
        server = FakeServerConnection(json.dumps({"type": "ping"}))
        client = rec.reconnector(Connector(server))

        await client.connect("Paris")
        await _until(lambda: server.sent)

        assert json.loads(server.sent[0]) == {"type": "pong"}
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_heartbeat_while_open(self):
        rec = Recorder()
        server = FakeServerConnection()
        client = rec.reconnector(Connector(server), heartbeat_interval=0.01)

        await client.connect("Paris")
        await _until(lambda: len(server.sent) >= 2)

        assert set(server.sent) == {"ping"}
        await client.disconnect()
        count = len(server.sent)
        await asyncio.sleep(0.03)
        assert len(server.sent) == count


# ---------------------------------------------------------------------------
# User-initiated transitions
# ---------------------------------------------------------------------------


class TestUserActions:
    @pytest.mark.asyncio
    async def test_new_location_replaces_connection(self):
        rec = Recorder()
        first, second = FakeServerConnection(), FakeServerConnection()
        connector = Connector(first, second)
        client = rec.reconnector(connector)

        await client.connect("Paris")
        await _until(lambda: client.state is ClientState.OPEN)
        await client.connect("Rome")
        await _until(lambda: client.state is ClientState.OPEN)

        assert first.closed_with == 1000
        assert connector.urls[-1].endswith("location=Rome")
        assert client.location == "Rome"
        assert client.reconnect.attempt_count == 0
        assert rec.errors == []
        await client.disconnect()

    @pytest.mark.asyncio
    async def test_disconnect_is_clean(self):
        rec = Recorder()
        server = FakeServerConnection()
        connector = Connector(server)
        client = rec.reconnector(connector)

        await client.connect("Paris")
        await _until(lambda: client.state is ClientState.OPEN)
        await client.disconnect()
        await asyncio.sleep(0.03)

        assert server.closed_with == 1000
        assert client.state is ClientState.CLOSED
        assert len(connector.urls) == 1
        assert rec.errors == []

    @pytest.mark.asyncio
    async def test_connect_after_giving_up_starts_fresh(self):
        rec = Recorder()
        connector = Connector(ConnectionRefusedError("refused"))
        client = rec.reconnector(connector, ceiling=1)

        await client.connect("Paris")
        await client.wait()
        assert client.state is ClientState.GIVEN_UP

        connector.outcomes = [FakeServerConnection(close_code=1000)]
        await client.connect("Paris")
        await client.wait()

        assert client.state is ClientState.CLOSED
        assert client.reconnect.attempt_count == 0


# ---------------------------------------------------------------------------
# Console rendering
# ---------------------------------------------------------------------------


class TestRenderWeather:
    def test_render_includes_fields(self):
        data = WeatherData(
            location="Paris",
            temp=18.5,
            humidity=64,
            description="scattered clouds",
            icon="03d",
            timestamp=datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
        )
        text = render_weather(data)
        assert text.splitlines()[0] == "Paris"
        assert "18.5°C, scattered clouds" in text
        assert "Humidity: 64%" in text
        assert "https://openweathermap.org/img/wn/03d@2x.png" in text


class TestConsoleClient:
    @pytest.mark.asyncio
    async def test_blank_location_exit_code(self):
        assert await cli._stream("  ", URL) == 2

    @pytest.mark.asyncio
    async def test_given_up_exit_code(self):
        class GivesUp:
            def __init__(self, url, **kwargs):
                self.state = ClientState.IDLE

            async def connect(self, location):
                return True

            async def wait(self):
                self.state = ClientState.GIVEN_UP

            async def disconnect(self):
                pass

        with patch.object(cli, "ClientReconnector", GivesUp):
            assert await cli._stream("Paris", URL) == 1
