"""Shared fixtures."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from tests.fakes import FakeProvider
from weather_relay.api.app import create_app
from weather_relay.config.settings import Settings


@pytest.fixture()
def settings():
    return Settings(
        _env_file=None,
        OPENWEATHER_API_KEY="test-key",
        BROADCAST_INTERVAL_SECONDS=3600,
    )


@pytest.fixture()
def provider():
    return FakeProvider()


@pytest.fixture()
def client(provider, settings):
    """TestClient over an app wired to the fake provider."""
    app = create_app(provider=provider, settings=settings)
    with TestClient(app) as c:
        yield c
