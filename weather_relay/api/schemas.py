"""Pydantic models for the HTTP responses and the WebSocket wire format."""

from __future__ import annotations

from datetime import datetime
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, TypeAdapter

# ---------------------------------------------------------------------------
# Weather results
# ---------------------------------------------------------------------------


class WeatherData(BaseModel):
    model_config = ConfigDict(frozen=True)

    location: str
    temp: float
    humidity: float
    description: str
    icon: str
    timestamp: datetime


class WeatherSuccess(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: Literal[True] = True
    data: WeatherData


class WeatherFailure(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: Literal[False] = False
    message: str


WeatherResult = Union[WeatherSuccess, WeatherFailure]

_result_adapter: TypeAdapter[WeatherResult] = TypeAdapter(WeatherResult)


def parse_weather_result(payload: str | bytes | dict) -> WeatherResult:
    """Validate a wire payload into a ``WeatherSuccess`` or ``WeatherFailure``.

    Raises ``pydantic.ValidationError`` for anything else.
    """
    if isinstance(payload, dict):
        return _result_adapter.validate_python(payload)
    return _result_adapter.validate_json(payload)


# ---------------------------------------------------------------------------
# Health
# ---------------------------------------------------------------------------


class HealthResponse(BaseModel):
    status: str
    message: str
    timestamp: datetime
    connections: int
