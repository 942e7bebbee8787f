"""HTTP weather lookup and the service index page."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import HTMLResponse, JSONResponse

from weather_relay.api.deps import get_provider
from weather_relay.streaming.scheduler import SupportsFetch

router = APIRouter(tags=["weather"])

_INDEX_HTML = """
<h1>Weather Relay Service</h1>
<p>Service is running properly</p>
<ul>
  <li><a href="/health">Health Check</a></li>
  <li><a href="/weather?location=London">Example Weather Request</a></li>
  <li>WebSocket endpoint: {ws_url}</li>
</ul>
"""


@router.get("/", response_class=HTMLResponse, include_in_schema=False)
def index(request: Request):
    ws_path = request.app.state.settings.WS_PATH or "/"
    scheme = "wss" if request.url.scheme == "https" else "ws"
    return _INDEX_HTML.format(ws_url=f"{scheme}://{request.url.netloc}{ws_path}?location=London")


@router.get("/weather")
async def get_weather(
    location: str | None = None,
    provider: SupportsFetch = Depends(get_provider),
):
    if location is None or not location.strip():
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": "Missing location parameter"},
        )
    result = await provider.fetch(location.strip())
    return result.model_dump(mode="json")
