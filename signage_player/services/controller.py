import logging
import os
from collections.abc import AsyncIterator

import httpx
from pydantic import ValidationError

from signage_player.errors import ConfigurationError, FetchFailure
from signage_player.schemas.content import ContentOut
from signage_player.schemas.display import DisplayOut
from signage_player.schemas.schedule import ScheduleOut
from signage_player.services.channel import ChannelEvent, subscribe

logger = logging.getLogger(__name__)

CONTROLLER_URL = (os.getenv("SIGNAGE_CONTROLLER_URL", "http://localhost:3000/api") or "").strip().rstrip("/")
DISPLAY_API_KEY = (os.getenv("SIGNAGE_DISPLAY_API_KEY", "") or "").strip()
HTTP_TIMEOUT_SEC = float(os.getenv("SIGNAGE_HTTP_TIMEOUT_SEC", "10"))


def parse_schedules(rows) -> list[ScheduleOut]:
    if not isinstance(rows, list):
        raise FetchFailure("schedule list must be a JSON array")
    schedules: list[ScheduleOut] = []
    for row in rows:
        try:
            schedules.append(ScheduleOut.model_validate(row))
        except ValidationError as exc:
            schedule_id = row.get("id") if isinstance(row, dict) else None
            reason = exc.errors()[0].get("msg", str(exc)) if exc.errors() else str(exc)
            # A broken schedule is skipped so the remaining ones still resolve.
            logger.error("Configuration error in schedule %s: %s", schedule_id or "<unknown>", reason)
    return schedules


class ControllerClient:
    def __init__(
        self,
        base_url: str = CONTROLLER_URL,
        api_key: str = DISPLAY_API_KEY,
        timeout: float = HTTP_TIMEOUT_SEC,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"X-API-Key": api_key},
            timeout=timeout,
            transport=transport,
        )

    async def _get_json(self, path: str, params: dict | None = None):
        try:
            response = await self._client.get(path, params=params)
        except httpx.HTTPError as exc:
            raise FetchFailure(f"GET {path} failed: {str(exc) or type(exc).__name__}") from exc
        if response.status_code >= 400:
            raise FetchFailure(f"GET {path} returned HTTP {response.status_code}", status_code=response.status_code)
        try:
            return response.json()
        except ValueError as exc:
            raise FetchFailure(f"GET {path} returned a non-JSON body") from exc

    async def fetch_display(self) -> DisplayOut:
        data = await self._get_json("/displays/me")
        try:
            return DisplayOut.model_validate(data)
        except ValidationError as exc:
            raise FetchFailure(f"display identity is malformed: {exc}") from exc

    async def fetch_schedules(self, display_id: str) -> list[ScheduleOut]:
        rows = await self._get_json("/schedules", params={"displayId": display_id})
        return parse_schedules(rows)

    async def fetch_content(self, content_id: str) -> ContentOut:
        try:
            data = await self._get_json(f"/content/{content_id}")
        except FetchFailure as exc:
            if exc.status_code == 404:
                raise ConfigurationError(f"content {content_id} no longer exists") from exc
            raise
        try:
            return ContentOut.model_validate(data)
        except ValidationError as exc:
            raise ConfigurationError(f"content {content_id} is malformed: {exc}") from exc

    async def send_heartbeat(self, display_id: str) -> None:
        try:
            response = await self._client.post(f"/displays/{display_id}/heartbeat")
        except httpx.HTTPError as exc:
            raise FetchFailure(f"heartbeat failed: {str(exc) or type(exc).__name__}") from exc
        if response.status_code >= 400:
            raise FetchFailure(f"heartbeat returned HTTP {response.status_code}", status_code=response.status_code)

    def subscribe(self, display_id: str) -> AsyncIterator[ChannelEvent]:
        # The controller derives the display from the API key.
        return subscribe(self._client, self._api_key)

    async def aclose(self) -> None:
        await self._client.aclose()
