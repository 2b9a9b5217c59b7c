import json
import logging
import os
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import httpx

from signage_player.errors import ChannelDisconnected

logger = logging.getLogger(__name__)

CHANNEL_PATH = os.getenv("SIGNAGE_CHANNEL_PATH", "/sse/display")
# The controller sends a heartbeat every 30s; silence well past that means a dead socket.
CHANNEL_READ_TIMEOUT_SEC = float(os.getenv("SIGNAGE_CHANNEL_READ_TIMEOUT_SEC", "90"))
CHANNEL_CONNECT_TIMEOUT_SEC = float(os.getenv("SIGNAGE_CHANNEL_CONNECT_TIMEOUT_SEC", "10"))


@dataclass(frozen=True)
class ChannelEvent:
    event_type: str
    payload: dict[str, Any] = field(default_factory=dict)


def _build_event(event_type: str, data_lines: list[str]) -> ChannelEvent:
    raw = "\n".join(data_lines)
    try:
        payload = json.loads(raw) if raw else {}
    except json.JSONDecodeError:
        payload = {"data": raw}
    if not isinstance(payload, dict):
        payload = {"data": payload}
    return ChannelEvent(event_type=event_type or "message", payload=payload)


async def iter_events(lines: AsyncIterator[str]) -> AsyncIterator[ChannelEvent]:
    event_type = "message"
    data_lines: list[str] = []
    async for line in lines:
        line = line.rstrip("\r")
        if not line:
            if data_lines or event_type != "message":
                yield _build_event(event_type, data_lines)
            event_type = "message"
            data_lines = []
            continue
        if line.startswith(":"):
            continue
        name, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]
        if name == "event":
            event_type = value
        elif name == "data":
            data_lines.append(value)


async def subscribe(client: httpx.AsyncClient, api_key: str) -> AsyncIterator[ChannelEvent]:
    timeout = httpx.Timeout(CHANNEL_CONNECT_TIMEOUT_SEC, read=CHANNEL_READ_TIMEOUT_SEC)
    try:
        async with client.stream(
            "GET",
            CHANNEL_PATH,
            params={"apiKey": api_key},
            headers={"Accept": "text/event-stream"},
            timeout=timeout,
        ) as response:
            if response.status_code != 200:
                raise ChannelDisconnected(f"push channel refused with HTTP {response.status_code}")
            async for event in iter_events(response.aiter_lines()):
                yield event
    except httpx.HTTPError as exc:
        raise ChannelDisconnected(str(exc) or type(exc).__name__) from exc
    raise ChannelDisconnected("push channel stream ended")
