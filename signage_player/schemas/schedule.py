from datetime import datetime, timezone
from typing import Annotated, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from signage_player.schemas.playlist import (
    ContentListBinding,
    PlaylistBinding,
    SingleContentBinding,
    playlist_binding_from_wire,
)

ContentBinding = Annotated[
    Union[SingleContentBinding, ContentListBinding, PlaylistBinding],
    Field(discriminator="kind"),
]


def _pop_first(data: dict, *keys: str):
    found = None
    for key in keys:
        value = data.pop(key, None)
        if found is None and value is not None:
            found = value
    return found


def _as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class ScheduleOut(BaseModel):
    id: str
    display_id: str | None = Field(default=None, alias="displayId")
    start_time: datetime = Field(alias="startTime")
    end_time: datetime | None = Field(default=None, alias="endTime")
    priority: int = 0
    is_active: bool = Field(default=True, alias="isActive")
    recurrence_rule: str | None = Field(default=None, alias="recurrenceRule")
    binding: ContentBinding

    class Config:
        populate_by_name = True

    @model_validator(mode="before")
    @classmethod
    def _collect_binding(cls, data):
        if not isinstance(data, dict) or "binding" in data:
            return data
        data = dict(data)
        content_id = _pop_first(data, "contentId", "content_id")
        content_ids = _pop_first(data, "contentIds", "content_ids")
        playlist_id = _pop_first(data, "playlistId", "playlist_id")
        playlist = data.pop("playlist", None)
        data.pop("content", None)

        bindings = []
        if content_id:
            bindings.append(SingleContentBinding(content_id=str(content_id)))
        if content_ids:
            bindings.append(ContentListBinding(content_ids=[str(item) for item in content_ids]))
        if isinstance(playlist, dict) and playlist.get("items"):
            bindings.append(playlist_binding_from_wire(playlist, playlist_id))
        elif playlist_id and not isinstance(playlist, dict):
            raise ValueError(f"playlist {playlist_id} is referenced but its items were not delivered")

        if not bindings:
            raise ValueError("schedule has no content binding")
        if len(bindings) > 1:
            raise ValueError("schedule has more than one content binding")
        data["binding"] = bindings[0]
        return data

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_timezone(cls, value):
        return _as_utc(value)
