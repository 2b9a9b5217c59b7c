from typing import Literal

from pydantic import BaseModel, Field


class PlaylistEntry(BaseModel):
    content_id: str = Field(alias="contentId")
    duration_override: int | None = Field(default=None, alias="durationOverride")

    class Config:
        populate_by_name = True
        frozen = True


class SingleContentBinding(BaseModel):
    kind: Literal["single"] = "single"
    content_id: str


class ContentListBinding(BaseModel):
    kind: Literal["list"] = "list"
    content_ids: list[str]


class PlaylistBinding(BaseModel):
    kind: Literal["playlist"] = "playlist"
    playlist_id: str | None = None
    name: str = ""
    loop: bool = True
    items: list[PlaylistEntry]


def playlist_binding_from_wire(playlist: dict, playlist_id: str | None = None) -> PlaylistBinding:
    rows = [row for row in (playlist.get("items") or []) if isinstance(row, dict)]
    # Controller rows carry an explicit order; rows without one keep their position.
    ordered = sorted(
        enumerate(rows),
        key=lambda pair: (pair[1].get("order") if pair[1].get("order") is not None else pair[0], pair[0]),
    )
    loop = playlist.get("loop")
    return PlaylistBinding(
        playlist_id=str(playlist.get("id") or playlist_id or "") or None,
        name=str(playlist.get("name") or "").strip(),
        loop=True if loop is None else bool(loop),
        items=[PlaylistEntry.model_validate(row) for _, row in ordered],
    )
