from typing import Any

from pydantic import BaseModel

from signage_player.schemas.content import ContentOut


class ResolvedContent(BaseModel):
    content: ContentOut
    schedule_id: str
    revision: int
    index: int = 0
    item_count: int = 1
    duration_override: int | None = None

    @property
    def content_id(self) -> str:
        return self.content.id

    @property
    def duration(self) -> int:
        return self.content.duration


class PlaybackOut(BaseModel):
    status: str
    revision: int
    error: str | None = None
    schedule_id: str | None = None
    content: ContentOut | None = None
    index: int | None = None
    item_count: int | None = None
    completion: dict[str, Any] | None = None


class CompletionOut(BaseModel):
    ok: bool
    accepted: bool
    revision: int
