from dataclasses import dataclass
from enum import Enum

from signage_player.schemas.playlist import (
    ContentListBinding,
    PlaylistBinding,
    SingleContentBinding,
)


@dataclass(frozen=True)
class CursorItem:
    content_id: str
    duration_override: int | None = None


@dataclass
class PlaylistCursor:
    items: tuple[CursorItem, ...]
    index: int = 0
    loop: bool = True

    def __post_init__(self) -> None:
        if self.items and not 0 <= self.index < len(self.items):
            raise ValueError(f"cursor index {self.index} outside 0..{len(self.items) - 1}")

    @property
    def current(self) -> CursorItem:
        return self.items[self.index]


class AdvanceAction(str, Enum):
    SHOW = "show"
    RELOAD = "reload"


def cursor_items(binding) -> tuple[tuple[CursorItem, ...], bool] | None:
    if isinstance(binding, SingleContentBinding) or binding is None:
        return None
    if isinstance(binding, ContentListBinding):
        return tuple(CursorItem(content_id) for content_id in binding.content_ids), True
    if isinstance(binding, PlaylistBinding):
        items = tuple(CursorItem(entry.content_id, entry.duration_override) for entry in binding.items)
        return items, binding.loop
    raise TypeError(f"unsupported content binding: {type(binding).__name__}")


def build_cursor(binding) -> PlaylistCursor | None:
    materialized = cursor_items(binding)
    if materialized is None:
        return None
    items, loop = materialized
    return PlaylistCursor(items=items, index=0, loop=loop)


def reconcile(cursor: PlaylistCursor | None, binding) -> PlaylistCursor | None:
    materialized = cursor_items(binding)
    if materialized is None:
        return None
    items, loop = materialized
    if cursor is not None and cursor.items == items:
        cursor.loop = loop
        return cursor
    return PlaylistCursor(items=items, index=0, loop=loop)


def advance(cursor: PlaylistCursor | None) -> tuple[int, AdvanceAction]:
    if cursor is None:
        return 0, AdvanceAction.RELOAD
    count = len(cursor.items)
    if count <= 1:
        return cursor.index, AdvanceAction.RELOAD
    if cursor.index == count - 1 and not cursor.loop:
        return cursor.index, AdvanceAction.RELOAD
    if cursor.loop:
        return (cursor.index + 1) % count, AdvanceAction.SHOW
    return min(cursor.index + 1, count - 1), AdvanceAction.SHOW
