import json
import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from signage_player.models.playback_state import PlaybackState
from signage_player.services.playlist_state import CursorItem, PlaylistCursor

logger = logging.getLogger(__name__)


@dataclass
class SavedPosition:
    schedule_id: str | None
    cursor: PlaylistCursor


def _encode_items(items: tuple[CursorItem, ...]) -> str:
    return json.dumps(
        [{"content_id": item.content_id, "duration_override": item.duration_override} for item in items],
        separators=(",", ":"),
    )


def _decode_items(raw: str | None) -> tuple[CursorItem, ...]:
    decoded = json.loads(raw or "[]")
    if not isinstance(decoded, list):
        raise ValueError("items_json must be a JSON array")
    items: list[CursorItem] = []
    for row in decoded:
        if not isinstance(row, dict) or not str(row.get("content_id", "")).strip():
            raise ValueError("items_json rows need a content_id")
        override = row.get("duration_override")
        items.append(CursorItem(str(row["content_id"]), int(override) if override is not None else None))
    return tuple(items)


def load_position(db: Session, display_id: str) -> SavedPosition | None:
    row = db.query(PlaybackState).filter(PlaybackState.display_id == display_id).first()
    if row is None:
        return None
    try:
        items = _decode_items(row.items_json)
        if not items:
            return None
        cursor = PlaylistCursor(items=items, index=int(row.item_index or 0), loop=bool(row.loop))
    except (ValueError, TypeError) as exc:
        logger.warning("Discarding unreadable playback position for %s: %s", display_id, exc)
        return None
    return SavedPosition(schedule_id=row.schedule_id, cursor=cursor)


def save_position(db: Session, display_id: str, schedule_id: str | None, cursor: PlaylistCursor) -> None:
    row = db.query(PlaybackState).filter(PlaybackState.display_id == display_id).first()
    if row is None:
        row = PlaybackState(display_id=display_id)
        db.add(row)
    row.schedule_id = schedule_id
    row.items_json = _encode_items(cursor.items)
    row.item_index = cursor.index
    row.loop = cursor.loop
    row.updated_at = datetime.utcnow()
    db.commit()


def clear_position(db: Session, display_id: str) -> None:
    db.query(PlaybackState).filter(PlaybackState.display_id == display_id).delete(synchronize_session=False)
    db.commit()
