import asyncio
import logging
import os
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

from sqlalchemy.exc import SQLAlchemyError

from signage_player.errors import ChannelDisconnected, ConfigurationError, FetchFailure
from signage_player.schemas.content import ContentOut
from signage_player.schemas.display import DisplayOut
from signage_player.schemas.playback import PlaybackOut, ResolvedContent
from signage_player.schemas.schedule import ScheduleOut
from signage_player.services.channel import ChannelEvent
from signage_player.services.completion import completion_plan
from signage_player.services.playlist_state import (
    AdvanceAction,
    CursorItem,
    PlaylistCursor,
    advance,
    reconcile,
)
from signage_player.services.position_store import clear_position, load_position, save_position
from signage_player.services.resolver import live_schedules, resolve

logger = logging.getLogger(__name__)

DISPLAY_ID = (os.getenv("SIGNAGE_DISPLAY_ID", "") or "").strip() or None
POLL_INTERVAL_SEC = float(os.getenv("SIGNAGE_POLL_INTERVAL_SEC", "15"))
HEARTBEAT_INTERVAL_SEC = float(os.getenv("SIGNAGE_HEARTBEAT_INTERVAL_SEC", "30"))
CHANNEL_RECONNECT_SEC = float(os.getenv("SIGNAGE_CHANNEL_RECONNECT_SEC", "5"))

HARD_RESYNC_EVENTS = {"content.changed", "content.update", "schedule.changed"}
FORWARDED_EVENTS = {"settings.changed", "fpcon.changed", "lan.changed"}
_NOT_PERSISTED = object()


class PlaybackStatus(str, Enum):
    UNINITIALIZED = "uninitialized"
    RESOLVING = "resolving"
    PLAYING = "playing"
    IDLE = "idle"
    ERROR = "error"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlaybackOrchestrator:
    """
    Owns what one display is showing.

    Every transition runs under a single lock, so a completion report, a
    poll tick and a push notification never interleave their cursor
    updates. The poll only replaces the candidate schedule set; the cursor
    changes through `reconcile` (new item list) or `advance` (completion).
    """

    def __init__(
        self,
        controller,
        display_id: str | None = DISPLAY_ID,
        hub=None,
        session_factory: Callable | None = None,
        clock: Callable[[], datetime] = _utcnow,
        poll_interval_sec: float = POLL_INTERVAL_SEC,
        heartbeat_interval_sec: float = HEARTBEAT_INTERVAL_SEC,
        reconnect_delay_sec: float = CHANNEL_RECONNECT_SEC,
    ) -> None:
        self.controller = controller
        self.display_id = display_id
        self.display: DisplayOut | None = None
        self.hub = hub
        self.poll_interval_sec = poll_interval_sec
        self.heartbeat_interval_sec = heartbeat_interval_sec
        self.reconnect_delay_sec = reconnect_delay_sec

        self.status = PlaybackStatus.UNINITIALIZED
        self.last_error: str | None = None
        self.schedules: list[ScheduleOut] = []
        self.active_schedule: ScheduleOut | None = None
        self.cursor: PlaylistCursor | None = None
        self.current: ResolvedContent | None = None
        self.debug_enabled = False
        self.revision = 0

        self._session_factory = session_factory
        self._clock = clock
        self._lock = asyncio.Lock()
        self._tasks: list[asyncio.Task] = []
        self._persisted_key: Any = _NOT_PERSISTED
        self._resume_schedule_id: str | None = None

    # -- outward surface -------------------------------------------------

    def current_resolved_content(self) -> ResolvedContent | None:
        return self.current

    def playback(self) -> PlaybackOut:
        current = self.current
        return PlaybackOut(
            status=self.status.value,
            revision=self.revision,
            error=self.last_error,
            schedule_id=current.schedule_id if current else None,
            content=current.content if current else None,
            index=current.index if current else None,
            item_count=current.item_count if current else None,
            completion=completion_plan(current) if current else None,
        )

    def snapshot(self) -> dict[str, Any]:
        now = self._clock()
        return {
            "display_id": self.display_id,
            "display": self.display.model_dump(mode="json") if self.display else None,
            "status": self.status.value,
            "error": self.last_error,
            "revision": self.revision,
            "debug_enabled": self.debug_enabled,
            "active_schedule_id": self.active_schedule.id if self.active_schedule else None,
            "live_schedule_ids": [item.id for item in live_schedules(self.schedules, now)],
            "schedules": [item.model_dump(mode="json") for item in self.schedules],
            "cursor": (
                {
                    "index": self.cursor.index,
                    "loop": self.cursor.loop,
                    "items": [
                        {"content_id": item.content_id, "duration_override": item.duration_override}
                        for item in self.cursor.items
                    ],
                }
                if self.cursor
                else None
            ),
        }

    # -- transitions -----------------------------------------------------

    async def refresh(self, reason: str = "poll", hard: bool = False) -> PlaybackStatus:
        async with self._lock:
            previous = self.status
            try:
                schedules = await self.controller.fetch_schedules(self.display_id)
            except FetchFailure as exc:
                self._fail(f"schedule fetch failed: {exc}")
            else:
                logger.debug("Fetched %d schedule(s) for %s (%s)", len(schedules), self.display_id, reason)
                self.schedules = schedules
                self.status = PlaybackStatus.RESOLVING
                await self._resolve(force_fetch=hard)
            await self._publish_status(previous)
            return self.status

    async def reevaluate(self) -> PlaybackStatus:
        async with self._lock:
            previous = self.status
            if previous is not PlaybackStatus.UNINITIALIZED:
                self.status = PlaybackStatus.RESOLVING
                await self._resolve()
            await self._publish_status(previous)
            return self.status

    async def report_completion(self, revision: int | None = None) -> bool:
        async with self._lock:
            if revision is not None and revision != self.revision:
                logger.debug("Ignoring completion for revision %s (current %s)", revision, self.revision)
                return False
            if self.status is PlaybackStatus.UNINITIALIZED or self.current is None:
                logger.debug("Ignoring completion: nothing is on screen")
                return False
            previous = self.status
            if not self._on_screen():
                # The previous advance never reached the screen; show that item instead of skipping it.
                logger.info("Completion while item %d is pending; retrying it", self.cursor.index if self.cursor else 0)
                self.status = PlaybackStatus.RESOLVING
                await self._resolve()
            else:
                new_index, action = advance(self.cursor)
                if action is AdvanceAction.SHOW:
                    self.cursor.index = new_index
                    await self._show_item(self.active_schedule, self.cursor.current, new_index, len(self.cursor.items))
                else:
                    # Finished: whatever schedule is active now starts over from its first item.
                    self.cursor = None
                    self.status = PlaybackStatus.RESOLVING
                    await self._resolve(restart=True)
            await self._publish_status(previous)
            return True

    async def handle_event(self, event: ChannelEvent) -> None:
        event_type = event.event_type
        if event_type in HARD_RESYNC_EVENTS:
            logger.info("Push %s: resyncing schedules and content", event_type)
            await self.refresh(reason=event_type, hard=True)
        elif event_type == "schedule.triggered":
            logger.info("Push schedule.triggered: re-resolving")
            await self.refresh(reason=event_type)
        elif event_type == "debug.toggle":
            target = event.payload.get("displayId")
            if target and self.display_id and str(target) != self.display_id:
                return
            self.debug_enabled = bool(event.payload.get("enabled"))
            logger.info("Debug overlay %s", "enabled" if self.debug_enabled else "disabled")
            await self._publish("debug_toggle", {"enabled": self.debug_enabled})
        elif event_type in FORWARDED_EVENTS:
            await self._publish(event_type, event.payload)
        elif event_type == "connected":
            logger.info("Push channel connected")
            if self.status is not PlaybackStatus.UNINITIALIZED:
                await self.refresh(reason=event_type)
        elif event_type == "heartbeat":
            logger.debug("Push channel heartbeat")
        else:
            logger.debug("Ignoring push event %s", event_type)

    def restore(self) -> bool:
        if self._session_factory is None or not self.display_id:
            return False
        db = self._session_factory()
        try:
            saved = load_position(db, self.display_id)
        except SQLAlchemyError as exc:
            logger.warning("Could not read saved playback position: %s", exc)
            return False
        finally:
            db.close()
        if saved is None:
            return False
        self.cursor = saved.cursor
        self._resume_schedule_id = saved.schedule_id
        self._persisted_key = self._position_key(saved.schedule_id, saved.cursor)
        logger.info(
            "Resuming playlist at item %d of %d (schedule %s)",
            saved.cursor.index + 1,
            len(saved.cursor.items),
            saved.schedule_id,
        )
        return True

    # -- internals -------------------------------------------------------

    async def _resolve(self, force_fetch: bool = False, restart: bool = False) -> None:
        active = resolve(self.schedules, self._clock())
        if active is None:
            await self._go_idle()
            return

        if self._resume_schedule_id is not None:
            if active.id != self._resume_schedule_id:
                logger.info("Saved position belongs to schedule %s, not %s; starting fresh", self._resume_schedule_id, active.id)
                self.cursor = None
            self._resume_schedule_id = None

        cursor = reconcile(self.cursor, active.binding)
        if cursor is None:
            item, index, count = CursorItem(active.binding.content_id), 0, 1
        else:
            item, index, count = cursor.current, cursor.index, len(cursor.items)
            if self.cursor is not None and cursor is not self.cursor:
                logger.info("Playlist for schedule %s changed; starting at first item", active.id)

        current = self.current
        unchanged = (
            not restart
            and current is not None
            and self.active_schedule is not None
            and self.active_schedule.id == active.id
            and cursor is self.cursor
            and current.content_id == item.content_id
            and current.index == index
            and current.duration_override == item.duration_override
        )
        self.active_schedule = active
        self.cursor = cursor
        if unchanged and not force_fetch:
            self.status = PlaybackStatus.PLAYING
            self.last_error = None
            return
        await self._show_item(active, item, index, count, keep_revision=unchanged)

    async def _show_item(
        self,
        schedule: ScheduleOut,
        item: CursorItem,
        index: int,
        count: int,
        keep_revision: bool = False,
    ) -> None:
        try:
            content = await self.controller.fetch_content(item.content_id)
        except ConfigurationError as exc:
            logger.error("Schedule %s cannot be shown: %s", schedule.id, exc)
            await self._go_idle(reason=str(exc))
            return
        except FetchFailure as exc:
            self._fail(f"content fetch failed: {exc}")
            return

        if keep_revision and self.current is not None and self.current.content == self._with_override(content, item):
            self.status = PlaybackStatus.PLAYING
            self.last_error = None
            return

        resolved = ResolvedContent(
            content=self._with_override(content, item),
            schedule_id=schedule.id,
            revision=self.revision + 1,
            index=index,
            item_count=count,
            duration_override=item.duration_override,
        )
        self.revision = resolved.revision
        self.current = resolved
        self.status = PlaybackStatus.PLAYING
        self.last_error = None
        logger.info(
            "Showing %s %s (item %d of %d, %ss) for schedule %s",
            content.type,
            content.id,
            index + 1,
            count,
            self.current.duration,
            schedule.id,
        )
        self._persist()
        await self._publish("playback_changed", self.playback().model_dump(mode="json"))

    @staticmethod
    def _with_override(content: ContentOut, item: CursorItem) -> ContentOut:
        if item.duration_override is None:
            return content
        return content.model_copy(update={"duration": item.duration_override})

    async def _go_idle(self, reason: str | None = None) -> None:
        had_content = self.current is not None
        self.active_schedule = None
        self.cursor = None
        self.current = None
        self.status = PlaybackStatus.IDLE
        self.last_error = reason
        self._persist()
        if had_content:
            self.revision += 1
            logger.info("No active content; display idle")
            await self._publish("playback_changed", self.playback().model_dump(mode="json"))

    def _fail(self, message: str) -> None:
        logger.warning("%s; retrying on next tick", message)
        # Nothing has been fetched yet: stay uninitialized and keep the reason.
        if self.status is not PlaybackStatus.UNINITIALIZED:
            self.status = PlaybackStatus.ERROR
        self.last_error = message

    def _on_screen(self) -> bool:
        current, active = self.current, self.active_schedule
        if current is None or active is None or current.schedule_id != active.id:
            return False
        if self.cursor is None:
            return True
        return current.index == self.cursor.index and current.content_id == self.cursor.current.content_id

    @staticmethod
    def _position_key(schedule_id: str | None, cursor: PlaylistCursor | None):
        if cursor is None:
            return None
        return schedule_id, cursor.items, cursor.index, cursor.loop

    def _persist(self) -> None:
        if self._session_factory is None or not self.display_id:
            return
        schedule_id = self.active_schedule.id if self.active_schedule else None
        key = self._position_key(schedule_id, self.cursor)
        if key == self._persisted_key:
            return
        db = self._session_factory()
        try:
            if self.cursor is None:
                clear_position(db, self.display_id)
            else:
                save_position(db, self.display_id, schedule_id, self.cursor)
            self._persisted_key = key
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Could not save playback position: %s", exc)
        finally:
            db.close()

    async def _publish(self, event_type: str, payload: dict[str, Any]) -> None:
        if self.hub is not None:
            await self.hub.publish(event_type, payload)

    async def _publish_status(self, previous: PlaybackStatus) -> None:
        if self.status is not previous:
            await self._publish("status_changed", {"status": self.status.value, "error": self.last_error})

    # -- lifecycle -------------------------------------------------------

    async def _ensure_display(self) -> None:
        while self.display_id is None:
            try:
                self.display = await self.controller.fetch_display()
            except FetchFailure as exc:
                self._fail(f"display identity lookup failed: {exc}")
                await asyncio.sleep(self.reconnect_delay_sec)
                continue
            self.display_id = self.display.id
            logger.info("Running as display %s (%s)", self.display.id, self.display.name)
        if self.display is None:
            try:
                self.display = await self.controller.fetch_display()
            except FetchFailure as exc:
                logger.warning("Display details unavailable: %s", exc)

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.refresh(reason="poll")
            except Exception:
                logger.exception("Scheduled refresh crashed; retrying on next tick")
            await asyncio.sleep(self.poll_interval_sec)

    async def _channel_loop(self) -> None:
        while True:
            try:
                async for event in self.controller.subscribe(self.display_id):
                    await self.handle_event(event)
            except ChannelDisconnected as exc:
                logger.warning("Push channel dropped (%s); reconnecting in %ss", exc, self.reconnect_delay_sec)
            except Exception:
                logger.exception("Push channel handler crashed; reconnecting in %ss", self.reconnect_delay_sec)
            await asyncio.sleep(self.reconnect_delay_sec)

    async def _heartbeat_loop(self) -> None:
        while True:
            try:
                await self.controller.send_heartbeat(self.display_id)
            except FetchFailure as exc:
                logger.warning("Heartbeat failed: %s", exc)
            await asyncio.sleep(self.heartbeat_interval_sec)

    async def run(self) -> None:
        await self._ensure_display()
        self.restore()
        self._tasks = [
            asyncio.create_task(self._poll_loop(), name="signage-poll"),
            asyncio.create_task(self._channel_loop(), name="signage-channel"),
            asyncio.create_task(self._heartbeat_loop(), name="signage-heartbeat"),
        ]
        try:
            await asyncio.gather(*self._tasks)
        finally:
            for task in self._tasks:
                task.cancel()

    async def stop(self) -> None:
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
