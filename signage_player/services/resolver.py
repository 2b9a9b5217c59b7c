from collections.abc import Iterable
from datetime import datetime, timezone

from signage_player.schemas.schedule import ScheduleOut


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def is_live(schedule: ScheduleOut, now: datetime) -> bool:
    if not schedule.is_active:
        return False
    now = _aware(now)
    if now < _aware(schedule.start_time):
        return False
    if schedule.end_time is not None and now > _aware(schedule.end_time):
        return False
    return True


def live_schedules(schedules: Iterable[ScheduleOut], now: datetime) -> list[ScheduleOut]:
    return [item for item in schedules if is_live(item, now)]


def resolve(schedules: Iterable[ScheduleOut], now: datetime) -> ScheduleOut | None:
    """
    Pick the single schedule that should drive the display at `now`.

    Highest priority wins. Equal priorities keep the first schedule in the
    order the caller supplied, so repeated calls with the same list always
    agree.
    """
    best: ScheduleOut | None = None
    for item in schedules:
        if not is_live(item, now):
            continue
        if best is None or item.priority > best.priority:
            best = item
    return best
