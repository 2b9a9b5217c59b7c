"""Schedule resolver: time-window filtering and priority selection."""

from __future__ import annotations

from datetime import datetime, timedelta

from conftest import NOW, make_schedule
from signage_player.services.resolver import is_live, live_schedules, resolve


def test_resolve_returns_none_without_schedules():
    """An empty schedule set resolves to nothing."""
    assert resolve([], NOW) is None


def test_resolve_ignores_inactive_schedules():
    """Schedules with is_active=false never win, whatever their priority."""
    schedules = [
        make_schedule("off", priority=10, is_active=False, contentId="A"),
        make_schedule("on", priority=1, contentId="B"),
    ]
    assert resolve(schedules, NOW).id == "on"


def test_resolve_respects_time_window():
    """Future and expired schedules are filtered out."""
    schedules = [
        make_schedule("future", priority=9, start=NOW + timedelta(minutes=1), contentId="A"),
        make_schedule("expired", priority=8, start=NOW - timedelta(hours=2), end=NOW - timedelta(seconds=1), contentId="B"),
        make_schedule("current", priority=1, start=NOW - timedelta(hours=2), end=NOW + timedelta(hours=1), contentId="C"),
    ]
    assert resolve(schedules, NOW).id == "current"


def test_window_bounds_are_inclusive():
    """now == start_time and now == end_time both count as live."""
    starts_now = make_schedule("starts", start=NOW, contentId="A")
    ends_now = make_schedule("ends", start=NOW - timedelta(hours=1), end=NOW, contentId="A")
    assert is_live(starts_now, NOW)
    assert is_live(ends_now, NOW)
    assert not is_live(ends_now, NOW + timedelta(microseconds=1))


def test_open_ended_schedule_stays_live():
    """A schedule without end_time is live indefinitely after it starts."""
    schedule = make_schedule("forever", start=NOW - timedelta(days=400), contentId="A")
    assert is_live(schedule, NOW + timedelta(days=3650))


def test_resolve_never_returns_schedule_outside_window():
    """Across a day of ticks, the winner is always inside its own window."""
    schedules = [
        make_schedule("morning", priority=5, start=NOW - timedelta(hours=4), end=NOW - timedelta(hours=1), contentId="A"),
        make_schedule("noon", priority=3, start=NOW - timedelta(minutes=30), end=NOW + timedelta(hours=2), contentId="B"),
        make_schedule("late", priority=7, start=NOW + timedelta(hours=3), contentIds=["X", "Y"]),
    ]
    tick = NOW - timedelta(hours=6)
    while tick < NOW + timedelta(hours=18):
        winner = resolve(schedules, tick)
        if winner is not None:
            assert winner.start_time <= tick
            assert winner.end_time is None or tick <= winner.end_time
        tick += timedelta(minutes=7)


def test_highest_priority_wins():
    """Among live schedules the numerically highest priority is chosen."""
    schedules = [
        make_schedule("low", priority=1, contentId="A"),
        make_schedule("high", priority=50, contentId="B"),
        make_schedule("mid", priority=10, contentId="C"),
    ]
    assert resolve(schedules, NOW).id == "high"


def test_priority_tie_goes_to_first_in_input_order():
    """Equal priorities resolve to the earliest schedule, every time."""
    schedules = [
        make_schedule("first", priority=5, contentId="A"),
        make_schedule("second", priority=5, contentId="B"),
        make_schedule("third", priority=5, contentId="C"),
    ]
    results = {resolve(schedules, NOW).id for _ in range(20)}
    assert results == {"first"}
    assert resolve(list(reversed(schedules)), NOW).id == "third"


def test_negative_priorities_still_compare():
    """Priority ordering is numeric, including negative values."""
    schedules = [
        make_schedule("minus", priority=-3, contentId="A"),
        make_schedule("less", priority=-10, contentId="B"),
    ]
    assert resolve(schedules, NOW).id == "minus"


def test_naive_now_is_treated_as_utc():
    """A naive clock reading compares against UTC schedule bounds."""
    schedule = make_schedule("utc", start=NOW, end=NOW + timedelta(minutes=5), contentId="A")
    naive = datetime(2026, 3, 2, 12, 1)
    assert resolve([schedule], naive).id == "utc"


def test_live_schedules_preserves_order():
    """live_schedules keeps the caller's ordering for the debug view."""
    schedules = [
        make_schedule("b", priority=1, contentId="A"),
        make_schedule("gone", priority=1, is_active=False, contentId="A"),
        make_schedule("a", priority=9, contentId="B"),
    ]
    assert [item.id for item in live_schedules(schedules, NOW)] == ["b", "a"]
