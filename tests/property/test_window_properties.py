"""Property tests for the active window and duration formatting.

Validates that the in-window check and the time-until-window computation
agree, that the wait always lands exactly on the window opening, and that
durations always render.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from hypothesis import given, settings
from hypothesis import strategies as st

from restock_monitor.scheduling.window import (
    DAY_IN_MS,
    MS_PER_HOUR,
    ActiveWindow,
    format_duration,
)
from tests.conftest import ms_of_day, utc_offsets, window_hours


def _at(window: ActiveWindow, ms: int) -> datetime:
    """The instant *ms* after local midnight in the window's offset."""
    midnight = datetime(2024, 6, 1, tzinfo=window.tz)
    return midnight + timedelta(milliseconds=ms)


@settings(max_examples=200)
@given(hours=window_hours, offset=utc_offsets, ms=ms_of_day)
def test_inside_iff_no_wait(hours: tuple[int, int], offset: int, ms: int) -> None:
    window = ActiveWindow(hours[0], hours[1], offset)
    now = _at(window, ms)

    assert window.ms_since_start_of_day(now) == ms
    inside = window.is_within_active_window(now)
    wait = window.ms_until_next_window(now)

    assert inside == (wait == 0)
    assert 0 <= wait < DAY_IN_MS


@settings(max_examples=200)
@given(hours=window_hours, offset=utc_offsets, ms=ms_of_day)
def test_wait_lands_on_window_start(hours: tuple[int, int], offset: int, ms: int) -> None:
    window = ActiveWindow(hours[0], hours[1], offset)
    now = _at(window, ms)
    wait = window.ms_until_next_window(now)

    if wait == 0:
        return

    opening = now + timedelta(milliseconds=wait)
    assert window.is_within_active_window(opening)
    assert window.ms_since_start_of_day(opening) == window.start_ms
    # One millisecond earlier is still closed
    assert not window.is_within_active_window(opening - timedelta(milliseconds=1))


@settings(max_examples=100)
@given(offset=utc_offsets, ms=ms_of_day)
def test_same_instant_in_utc_gives_same_answer(offset: int, ms: int) -> None:
    window = ActiveWindow(utc_offset_minutes=offset)
    local = _at(window, ms)
    as_utc = local.astimezone(timezone.utc)

    assert window.is_within_active_window(local) == window.is_within_active_window(as_utc)
    assert window.ms_until_next_window(local) == window.ms_until_next_window(as_utc)


@settings(max_examples=200)
@given(ms=st.integers(min_value=-10_000, max_value=10 * DAY_IN_MS))
def test_format_duration_always_renders(ms: int) -> None:
    text = format_duration(ms)
    assert text
    if ms >= MS_PER_HOUR:
        assert text.endswith(("h", "m"))
        assert "s" not in text
