"""
Tests for FullscreenGuard and ExamTimer
"""

import pytest

from proctored_exam.models.proctoring_model import ViolationKind
from proctored_exam.proctoring.events import (
    CountdownTick,
    ForceTerminate,
    TimeUp,
    ViolationCleared,
    ViolationRaised,
)
from proctored_exam.proctoring.fullscreen import FullscreenGuard, GuardState
from proctored_exam.proctoring.timer import ExamTimer

SLOW_TICK = 3600.0


def _armed_guard(timeout_seconds=30):
    events = []
    guard = FullscreenGuard(events.append, timeout_seconds=timeout_seconds, tick_seconds=SLOW_TICK)
    guard.arm()
    return guard, events


def _of_type(events, cls):
    return [e for e in events if isinstance(e, cls)]


class TestFullscreenGuard:
    """Tests for fullscreen exit, return and the force-terminate countdown"""

    @pytest.mark.asyncio
    async def test_exit_raises_violation_and_starts_countdown(self):
        guard, events = _armed_guard()

        guard.on_fullscreen_change(False)

        assert guard.state is GuardState.EXITED_WAITING_RETURN
        raised = _of_type(events, ViolationRaised)
        assert len(raised) == 1
        assert raised[0].record.kind is ViolationKind.FULLSCREEN_EXIT
        assert _of_type(events, CountdownTick) == [CountdownTick(30)]
        assert guard.countdown_running
        guard.disarm()

    @pytest.mark.asyncio
    async def test_return_cancels_countdown(self):
        guard, events = _armed_guard()
        guard.on_fullscreen_change(False)

        guard.on_fullscreen_change(True)

        assert guard.state is GuardState.FULLSCREEN
        assert guard.remaining is None
        assert not guard.countdown_running
        assert ViolationCleared(ViolationKind.FULLSCREEN_EXIT) in events

    @pytest.mark.asyncio
    async def test_repeated_exit_does_not_restart_countdown(self):
        guard, events = _armed_guard()
        guard.on_fullscreen_change(False)
        guard.tick()

        guard.on_fullscreen_change(False)

        assert guard.remaining == 29
        assert len(_of_type(events, ViolationRaised)) == 1
        guard.disarm()

    @pytest.mark.asyncio
    async def test_force_terminate_exactly_once(self):
        guard, events = _armed_guard(timeout_seconds=3)
        guard.on_fullscreen_change(False)

        for _ in range(10):
            guard.tick()

        assert _of_type(events, ForceTerminate) == [ForceTerminate()]
        assert [e.remaining for e in _of_type(events, CountdownTick)] == [3, 2, 1, 0]
        assert guard.terminated
        assert not guard.countdown_running

    @pytest.mark.asyncio
    async def test_return_after_terminate_is_ignored(self):
        guard, events = _armed_guard(timeout_seconds=1)
        guard.on_fullscreen_change(False)
        guard.tick()

        guard.on_fullscreen_change(True)

        assert _of_type(events, ViolationCleared) == []

    def test_disarmed_guard_ignores_events(self):
        events = []
        guard = FullscreenGuard(events.append, timeout_seconds=30, tick_seconds=SLOW_TICK)

        guard.on_fullscreen_change(False)
        guard.on_visibility_change(True)

        assert events == []


class TestTabVisibility:
    """Tests for the tab-hidden violation"""

    def test_hidden_tab_raises_once(self):
        guard, events = _armed_guard()

        guard.on_visibility_change(True)
        guard.on_visibility_change(True)

        raised = _of_type(events, ViolationRaised)
        assert len(raised) == 1
        assert raised[0].record.kind is ViolationKind.TAB_HIDDEN

    def test_hidden_tab_ignored_when_not_in_progress(self):
        guard, events = _armed_guard()
        guard.on_visibility_change(True, exam_in_progress=False)
        assert events == []

    def test_resume_requires_visible_tab(self):
        guard, events = _armed_guard()
        guard.on_visibility_change(True)

        assert guard.request_resume() is False

        guard.on_visibility_change(False)
        assert guard.request_resume() is True
        assert ViolationCleared(ViolationKind.TAB_HIDDEN) in events
        assert guard.request_resume() is False

    @pytest.mark.asyncio
    async def test_fullscreen_reentry_clears_tab_violation(self):
        guard, events = _armed_guard()
        guard.on_visibility_change(True)
        guard.on_fullscreen_change(False)
        guard.on_visibility_change(False)

        guard.on_fullscreen_change(True)

        cleared = _of_type(events, ViolationCleared)
        assert ViolationCleared(ViolationKind.FULLSCREEN_EXIT) in cleared
        assert ViolationCleared(ViolationKind.TAB_HIDDEN) in cleared


class TestExamTimer:
    """Tests for the pausable exam countdown"""

    @pytest.mark.asyncio
    async def test_counts_down_and_fires_once(self):
        events = []
        timer = ExamTimer(events.append, tick_seconds=SLOW_TICK)
        timer.start(2)

        timer.tick()
        assert timer.remaining_seconds == 1
        timer.tick()
        timer.tick()

        assert timer.remaining_seconds == 0
        assert events == [TimeUp()]

    @pytest.mark.asyncio
    async def test_zero_duration_fires_immediately(self):
        events = []
        timer = ExamTimer(events.append, tick_seconds=SLOW_TICK)

        timer.start(0)

        assert timer.fired
        assert events == [TimeUp()]

    @pytest.mark.asyncio
    async def test_pause_stops_decrement_without_changing_remaining(self):
        events = []
        timer = ExamTimer(events.append, tick_seconds=SLOW_TICK)
        timer.start(10)

        timer.set_paused(True)
        timer.tick()
        timer.tick()
        assert timer.remaining_seconds == 10
        assert timer.state.paused

        timer.set_paused(False)
        timer.tick()
        assert timer.remaining_seconds == 9
        timer.stop()

    @pytest.mark.asyncio
    async def test_start_only_once(self):
        timer = ExamTimer(lambda e: None, tick_seconds=SLOW_TICK)
        timer.start(10)
        timer.tick()

        timer.start(600)

        assert timer.remaining_seconds == 9
        timer.stop()

    def test_format(self):
        assert ExamTimer.format(600) == "10:00"
        assert ExamTimer.format(65) == "01:05"
        assert ExamTimer.format(-3) == "00:00"
