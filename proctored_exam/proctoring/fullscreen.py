"""
proctoring/fullscreen.py

전체화면/탭 가시성 감시.

상태:  FULLSCREEN ──(이탈)──▶ EXITED_WAITING_RETURN ──(복귀)──▶ FULLSCREEN
                                       │
                                       └─(카운트다운 0)──▶ ForceTerminate (1회)

탭 숨김은 별도 신호: 전체화면 상태에서 시험 진행 중 hidden이 되면 즉시 TAB_HIDDEN
위반을 올린다. 카운트다운은 없고, 복구 경로(request_resume 또는 전체화면 재진입)로만 해제.
"""

import logging
from enum import Enum
from typing import Optional

from config import FULLSCREEN_RETURN_TIMEOUT_SECONDS
from proctored_exam.models.proctoring_model import ViolationKind, ViolationRecord
from proctored_exam.proctoring.events import (
    CountdownTick,
    Emit,
    ForceTerminate,
    ViolationCleared,
    ViolationRaised,
)
from proctored_exam.proctoring.ticker import Ticker

logger = logging.getLogger(__name__)


class GuardState(str, Enum):
    FULLSCREEN = "fullscreen"
    EXITED_WAITING_RETURN = "exited_waiting_return"


class FullscreenGuard:
    def __init__(
        self,
        emit: Emit,
        timeout_seconds: int = FULLSCREEN_RETURN_TIMEOUT_SECONDS,
        tick_seconds: float = 1.0,
    ):
        self._emit = emit
        self.timeout_seconds = timeout_seconds
        self.tick_seconds = tick_seconds
        self.state = GuardState.FULLSCREEN
        self.armed = False
        self.remaining: Optional[int] = None
        self.tab_hidden = False
        self.tab_violation_active = False
        self.terminated = False
        self._ticker: Optional[Ticker] = None

    @property
    def countdown_running(self) -> bool:
        return self.remaining is not None and not self.terminated

    def arm(self) -> None:
        """시험 시작 시 호출. 전체화면 상태에서 감시를 시작한다."""
        self.armed = True
        self.terminated = False
        self.state = GuardState.FULLSCREEN
        self.tab_violation_active = False

    def disarm(self) -> None:
        self.armed = False
        self._cancel_countdown()

    # ── 브라우저 이벤트 ──────────────────────────────────────────────────────

    def on_fullscreen_change(self, is_fullscreen: bool) -> None:
        if not self.armed or self.terminated:
            return

        if not is_fullscreen:
            if self.state is GuardState.EXITED_WAITING_RETURN:
                return
            self.state = GuardState.EXITED_WAITING_RETURN
            logger.warning("전체화면 이탈: 복귀 카운트다운 시작")
            self._emit(ViolationRaised(ViolationRecord(kind=ViolationKind.FULLSCREEN_EXIT)))
            self._start_countdown()
            return

        if self.state is GuardState.EXITED_WAITING_RETURN:
            self._cancel_countdown()
            self.state = GuardState.FULLSCREEN
            logger.info("전체화면 복귀")
            self._emit(ViolationCleared(ViolationKind.FULLSCREEN_EXIT))
        # 전체화면 재진입도 탭 숨김 위반의 복구 경로
        self.request_resume()

    def on_visibility_change(self, hidden: bool, exam_in_progress: bool = True) -> None:
        self.tab_hidden = hidden
        if not hidden or not self.armed or self.terminated:
            return
        if exam_in_progress and self.state is GuardState.FULLSCREEN and not self.tab_violation_active:
            self.tab_violation_active = True
            logger.warning("탭 전환 감지: 시험 일시정지")
            self._emit(ViolationRaised(ViolationRecord(kind=ViolationKind.TAB_HIDDEN)))

    def request_resume(self) -> bool:
        """사용자의 명시적 재개 요청. 전체화면이고 탭이 보일 때만 TAB_HIDDEN을 해제."""
        if not self.tab_violation_active:
            return False
        if self.state is not GuardState.FULLSCREEN or self.tab_hidden:
            return False
        self.tab_violation_active = False
        self._emit(ViolationCleared(ViolationKind.TAB_HIDDEN))
        return True

    # ── 카운트다운 ───────────────────────────────────────────────────────────

    def tick(self) -> None:
        """카운트다운 1초 진행. 0이 되면 ForceTerminate를 정확히 한 번 보낸다."""
        if not self.countdown_running:
            return
        self.remaining -= 1
        self._emit(CountdownTick(self.remaining))
        if self.remaining <= 0:
            self.remaining = 0
            self.terminated = True
            self._stop_ticker()
            logger.warning("전체화면 복귀 시간 초과: 시험 강제 종료")
            self._emit(ForceTerminate())

    def _start_countdown(self) -> None:
        self.remaining = self.timeout_seconds
        self._emit(CountdownTick(self.remaining))
        self._ticker = Ticker(self.tick_seconds, self.tick, name="fullscreen-countdown")
        self._ticker.start()

    def _cancel_countdown(self) -> None:
        self._stop_ticker()
        if not self.terminated:
            self.remaining = None

    def _stop_ticker(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.stop()
