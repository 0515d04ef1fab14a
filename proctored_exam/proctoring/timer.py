"""
proctoring/timer.py

일시정지 가능한 시험 카운트다운.
remaining이 0이 되면 TimeUp을 정확히 한 번 보낸다. 이후 호출은 모두 무시.
일시정지는 감소만 막을 뿐 remaining을 바꾸지 않는다.
"""

import logging
from typing import Optional

from proctored_exam.models.session_state import TimerState
from proctored_exam.proctoring.events import Emit, TimeUp
from proctored_exam.proctoring.ticker import Ticker

logger = logging.getLogger(__name__)


class ExamTimer:
    def __init__(self, emit: Emit, tick_seconds: float = 1.0):
        self._emit = emit
        self.tick_seconds = tick_seconds
        self.remaining_seconds = 0
        self.paused = False
        self.fired = False
        self.started = False
        self._ticker: Optional[Ticker] = None

    @property
    def state(self) -> TimerState:
        return TimerState(remaining_seconds=self.remaining_seconds, paused=self.paused)

    def start(self, duration_seconds: int) -> None:
        if self.started:
            return
        self.started = True
        self.remaining_seconds = max(0, int(duration_seconds))
        if self.remaining_seconds == 0:
            self._fire()
            return
        self._ticker = Ticker(self.tick_seconds, self.tick, name="exam-timer")
        self._ticker.start()

    def set_paused(self, paused: bool) -> None:
        self.paused = paused

    def tick(self) -> None:
        if self.fired or self.paused or not self.started:
            return
        self.remaining_seconds = max(0, self.remaining_seconds - 1)
        if self.remaining_seconds == 0:
            self._fire()

    def stop(self) -> None:
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.stop()

    def _fire(self) -> None:
        if self.fired:
            return
        self.fired = True
        self.stop()
        logger.info("시험 시간 종료")
        self._emit(TimeUp())

    @staticmethod
    def format(seconds: int) -> str:
        minutes, secs = divmod(max(0, seconds), 60)
        return f"{minutes:02d}:{secs:02d}"
