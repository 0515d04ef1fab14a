"""
Pytest Configuration for Proctored Exam Tests
"""
import os
import sys
from typing import List, Optional

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from proctored_exam.models.proctoring_model import SampleResult
from proctored_exam.models.question_model import McqQuestion, Quiz
from proctored_exam.models.result_model import PerformanceAnalysis
from proctored_exam.models.session_state import ProctoringSettings
from proctored_exam.proctoring.controller import SessionController
from proctored_exam.proctoring.devices import ClientMediaSource

# 테스트에서 틱을 직접 구동하므로 주기 작업은 사실상 돌지 않게 둔다
SLOW_TICK = 3600.0

VALID_FRAME = "data:image/jpeg;base64," + "A" * 120
LOUD_BINS = [40] * 128
SILENT_BINS = [0] * 128


class FakeClassifier:
    """미리 넣어 둔 SampleResult를 순서대로 돌려주는 비전 분류기. 비면 '사람 있음'."""

    def __init__(self, results: Optional[List[object]] = None):
        self.results = list(results or [])
        self.calls = 0

    def queue(self, *results) -> None:
        self.results.extend(results)

    async def analyze(self, image_data_uri: str) -> SampleResult:
        self.calls += 1
        item = self.results.pop(0) if self.results else SampleResult(human_present=True)
        if isinstance(item, Exception):
            raise item
        return item


class FakeAnalyzer:
    def __init__(self, analysis: Optional[PerformanceAnalysis] = None, error: Optional[Exception] = None):
        self.analysis = analysis
        self.error = error
        self.calls = 0

    async def analyze(self, topic, attempts):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.analysis


@pytest.fixture
def questions():
    """Five questions whose correct answers are option 0..4 % len(options)"""
    return [
        McqQuestion(question=f"Question {i + 1}?", options=["A", "B", "C", "D"], correct_answer_index=i % 4)
        for i in range(5)
    ]


@pytest.fixture
def quiz(questions):
    return Quiz(id="quiz1", topic="Networking", questions=questions, duration_minutes=10)


@pytest.fixture
def settings():
    return ProctoringSettings(
        fullscreen_return_timeout_seconds=30,
        sampling_period_ms=int(SLOW_TICK * 1000),
        grace_period_checks=3,
        mic_activity_floor=0.5,
        countdown_tick_seconds=SLOW_TICK,
        timer_tick_seconds=SLOW_TICK,
        pause_clock_on_violation=False,
    )


@pytest.fixture
def media():
    source = ClientMediaSource()
    source.report_user_media(True)
    source.report_display_media(True, display_surface="monitor")
    source.push_sample(VALID_FRAME, LOUD_BINS)
    return source


@pytest.fixture
def classifier():
    return FakeClassifier()


@pytest.fixture
def analyzer():
    return FakeAnalyzer(PerformanceAnalysis(strengths="Routing", weaknesses="DNS", suggestions="Review DNS"))


@pytest.fixture
def controller(media, classifier, analyzer, settings, quiz):
    """Controller loaded with a quiz and all permissions granted (Instructions state)"""
    ctrl = SessionController(media, classifier, analyzer, settings=settings, session_id="EXM_TEST01")
    ctrl.load_quiz(quiz)
    ctrl.acquire_camera_and_mic()
    ctrl.acquire_screen_share()
    return ctrl
