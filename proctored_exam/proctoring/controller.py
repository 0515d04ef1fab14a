"""
proctoring/controller.py

감독 시험 세션의 최상위 상태 머신. 시험 응시 1회당 인스턴스 1개.

    IDLE ─load_quiz─▶ ACQUIRING_PERMISSIONS ─(3개 권한 모두 허용)─▶ INSTRUCTIONS
      ─begin_exam─▶ IN_PROGRESS ◀──▶ PAUSED
      ─(submit / TimeUp / ForceTerminate)─▶ SUBMITTING ─(채점 + 성적 분석)─▶ RESULTS

하위 구성요소(DeviceAccessManager, EnvironmentSampler, FullscreenGuard,
ViolationAggregator, ExamTimer)는 서로를 모르고, emit 콜백으로 이 컨트롤러의
이벤트 큐에만 이벤트를 넣는다. 큐는 run-to-completion으로 처리되며 핸들러 안에서
await하지 않으므로, 샘플이 올린 위반은 다음 샘플링 틱 전에 반영된다.

SUBMITTING 진입 시 어떤 경로(직접 제출, 시간 종료, 전체화면 복귀 실패)든
샘플링/카운트다운/타이머를 동기적으로 멈추고 모든 미디어 스트림을 해제한다.
"""

import asyncio
import logging
import uuid
from collections import deque
from typing import Any, Deque, Dict, List, Optional

from proctored_exam.errors import (
    AnswerEntryBlocked,
    InvalidTransition,
    PermissionDenied,
    WrongShareSurface,
)
from proctored_exam.models.proctoring_model import ViolationKind
from proctored_exam.models.question_model import Quiz
from proctored_exam.models.result_model import ExamResult, PerformanceAnalysis
from proctored_exam.models.session_state import (
    AnswerSet,
    ClientMessage,
    ProctoringSettings,
    SessionState,
)
from proctored_exam.proctoring.devices import ClientMediaSource, DeviceAccessManager, MediaHandles
from proctored_exam.proctoring.events import (
    AdvisoryRaised,
    AnalysisFailed,
    CountdownTick,
    ForceTerminate,
    PauseChanged,
    SampleTaken,
    TimeUp,
    ViolationCleared,
    ViolationRaised,
)
from proctored_exam.proctoring.fullscreen import FullscreenGuard, GuardState
from proctored_exam.proctoring.sampler import EnvironmentSampler, MicActivityMeter
from proctored_exam.proctoring.timer import ExamTimer
from proctored_exam.proctoring.violations import ViolationAggregator
from proctored_exam.services.exam_service import build_attempts, calculate_score, count_correct
from proctored_exam.services.quiz_store import QuizStore
from proctored_exam.utils.logging import log_proctor_event, log_session_end, log_session_start, log_violation

logger = logging.getLogger(__name__)

_ACTIVE_STATES = (SessionState.IN_PROGRESS, SessionState.PAUSED)

REASON_SUBMITTED = "Submitted by student."
REASON_TIME_UP = "Time is up!"
REASON_FULLSCREEN_TIMEOUT = "Exam ended due to not returning to fullscreen."

RESTRICTED_ACTIONS = {
    "copy": "Copying text",
    "paste": "Pasting text",
    "cut": "Cutting text",
    "context_menu": "Right-clicking",
}

_VIOLATION_TOASTS = {
    ViolationKind.FULLSCREEN_EXIT: ("Fullscreen Exited", "Return to fullscreen to continue the exam."),
    ViolationKind.TAB_HIDDEN: ("Tab Switch Detected", "Switching tabs is not allowed. The exam is paused."),
    ViolationKind.HUMAN_ABSENT: ("Presence Check Failed", "No person detected in front of the camera. The exam is paused."),
    ViolationKind.MIC_INACTIVE: ("Microphone Inactive", "Microphone activity is required. The exam is paused."),
}


class SessionController:
    def __init__(
        self,
        media: ClientMediaSource,
        classifier,
        analyzer=None,
        settings: Optional[ProctoringSettings] = None,
        session_id: Optional[str] = None,
    ):
        """
        Args:
            media:      브라우저 미디어 소스 (권한 보고 + 프레임/오디오 버퍼)
            classifier: 비전 이상 분류기 (`async analyze(data_uri) -> SampleResult`)
            analyzer:   성적 분석기 (`async analyze(topic, attempts) -> PerformanceAnalysis | None`).
                        None이면 결과는 분석 없이 부분 데이터로 만든다.
            settings:   감독 설정 (기본값은 config)
            session_id: 로그용 세션 ID (없으면 자동 생성)
        """
        self.id = session_id or f"EXM_{uuid.uuid4().hex[:6].upper()}"
        self.settings = settings or ProctoringSettings()
        self.state = SessionState.IDLE
        self.quiz: Optional[Quiz] = None
        self.answers = AnswerSet()
        self.current_question_index = 0
        self.result: Optional[ExamResult] = None
        self.submit_reason = ""
        self.messages: Deque[ClientMessage] = deque(maxlen=100)
        self.abandoned = False

        self._analyzer = analyzer
        self._events: Deque[object] = deque()
        self._draining = False
        self._completion: Optional[asyncio.Task] = None
        self._attempts = []
        self._score = 0.0

        self.devices = DeviceAccessManager(media)
        self.aggregator = ViolationAggregator(self._post, self.settings.grace_period_checks)
        self.guard = FullscreenGuard(
            self._post,
            timeout_seconds=self.settings.fullscreen_return_timeout_seconds,
            tick_seconds=self.settings.countdown_tick_seconds,
        )
        self.timer = ExamTimer(self._post, tick_seconds=self.settings.timer_tick_seconds)
        self.sampler = EnvironmentSampler(
            media,
            classifier,
            self._post,
            meter=MicActivityMeter(self.settings.mic_activity_floor),
            is_blocked=lambda: self.guard.countdown_running,
        )

        self._handlers = {
            SampleTaken: self._on_sample,
            AnalysisFailed: self._on_analysis_failed,
            ViolationRaised: self._on_violation_raised,
            ViolationCleared: self._on_violation_cleared,
            PauseChanged: self._on_pause_changed,
            AdvisoryRaised: self._on_advisory,
            CountdownTick: self._on_countdown_tick,
            ForceTerminate: self._on_force_terminate,
            TimeUp: self._on_time_up,
        }

    # ══════════════════════════════════════════════════════════════════════
    # 수명 주기
    # ══════════════════════════════════════════════════════════════════════

    @property
    def permissions(self):
        return self.devices.permissions

    @property
    def active(self) -> bool:
        """시험 진행 중(일시정지 포함)이고 폐기되지 않았는지."""
        return self.state in _ACTIVE_STATES and not self.abandoned

    def load_quiz(self, quiz: Quiz) -> None:
        self._require(SessionState.IDLE, "load_quiz")
        self.quiz = quiz
        self.answers = AnswerSet.empty(len(quiz.questions))
        self.current_question_index = 0
        self.state = SessionState.ACQUIRING_PERMISSIONS
        log_session_start(self.id, quiz.id, len(quiz.questions), quiz.duration_seconds)

    def load_from_store(self, store: QuizStore, quiz_id: str) -> Quiz:
        """저장소에서 퀴즈를 읽어 로드. 없으면 QuizNotFound (상태는 IDLE 유지)."""
        quiz = store.get(quiz_id)
        self.load_quiz(quiz)
        return quiz

    def acquire_camera_and_mic(self) -> MediaHandles:
        self._require(SessionState.ACQUIRING_PERMISSIONS, "acquire_camera_and_mic")
        try:
            handles = self.devices.acquire_camera_and_mic()
        except PermissionDenied as e:
            self._toast(
                "Camera & Mic Access Denied",
                f"{e} Both camera and microphone are mandatory.",
                "destructive",
            )
            raise
        self._advance_if_permitted()
        return handles

    def acquire_screen_share(self) -> MediaHandles:
        self._require(SessionState.ACQUIRING_PERMISSIONS, "acquire_screen_share")
        try:
            handles = self.devices.acquire_full_screen_share()
        except WrongShareSurface as e:
            self._toast("Incorrect Screen Share Type", str(e), "destructive")
            raise
        except PermissionDenied as e:
            self._toast("Screen Share Access Denied", str(e), "destructive")
            raise
        self._toast("Screen Share Activated", "Entire screen sharing is active.")
        self._advance_if_permitted()
        return handles

    def begin_exam(self) -> None:
        self._require(SessionState.INSTRUCTIONS, "begin_exam")
        if not self.permissions.all_granted:
            missing = ", ".join(self.permissions.missing())
            raise PermissionDenied(missing, f"필수 권한이 없습니다: {missing}")

        self.state = SessionState.IN_PROGRESS
        self._command("enter_fullscreen")
        self.aggregator.reset()
        self.guard.arm()
        self.sampler.start(self.settings.sampling_period_ms)
        self.timer.start(self.quiz.duration_seconds)
        log_proctor_event(self.id, "exam_begin")

    async def submit(self, reason: str = REASON_SUBMITTED) -> ExamResult:
        """직접 제출. 이미 제출 중/완료면 같은 결과를 돌려준다."""
        if self.state is SessionState.RESULTS and self.result is not None:
            return self.result
        completion = self._enter_submitting(reason)
        return await completion

    async def wait_for_results(self) -> Optional[ExamResult]:
        if self._completion is None:
            return self.result
        return await self._completion

    def abandon(self) -> None:
        """결과 없이 세션을 폐기. 모든 작업을 멈추고 스트림을 해제한다. 이후 모든 조작은 거부."""
        self.abandoned = True
        self._shutdown()
        if self._completion is not None and not self._completion.done():
            self._completion.cancel()
        log_proctor_event(self.id, "session_abandoned", {"state": self.state.value})

    # ══════════════════════════════════════════════════════════════════════
    # 답안 입력
    # ══════════════════════════════════════════════════════════════════════

    def select_answer(self, option_index: Optional[int]) -> None:
        self._require_answer_entry("select_answer")
        question = self.quiz.questions[self.current_question_index]
        if option_index is not None and not (0 <= option_index < len(question.options)):
            raise ValueError(f"보기 인덱스 범위를 벗어났습니다: {option_index}")
        self.answers.select(self.current_question_index, option_index)

    def advance_question(self) -> int:
        self._require_answer_entry("advance_question")
        if self.current_question_index < len(self.quiz.questions) - 1:
            self.current_question_index += 1
        return self.current_question_index

    def go_to_question(self, index: int) -> int:
        self._require_answer_entry("go_to_question")
        self.current_question_index = max(0, min(index, len(self.quiz.questions) - 1))
        return self.current_question_index

    # ══════════════════════════════════════════════════════════════════════
    # 브라우저 이벤트
    # ══════════════════════════════════════════════════════════════════════

    def on_fullscreen_change(self, is_fullscreen: bool) -> None:
        if self.active:
            self.guard.on_fullscreen_change(is_fullscreen)

    def on_visibility_change(self, hidden: bool) -> None:
        if self.active:
            self.guard.on_visibility_change(hidden, exam_in_progress=self.state is SessionState.IN_PROGRESS)

    def request_resume(self) -> bool:
        """일시정지 복구 요청 (탭 복귀 확인). 해제된 위반이 있으면 True."""
        if not self.active:
            return False
        if self.guard.state is GuardState.EXITED_WAITING_RETURN:
            self._command("enter_fullscreen")
        return self.guard.request_resume()

    def on_restricted_action(self, action: str) -> bool:
        """
        복사/붙여넣기/잘라내기/우클릭 시도 보고. 진행 중(일시정지 아님)일 때만 막고 경고한다.

        Returns:
            True면 브라우저가 기본 동작을 취소해야 한다.
        """
        label = RESTRICTED_ACTIONS.get(action)
        if label is None:
            raise ValueError(f"알 수 없는 제한 동작입니다: {action}")
        if self.state is not SessionState.IN_PROGRESS or self.abandoned:
            return False
        log_proctor_event(self.id, "restricted_action", {"action": action}, level="warning")
        self._toast("Action Restricted", f"{label} is not allowed during the exam.", "warning")
        return True

    # ══════════════════════════════════════════════════════════════════════
    # 조회
    # ══════════════════════════════════════════════════════════════════════

    def drain_messages(self) -> List[ClientMessage]:
        messages = list(self.messages)
        self.messages.clear()
        return messages

    def snapshot(self) -> Dict[str, Any]:
        quiz = self.quiz
        active = self.aggregator.active_violation
        question = None
        if quiz is not None and self.active:
            q = quiz.questions[self.current_question_index]
            question = {"question": q.question, "options": q.options}
        timer = self.timer.state
        return {
            "session_id": self.id,
            "state": self.state.value,
            "abandoned": self.abandoned,
            "quiz_id": quiz.id if quiz else None,
            "topic": quiz.topic if quiz else None,
            "total_questions": len(quiz.questions) if quiz else 0,
            "current_question_index": self.current_question_index,
            "question": question,
            "answers": list(self.answers.answers),
            "answered_count": self.answers.answered_count,
            "permissions": self.permissions.model_dump(),
            "missing_permissions": self.permissions.missing(),
            "timer": {
                "remaining_seconds": timer.remaining_seconds,
                "paused": timer.paused,
                "display": ExamTimer.format(timer.remaining_seconds),
            },
            "fullscreen_countdown": self.guard.remaining if self.guard.countdown_running else None,
            "active_violation": active.model_dump(mode="json") if active else None,
            "active_violations": [r.kind.value for r in self.aggregator.active_records()],
            "grace_checks_elapsed": self.aggregator.grace_checks_elapsed,
            "submit_reason": self.submit_reason,
            # 진행 중에는 브라우저가 페이지 이탈(beforeunload) 확인을 띄운다
            "leave_guard": self.state is SessionState.IN_PROGRESS and not self.abandoned,
        }

    # ══════════════════════════════════════════════════════════════════════
    # 이벤트 큐
    # ══════════════════════════════════════════════════════════════════════

    def _post(self, event: object) -> None:
        self._events.append(event)
        if self._draining:
            return
        self._draining = True
        try:
            while self._events:
                current = self._events.popleft()
                handler = self._handlers.get(type(current))
                if handler is None:
                    logger.warning(f"처리기 없는 이벤트: {current!r}")
                    continue
                handler(current)
        finally:
            self._draining = False

    def _on_sample(self, event: SampleTaken) -> None:
        if not self.active:
            return
        self.aggregator.on_sample(event.result, event.mic_active)

    def _on_analysis_failed(self, event: AnalysisFailed) -> None:
        log_proctor_event(self.id, "analysis_error", {"error": event.error}, level="warning")
        self._toast(
            "Proctoring System Error",
            f"Could not analyze camera/mic feed: {event.error}.",
            "warning",
        )

    def _on_violation_raised(self, event: ViolationRaised) -> None:
        if not self.active:
            return
        self.aggregator.raise_violation(event.record)

    def _on_violation_cleared(self, event: ViolationCleared) -> None:
        if not self.active:
            return
        self.aggregator.clear_violation(event.kind)
        log_violation(self.id, event.kind.value, raised=False)

    def _on_pause_changed(self, event: PauseChanged) -> None:
        if not self.active:
            return
        new_state = SessionState.PAUSED if event.paused else SessionState.IN_PROGRESS
        if event.active is not None:
            log_violation(self.id, event.active.kind.value, raised=True)
            title, detail = _VIOLATION_TOASTS.get(event.active.kind, ("Exam Paused", ""))
            self._toast(title, detail, "destructive")
        if new_state is not self.state:
            self.state = new_state
            log_proctor_event(self.id, "state", {"state": new_state.value})
            if new_state is SessionState.IN_PROGRESS:
                self._toast("Exam Resumed", "All proctoring checks passed.")
        if self.settings.pause_clock_on_violation:
            self.timer.set_paused(event.paused)

    def _on_advisory(self, event: AdvisoryRaised) -> None:
        if not self.active:
            return
        log_proctor_event(self.id, "advisory", {"reason": event.reason}, level="warning")
        self._toast("Proctoring Alert", event.reason or "Potential policy violation detected.", "destructive")

    def _on_countdown_tick(self, event: CountdownTick) -> None:
        logger.debug(f"{self.id}: 전체화면 복귀까지 {event.remaining}초")

    def _on_force_terminate(self, event: ForceTerminate) -> None:
        if self.active:
            self._enter_submitting(REASON_FULLSCREEN_TIMEOUT)

    def _on_time_up(self, event: TimeUp) -> None:
        if self.active:
            self._enter_submitting(REASON_TIME_UP)

    # ══════════════════════════════════════════════════════════════════════
    # 제출
    # ══════════════════════════════════════════════════════════════════════

    def _enter_submitting(self, reason: str) -> asyncio.Task:
        if self.abandoned:
            raise InvalidTransition("submit", "abandoned")
        if self._completion is not None:
            return self._completion
        if not self.active:
            raise InvalidTransition("submit", self.state.value)

        self.state = SessionState.SUBMITTING
        self.submit_reason = reason
        log_proctor_event(self.id, "submitting", {"reason": reason})
        self._toast("Submitting Quiz...", reason)

        self._shutdown()
        self._command("exit_fullscreen")
        self.answers.freeze()
        self._attempts = build_attempts(self.quiz.questions, self.answers.answers)
        self._score = calculate_score(self._attempts)

        self._completion = asyncio.get_running_loop().create_task(
            self._complete_submission(), name=f"submit-{self.id}"
        )
        return self._completion

    async def _complete_submission(self) -> ExamResult:
        analysis: Optional[PerformanceAnalysis] = None
        if self._analyzer is not None:
            try:
                analysis = await self._analyzer.analyze(self.quiz.topic, self._attempts)
            except Exception as e:
                logger.error(f"{self.id}: 성적 분석 실패: {type(e).__name__}: {e}")
        if analysis is None:
            self._toast("AI Analysis Failed", "Could not get performance analysis from AI.", "destructive")

        correct = count_correct(self._attempts)
        self.result = ExamResult(
            quiz_id=self.quiz.id,
            topic=self.quiz.topic,
            score=self._score,
            correct_count=correct,
            total=len(self._attempts),
            unanswered_count=len(self._attempts) - self.answers.answered_count,
            attempts=self._attempts,
            analysis=analysis,
            partial=analysis is None,
            reason=self.submit_reason,
            violations=list(self.aggregator.history) + list(self.aggregator.advisories),
        )
        self.state = SessionState.RESULTS
        log_session_end(self.id, self._score, self.submit_reason, len(self.aggregator.history))
        self._toast("Quiz Submitted!", f"Your score is {self._score:.0f}%.")
        return self.result

    def _shutdown(self) -> None:
        try:
            self.sampler.stop()
            self.guard.disarm()
            self.timer.stop()
        finally:
            self.devices.release_all()

    # ══════════════════════════════════════════════════════════════════════
    # 헬퍼
    # ══════════════════════════════════════════════════════════════════════

    def _require(self, expected: SessionState, operation: str) -> None:
        if self.abandoned:
            raise InvalidTransition(operation, "abandoned")
        if self.state is not expected:
            raise InvalidTransition(operation, self.state.value)

    def _require_answer_entry(self, operation: str) -> None:
        if self.abandoned:
            raise InvalidTransition(operation, "abandoned")
        if self.state is SessionState.PAUSED:
            raise AnswerEntryBlocked("시험이 일시정지된 동안에는 답안을 입력할 수 없습니다.")
        if self.state is not SessionState.IN_PROGRESS:
            raise InvalidTransition(operation, self.state.value)

    def _advance_if_permitted(self) -> None:
        if self.permissions.all_granted:
            self.state = SessionState.INSTRUCTIONS
            log_proctor_event(self.id, "permissions_granted")

    def _toast(self, title: str, detail: str = "", variant: str = "default") -> None:
        self.messages.append(ClientMessage(type="toast", title=title, detail=detail, variant=variant))

    def _command(self, name: str) -> None:
        self.messages.append(ClientMessage(type="command", title=name))
