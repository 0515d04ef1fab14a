"""
models/session_state.py

시험 세션 진행 상태 모델.
Pydantic BaseModel 기반 — 직렬화/역직렬화 및 타입 안전성 확보.
UI 코드 없음.
"""

import time
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

import config
from proctored_exam.errors import AnswerEntryBlocked


class SessionState(str, Enum):
    IDLE = "idle"
    ACQUIRING_PERMISSIONS = "acquiring_permissions"
    INSTRUCTIONS = "instructions"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    SUBMITTING = "submitting"
    RESULTS = "results"


class PermissionState(BaseModel):
    """
    장치 권한 상태. None은 아직 요청하지 않음(unknown).
    DeviceAccessManager만 값을 바꾼다.
    """

    camera: Optional[bool] = None
    microphone: Optional[bool] = None
    screen: Optional[bool] = None

    @property
    def all_granted(self) -> bool:
        return self.camera is True and self.microphone is True and self.screen is True

    def missing(self) -> List[str]:
        """아직 허용되지 않은 장치 이름 목록."""
        names = []
        if self.camera is not True:
            names.append("camera")
        if self.microphone is not True:
            names.append("microphone")
        if self.screen is not True:
            names.append("screen")
        return names


class AnswerSet(BaseModel):
    """
    학생 답안지 (OMR 카드).

    Attributes:
        answers: 문제 인덱스 순서의 선택 보기 인덱스. 미응답은 None.
        frozen:  제출 단계에 들어가면 True. 이후 변경 불가.
    """

    answers: List[Optional[int]] = Field(default_factory=list)
    frozen: bool = False

    @classmethod
    def empty(cls, question_count: int) -> "AnswerSet":
        return cls(answers=[None] * question_count)

    def select(self, question_index: int, option_index: Optional[int]) -> None:
        if self.frozen:
            raise AnswerEntryBlocked("제출된 답안지는 수정할 수 없습니다.")
        if not (0 <= question_index < len(self.answers)):
            raise IndexError(f"문제 인덱스 범위를 벗어났습니다: {question_index}")
        self.answers[question_index] = option_index

    def freeze(self) -> None:
        self.frozen = True

    @property
    def answered_count(self) -> int:
        return sum(1 for a in self.answers if a is not None)


class TimerState(BaseModel):
    remaining_seconds: int = Field(default=0, ge=0)
    paused: bool = False


class ClientMessage(BaseModel):
    """
    브라우저가 폴링해 가는 메시지.
    type="toast"는 알림, type="command"는 전체화면 진입/해제 같은 지시.
    """

    type: str = "toast"
    title: str
    detail: str = ""
    variant: str = "default"
    created_at: float = Field(default_factory=time.time)


class ProctoringSettings(BaseModel):
    """세션별 감독 설정. 기본값은 config 모듈 상수."""

    fullscreen_return_timeout_seconds: int = Field(
        default=config.FULLSCREEN_RETURN_TIMEOUT_SECONDS, ge=1
    )
    sampling_period_ms: int = Field(default=config.CAMERA_ANALYSIS_INTERVAL_MS, gt=0)
    grace_period_checks: int = Field(default=config.PROCTORING_GRACE_PERIOD_CHECKS, ge=0)
    mic_activity_floor: float = config.MIC_ACTIVITY_FLOOR
    countdown_tick_seconds: float = Field(default=1.0, gt=0)
    timer_tick_seconds: float = Field(default=1.0, gt=0)
    pause_clock_on_violation: bool = config.PAUSE_CLOCK_ON_VIOLATION
