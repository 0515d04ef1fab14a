"""
models/proctoring_model.py

감독 신호 모델: 위반 기록, 프레임 분석 결과.
"""

import time
from enum import Enum

from pydantic import BaseModel, Field


class ViolationKind(str, Enum):
    FULLSCREEN_EXIT = "fullscreen_exit"
    TAB_HIDDEN = "tab_hidden"
    HUMAN_ABSENT = "human_absent"
    MIC_INACTIVE = "mic_inactive"
    POLICY_ANOMALY = "policy_anomaly"   # 책/휴대폰/시선 이탈: 알림만 보냄


SCREEN_KINDS = (ViolationKind.FULLSCREEN_EXIT, ViolationKind.TAB_HIDDEN)


class ViolationRecord(BaseModel):
    kind: ViolationKind
    started_at: float = Field(default_factory=time.time)
    grace_checks_elapsed: int = 0
    reason: str = ""

    @property
    def is_screen(self) -> bool:
        return self.kind in SCREEN_KINDS


class SampleResult(BaseModel):
    """
    비전 분석 협력자가 틱마다 돌려주는 판정. 저장하지 않는다.
    """

    human_present: bool = True
    book_detected: bool = False
    phone_detected: bool = False
    looking_away: bool = False
    reason: str = ""

    @property
    def has_advisory_anomaly(self) -> bool:
        return self.book_detected or self.phone_detected or self.looking_away

    def anomaly_reason(self) -> str:
        """reason이 비어 있으면 감지 항목으로 사유를 채운다."""
        if self.reason:
            return self.reason
        reasons = []
        if self.book_detected:
            reasons.append("Book detected")
        if self.phone_detected:
            reasons.append("Phone detected")
        if self.looking_away:
            reasons.append("User looking away")
        return ", ".join(reasons) or "Anomaly detected"
