"""
proctoring/events.py

감독 구성요소 → SessionController 이벤트 큐로 전달되는 메시지.
구성요소는 서로를 직접 호출하지 않고 emit 콜백으로 이 이벤트만 보낸다.
"""

from dataclasses import dataclass
from typing import Callable, Optional

from proctored_exam.models.proctoring_model import SampleResult, ViolationKind, ViolationRecord


@dataclass(frozen=True)
class SampleTaken:
    """result가 None이면 프레임을 얻지 못해 건너뛴 틱."""
    result: Optional[SampleResult]
    mic_active: bool

    @property
    def skipped(self) -> bool:
        return self.result is None


@dataclass(frozen=True)
class AnalysisFailed:
    error: str


@dataclass(frozen=True)
class ViolationRaised:
    record: ViolationRecord


@dataclass(frozen=True)
class ViolationCleared:
    kind: ViolationKind


@dataclass(frozen=True)
class AdvisoryRaised:
    reason: str


@dataclass(frozen=True)
class PauseChanged:
    """ViolationAggregator가 일시정지 여부 또는 표시용 위반이 바뀔 때 보낸다."""
    paused: bool
    active: Optional[ViolationRecord]


@dataclass(frozen=True)
class CountdownTick:
    remaining: int


@dataclass(frozen=True)
class ForceTerminate:
    pass


@dataclass(frozen=True)
class TimeUp:
    pass


Emit = Callable[[object], None]
