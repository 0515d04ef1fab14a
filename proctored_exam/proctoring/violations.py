"""
proctoring/violations.py

모든 감독 신호가 모이는 곳. 일시정지 상태의 유일한 기록자(single writer).

- 유예 기간: 분석된 샘플이 grace_period_checks개 쌓이기 전에는 부재/마이크 위반으로
  일시정지하지 않는다 (센서 워밍업 노이즈 흡수). 건너뛴 틱은 세지 않는다.
- 부재 위반은 신호가 돌아오면 자동 해제. 단 전체화면/탭 위반이 남아 있으면 계속 일시정지.
- 화면 표시용 위반은 하나: 전체화면/탭 위반이 부재 위반보다 우선.
- 책/휴대폰/시선 이탈은 알림(AdvisoryRaised)만 보내고 일시정지하지 않는다.
"""

import logging
from typing import Dict, List, Optional, Tuple

from config import PROCTORING_GRACE_PERIOD_CHECKS
from proctored_exam.models.proctoring_model import (
    SCREEN_KINDS,
    SampleResult,
    ViolationKind,
    ViolationRecord,
)
from proctored_exam.proctoring.events import AdvisoryRaised, Emit, PauseChanged

logger = logging.getLogger(__name__)


class ViolationAggregator:
    def __init__(self, emit: Emit, grace_period_checks: int = PROCTORING_GRACE_PERIOD_CHECKS):
        self._emit = emit
        self.grace_period_checks = grace_period_checks
        self.grace_checks_elapsed = 0
        self._screen: Dict[ViolationKind, ViolationRecord] = {}
        self._presence: Optional[ViolationRecord] = None
        self.history: List[ViolationRecord] = []
        self.advisories: List[ViolationRecord] = []

    def reset(self) -> None:
        """시험 시작 시 호출: 유예 카운터와 활성 위반 초기화 (이력은 유지)."""
        before = self._view()
        self.grace_checks_elapsed = 0
        self._screen.clear()
        self._presence = None
        self._notify_if_changed(before)

    # ── 조회 ────────────────────────────────────────────────────────────────

    @property
    def grace_elapsed(self) -> bool:
        return self.grace_checks_elapsed >= self.grace_period_checks

    @property
    def paused(self) -> bool:
        return bool(self._screen) or self._presence is not None

    @property
    def presence_violation(self) -> Optional[ViolationRecord]:
        return self._presence

    @property
    def active_violation(self) -> Optional[ViolationRecord]:
        """표시용 위반 하나. 전체화면 이탈 > 탭 숨김 > 부재/마이크."""
        for kind in SCREEN_KINDS:
            if kind in self._screen:
                return self._screen[kind]
        return self._presence

    def active_records(self) -> List[ViolationRecord]:
        records = [self._screen[k] for k in SCREEN_KINDS if k in self._screen]
        if self._presence is not None:
            records.append(self._presence)
        return records

    # ── 입력 ────────────────────────────────────────────────────────────────

    def raise_violation(self, record: ViolationRecord) -> None:
        """FullscreenGuard가 보낸 전체화면/탭 위반 등록. 같은 종류가 이미 있으면 무시."""
        if not record.is_screen:
            raise ValueError(f"화면 위반 종류가 아닙니다: {record.kind}")
        if record.kind in self._screen:
            return
        before = self._view()
        record.grace_checks_elapsed = self.grace_checks_elapsed
        self._screen[record.kind] = record
        self.history.append(record)
        self._notify_if_changed(before)

    def clear_violation(self, kind: ViolationKind) -> None:
        if kind not in self._screen:
            return
        before = self._view()
        del self._screen[kind]
        self._notify_if_changed(before)

    def on_sample(self, result: Optional[SampleResult], mic_active: bool) -> None:
        """샘플링 틱 결과 반영. result가 None이면 건너뛴 틱."""
        if result is None:
            return

        if self.grace_checks_elapsed < self.grace_period_checks:
            self.grace_checks_elapsed += 1

        if result.human_present and result.has_advisory_anomaly:
            advisory = ViolationRecord(
                kind=ViolationKind.POLICY_ANOMALY,
                grace_checks_elapsed=self.grace_checks_elapsed,
                reason=result.anomaly_reason(),
            )
            self.advisories.append(advisory)
            self._emit(AdvisoryRaised(reason=advisory.reason))

        if not self.grace_elapsed:
            return

        if not result.human_present:
            kind: Optional[ViolationKind] = ViolationKind.HUMAN_ABSENT
        elif not mic_active:
            kind = ViolationKind.MIC_INACTIVE
        else:
            kind = None

        before = self._view()
        if kind is None:
            if self._presence is not None:
                logger.info(f"부재 위반 해제: {self._presence.kind.value}")
            self._presence = None
        elif self._presence is None or self._presence.kind is not kind:
            self._presence = ViolationRecord(
                kind=kind,
                grace_checks_elapsed=self.grace_checks_elapsed,
                reason=result.reason if kind is ViolationKind.HUMAN_ABSENT else "",
            )
            self.history.append(self._presence)
            logger.warning(f"부재 위반 발생: {kind.value}")
        self._notify_if_changed(before)

    # ── 내부 ────────────────────────────────────────────────────────────────

    def _view(self) -> Tuple[bool, Optional[ViolationRecord]]:
        return self.paused, self.active_violation

    def _notify_if_changed(self, before: Tuple[bool, Optional[ViolationRecord]]) -> None:
        paused, active = self._view()
        if paused != before[0] or active is not before[1]:
            self._emit(PauseChanged(paused=paused, active=active))
