"""
proctoring/sampler.py

주기적 환경 샘플링: 카메라 프레임 → 비전 분석, 마이크 주파수 데이터 → 활성 여부.

- 비전 분석 요청은 동시에 최대 1개 (진행 중이면 이번 틱은 건너뜀)
- 전체화면 복귀 카운트다운 중에는 샘플링하지 않음 (is_blocked)
- 분석 호출 실패는 AnalysisFailed 이벤트로만 알린다 (위반이 아님)
"""

import logging
from typing import Callable, Optional, Sequence

import numpy as np

from config import ANALYSER_FFT_SIZE, MIC_ACTIVITY_FLOOR
from proctored_exam.proctoring.devices import ClientMediaSource
from proctored_exam.proctoring.events import AnalysisFailed, Emit, SampleTaken
from proctored_exam.proctoring.ticker import Ticker

logger = logging.getLogger(__name__)

# 브라우저 AnalyserNode 기본 데시벨 범위
_MIN_DECIBELS = -100.0
_MAX_DECIBELS = -30.0


def byte_frequency_data(pcm: bytes, fft_size: int = ANALYSER_FFT_SIZE) -> list[int]:
    """
    int16 PCM → AnalyserNode.getByteFrequencyData()와 같은 0~255 주파수 빈 (fft_size/2개).
    원시 오디오를 올리는 클라이언트용.
    """
    pcm = pcm[: len(pcm) - len(pcm) % 2]  # 끝의 홀수 바이트는 샘플이 아님
    samples = np.frombuffer(pcm, dtype=np.int16).astype(np.float64) / 32768.0
    if samples.size < fft_size:
        samples = np.pad(samples, (fft_size - samples.size, 0))
    window = samples[-fft_size:] * np.blackman(fft_size)
    magnitude = np.abs(np.fft.rfft(window))[: fft_size // 2] / fft_size

    with np.errstate(divide="ignore"):
        decibels = 20.0 * np.log10(magnitude)
    decibels = np.nan_to_num(decibels, nan=_MIN_DECIBELS, neginf=_MIN_DECIBELS)

    scaled = (decibels - _MIN_DECIBELS) * 255.0 / (_MAX_DECIBELS - _MIN_DECIBELS)
    return np.clip(scaled, 0, 255).astype(np.uint8).tolist()


class MicActivityMeter:
    """주파수 빈 평균이 floor를 넘으면 마이크 활성."""

    def __init__(self, floor: float = MIC_ACTIVITY_FLOOR):
        self.floor = floor
        self.last_level: float = 0.0

    def is_active(self, frequency_data: Optional[Sequence[int]]) -> bool:
        if not frequency_data:
            self.last_level = 0.0
            return False
        self.last_level = float(np.mean(np.asarray(frequency_data, dtype=np.float64)))
        return self.last_level > self.floor


class EnvironmentSampler:
    """
    Args:
        media:      프레임/주파수 데이터를 주는 소스
        classifier: `async analyze(image_data_uri) -> SampleResult`를 가진 비전 분류기
        emit:       이벤트 전달 콜백 (SessionController 큐)
        meter:      마이크 활성 판정기
        is_blocked: True를 반환하는 동안 샘플링을 건너뜀
    """

    def __init__(
        self,
        media: ClientMediaSource,
        classifier,
        emit: Emit,
        meter: Optional[MicActivityMeter] = None,
        is_blocked: Callable[[], bool] = lambda: False,
    ):
        self._media = media
        self._classifier = classifier
        self._emit = emit
        self.meter = meter or MicActivityMeter()
        self._is_blocked = is_blocked
        self._ticker: Optional[Ticker] = None
        self._in_flight = False
        self._generation = 0
        self.samples_taken = 0
        self.skipped_ticks = 0
        self.failures = 0

    @property
    def running(self) -> bool:
        return self._ticker is not None and self._ticker.running

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def start(self, period_ms: int) -> None:
        self.stop()
        self._ticker = Ticker(period_ms / 1000.0, self.sample_once, name="environment-sampler")
        self._ticker.start()
        logger.info(f"환경 샘플링 시작 (주기 {period_ms}ms)")

    def stop(self) -> None:
        self._generation += 1
        ticker, self._ticker = self._ticker, None
        if ticker is not None:
            ticker.stop()
            logger.info("환경 샘플링 중지")

    async def sample_once(self) -> bool:
        """한 틱 샘플링. 이벤트를 보냈으면 True."""
        if self._in_flight:
            logger.debug("이전 분석 요청 진행 중, 틱 건너뜀")
            return False
        if self._is_blocked():
            return False

        generation = self._generation
        self._in_flight = True
        try:
            frame = self._media.capture_frame()
            if frame is None:
                self.skipped_ticks += 1
                logger.debug("프레임 준비 안 됨, 샘플 건너뜀")
                self._emit(SampleTaken(result=None, mic_active=self.meter.is_active(self._media.frequency_data())))
                return True

            try:
                result = await self._classifier.analyze(frame)
            except Exception as e:
                self.failures += 1
                logger.warning(f"비전 분석 실패: {type(e).__name__}: {e}")
                if generation == self._generation:
                    self._emit(AnalysisFailed(error=str(e) or type(e).__name__))
                return False

            if generation != self._generation:
                # 분석 도중 stop()됨: 결과 폐기
                return False
            if self._is_blocked():
                # 분석 도중 전체화면 복귀 카운트다운 시작: 결과 폐기
                self.skipped_ticks += 1
                return False
            mic_active = self.meter.is_active(self._media.frequency_data())
            self.samples_taken += 1
            self._emit(SampleTaken(result=result, mic_active=mic_active))
            return True
        finally:
            self._in_flight = False
