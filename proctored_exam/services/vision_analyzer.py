"""
services/vision_analyzer.py

웹캠 스냅샷 → 감독 이상 징후 판정 (멀티모달 비전).
Public API:
  - VisionAnalyzer(api_key).analyze(image_data_uri) -> SampleResult   (async)

실패(클라이언트 없음, API 최종 실패, 응답 파싱 실패)는 SamplingInfrastructureFailure로
올린다. 호출자는 이를 "이번 틱 샘플 없음"으로 취급하며, human_present=False로
해석하지 않는다.
"""

import asyncio
import logging
from typing import Optional

from openai import OpenAI
from pydantic import ValidationError

from config import VISION_MODEL_NAME
from proctored_exam.errors import SamplingInfrastructureFailure
from proctored_exam.models.proctoring_model import SampleResult
from proctored_exam.services.openai_client import call_openai, make_client, parse_json_object

logger = logging.getLogger(__name__)

_DATA_URI_PREFIX = "data:image/jpeg;base64,"


def _build_vision_system_prompt() -> str:
    return """You are an AI assistant helping with basic exam proctoring by analyzing an image from a user's webcam.

Analyze the provided image and determine the following:
1. isHumanDetected: Is a person clearly visible in front of the camera?
2. isBookDetected: Is there a physical book clearly visible in the user's immediate surroundings (e.g., on the desk, in hand)?
3. isPhoneDetected: Is there a mobile phone clearly visible and potentially being used or looked at by the user?
4. isLookingAway: Does the user appear to be significantly looking away from the general direction of the computer screen?

Return a single JSON object:
{"isHumanDetected": bool, "isBookDetected": bool, "isPhoneDetected": bool, "isLookingAway": bool, "anomalyReason": string}

If any anomaly is true, give a brief, neutral anomalyReason (e.g. "Book detected on desk", "Phone visible in hand").
If no clear anomalies are detected, the anomaly booleans must be false and anomalyReason may be empty.
Focus on clear, unambiguous visual evidence. If unsure, err on the side of not reporting an anomaly."""


def to_data_uri(frame: str) -> str:
    """순수 base64 문자열이면 data URI 형식으로 감싼다."""
    if frame.startswith("data:"):
        return frame
    return _DATA_URI_PREFIX + frame


class VisionAnalyzer:
    """
    OpenAI 비전 모델 기반 시각 이상 분류기.

    Args:
        api_key: OpenAI API 키. 비어 있으면 모든 호출이 인프라 실패가 된다.
        client:  테스트 등에서 직접 주입할 클라이언트 (api_key보다 우선).
    """

    def __init__(self, api_key: str = "", client: Optional[OpenAI] = None, model: str = VISION_MODEL_NAME):
        self._client = client if client is not None else make_client(api_key)
        self.model = model

    async def analyze(self, image_data_uri: str) -> SampleResult:
        # 동기 OpenAI 클라이언트는 스레드에서 실행
        return await asyncio.to_thread(self._analyze_sync, image_data_uri)

    def _analyze_sync(self, image_data_uri: str) -> SampleResult:
        if self._client is None:
            raise SamplingInfrastructureFailure("OpenAI 클라이언트가 초기화되지 않았습니다.")

        user_content: list = [
            {"type": "text", "text": "Analyze this webcam snapshot for proctoring anomalies."},
            {
                "type": "image_url",
                "image_url": {"url": to_data_uri(image_data_uri), "detail": "low"},
            },
        ]
        raw = call_openai(
            _build_vision_system_prompt(),
            user_content,
            self._client,
            model=self.model,
            max_retries=1,  # 주기 샘플링이므로 재시도 대신 다음 틱을 기다린다
            max_tokens=300,
        )
        if raw is None:
            raise SamplingInfrastructureFailure("비전 분석 API 호출 실패")

        data = parse_json_object(raw)
        if data is None:
            raise SamplingInfrastructureFailure("비전 분석 응답을 JSON으로 해석하지 못했습니다.")
        return parse_sample_result(data)


def parse_sample_result(data: dict) -> SampleResult:
    """LLM JSON(camelCase) → SampleResult. 필드가 없으면 이상 없음 쪽으로 채운다."""
    try:
        result = SampleResult(
            human_present=bool(data.get("isHumanDetected", True)),
            book_detected=bool(data.get("isBookDetected", False)),
            phone_detected=bool(data.get("isPhoneDetected", False)),
            looking_away=bool(data.get("isLookingAway", False)),
            reason=str(data.get("anomalyReason") or ""),
        )
    except ValidationError as e:
        raise SamplingInfrastructureFailure(f"비전 분석 응답 검증 실패: {e}") from e

    if result.has_advisory_anomaly and not result.reason:
        result.reason = result.anomaly_reason()
    elif not result.has_advisory_anomaly and not result.reason:
        result.reason = "No clear anomalies detected."
    return result
