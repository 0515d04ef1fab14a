"""
services/performance_analyzer.py

제출된 답안 → 강점/약점/개선 제안/문항별 해설 (OpenAI JSON 응답).
best-effort: 실패하면 None을 돌려주고 결과 화면은 부분 데이터로 표시된다.
"""

import asyncio
import json
import logging
from typing import Optional, Sequence

from openai import OpenAI
from pydantic import ValidationError

from proctored_exam.models.question_model import QuestionAttempt
from proctored_exam.models.result_model import PerformanceAnalysis
from proctored_exam.services.openai_client import call_openai, make_client, parse_json_object

logger = logging.getLogger(__name__)


def _build_analysis_system_prompt() -> str:
    return """You are an AI quiz performance analyzer. Analyze the student's quiz performance and provide
insights into their strengths and weaknesses in the given topic.

Return a single JSON object:
{
  "strengths": "The student's strengths in the topic.",
  "weaknesses": "The student's weaknesses in the topic.",
  "suggestions": "Suggestions for improvement.",
  "explanations": ["One short explanation per question, in the same order as the input."]
}"""


def _build_analysis_user_content(topic: str, attempts: Sequence[QuestionAttempt]) -> str:
    payload = {
        "topic": topic,
        "questions": [
            {
                "question": a.question,
                "options": a.options,
                "correctAnswerIndex": a.correct_answer_index,
                "studentAnswerIndex": a.student_answer_index,
            }
            for a in attempts
        ],
    }
    return json.dumps(payload, ensure_ascii=False)


class PerformanceAnalyzer:
    def __init__(self, api_key: str = "", client: Optional[OpenAI] = None):
        self._client = client if client is not None else make_client(api_key)

    async def analyze(self, topic: str, attempts: Sequence[QuestionAttempt]) -> Optional[PerformanceAnalysis]:
        return await asyncio.to_thread(self._analyze_sync, topic, list(attempts))

    def _analyze_sync(self, topic: str, attempts: Sequence[QuestionAttempt]) -> Optional[PerformanceAnalysis]:
        if self._client is None:
            logger.warning("성적 분석 생략: OpenAI 클라이언트 없음")
            return None

        raw = call_openai(
            _build_analysis_system_prompt(),
            _build_analysis_user_content(topic, attempts),
            self._client,
        )
        data = parse_json_object(raw)
        if data is None:
            logger.error("성적 분석 응답 파싱 실패")
            return None

        explanations = data.get("explanations") or []
        if not isinstance(explanations, list):
            explanations = [str(explanations)]
        try:
            return PerformanceAnalysis(
                strengths=str(data.get("strengths", "")),
                weaknesses=str(data.get("weaknesses", "")),
                suggestions=str(data.get("suggestions", "")),
                explanations=[str(e) for e in explanations],
            )
        except ValidationError as e:
            logger.error(f"성적 분석 결과 검증 실패: {e}")
            return None
