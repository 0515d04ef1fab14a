from typing import List, Optional

from pydantic import BaseModel, Field

from proctored_exam.models.proctoring_model import ViolationRecord
from proctored_exam.models.question_model import QuestionAttempt


class PerformanceAnalysis(BaseModel):
    """성적 분석 협력자 출력. 실패 시 결과에서 생략될 수 있다."""

    strengths: str = ""
    weaknesses: str = ""
    suggestions: str = ""
    explanations: List[str] = Field(default_factory=list)


class ExamResult(BaseModel):
    quiz_id: str
    topic: str
    score: float = Field(..., ge=0.0, le=100.0)
    correct_count: int
    total: int
    unanswered_count: int
    attempts: List[QuestionAttempt]
    analysis: Optional[PerformanceAnalysis] = None
    partial: bool = False           # 분석 호출 실패로 일부 데이터만 있는 경우
    reason: str = ""                # 제출 사유 (직접 제출/시간 종료/전체화면 이탈 초과)
    violations: List[ViolationRecord] = Field(default_factory=list)


class RevisitSection(BaseModel):
    question: str
    correct_answer: str
    student_answer: Optional[str] = None
    detailed_explanation: str = ""


class RevisitMaterial(BaseModel):
    """오답/미응답 문제 복습 자료 (PDF로 내보냄)."""

    title: str
    introduction: str = ""
    sections: List[RevisitSection] = Field(default_factory=list)
