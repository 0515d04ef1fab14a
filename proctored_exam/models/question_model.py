from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from config import DEFAULT_QUIZ_DURATION_MINUTES


class McqQuestion(BaseModel):
    """
    객관식(MCQ) 문제 모델
    Pydantic v2 적용
    """
    question: str = Field(
        ...,
        min_length=1,
        description="발문/문제 내용"
    )
    options: List[str] = Field(
        ...,
        description="보기 리스트 (객관식 선지)"
    )
    correct_answer_index: int = Field(
        ...,
        ge=0,
        description="정답 보기의 인덱스 (0-based)"
    )

    @field_validator('options')
    @classmethod
    def validate_options_length(cls, v: List[str]) -> List[str]:
        """
        검증 로직 1: 보기는 최소 2개 이상이어야 한다.
        """
        if len(v) < 2:
            raise ValueError("보기(options)는 최소 2개 이상의 항목이 필요합니다.")
        return v

    @model_validator(mode='after')
    def validate_answer_in_options(self) -> 'McqQuestion':
        """
        검증 로직 2: 정답 인덱스는 반드시 보기 리스트 범위 안에 있어야 한다.
        """
        if self.correct_answer_index >= len(self.options):
            raise ValueError(
                f"정답 인덱스({self.correct_answer_index})가 보기 개수({len(self.options)})를 벗어났습니다."
            )
        return self


class QuizDraft(BaseModel):
    """저장 전 퀴즈 문서. 문제 생성기는 외부 협력자이며 여기서는 결과만 받는다."""

    topic: str = Field(..., min_length=1, description="퀴즈 주제")
    questions: List[McqQuestion] = Field(..., min_length=1, description="문제 목록")
    duration_minutes: int = Field(
        default=DEFAULT_QUIZ_DURATION_MINUTES,
        gt=0,
        description="제한 시간 (분)"
    )


class Quiz(QuizDraft):
    """저장소에서 읽어 온 퀴즈. 저장소가 발급한 ID를 가진다."""

    id: str = Field(..., description="퀴즈 문서 ID")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60


class QuestionAttempt(McqQuestion):
    """채점/분석용: 문제 + 학생이 고른 보기 인덱스 (미응답이면 None)."""

    student_answer_index: Optional[int] = None

    @property
    def is_correct(self) -> bool:
        return self.student_answer_index == self.correct_answer_index

    @property
    def student_answer_text(self) -> str:
        idx = self.student_answer_index
        if idx is None or not (0 <= idx < len(self.options)):
            return "Skipped"
        return self.options[idx]

    @property
    def correct_answer_text(self) -> str:
        return self.options[self.correct_answer_index]
