"""
services/exam_service.py

시험 채점 및 결과 분석 비즈니스 로직.
순수 Python 함수로 구성 — UI 코드, 전역 상태 변경 없음.
"""

from typing import List, Optional, Sequence

from config import PASS_SCORE
from proctored_exam.models.question_model import McqQuestion, QuestionAttempt


def build_attempts(
    questions: Sequence[McqQuestion],
    answers: Sequence[Optional[int]],
) -> List[QuestionAttempt]:
    """
    문제 + 답안지 → QuestionAttempt 리스트.
    답안지 길이가 짧으면 나머지는 미응답(None)으로 채운다.
    """
    attempts: List[QuestionAttempt] = []
    for idx, q in enumerate(questions):
        student = answers[idx] if idx < len(answers) else None
        attempts.append(
            QuestionAttempt(
                question=q.question,
                options=list(q.options),
                correct_answer_index=q.correct_answer_index,
                student_answer_index=student,
            )
        )
    return attempts


def count_correct(attempts: Sequence[QuestionAttempt]) -> int:
    return sum(1 for a in attempts if a.is_correct)


def calculate_score(attempts: Sequence[QuestionAttempt]) -> float:
    """
    100점 만점 환산 점수: correct_count / total * 100.

    응답하지 않은 문제는 오답으로 처리.

    Returns:
        0.0 ~ 100.0 범위의 점수 (소수점 둘째 자리 반올림).
        attempts가 비어 있으면 0.0 반환.
    """
    if not attempts:
        return 0.0
    return round(count_correct(attempts) / len(attempts) * 100, 2)


def get_incorrect_attempts(attempts: Sequence[QuestionAttempt]) -> List[QuestionAttempt]:
    """
    오답 + 미응답 문제 리스트를 반환한다 (복습 자료용). 원본 순서 유지.
    """
    return [a for a in attempts if not a.is_correct]


def is_passed(score: float, pass_score: float = PASS_SCORE) -> bool:
    """
    합격 여부를 반환한다.

    Args:
        score:      calculate_score()가 반환한 점수 (0.0 ~ 100.0).
        pass_score: 합격 기준 점수 (기본값 60.0점).
    """
    return score >= pass_score
