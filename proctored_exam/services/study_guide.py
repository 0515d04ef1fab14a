"""
services/study_guide.py

오답/미응답 문제 복습 자료 생성 + PDF 렌더링.
Public API:
  - generate_revisit_material(topic, attempts, client) -> RevisitMaterial
  - render_revisit_pdf(material) -> bytes

OpenAI 호출이 실패하면 해설 없이 문제/정답만 담은 기본 자료로 폴백한다.
"""

import json
import logging
import textwrap
from typing import List, Optional, Sequence

import fitz  # PyMuPDF
from openai import OpenAI
from pydantic import ValidationError

from proctored_exam.models.question_model import QuestionAttempt
from proctored_exam.models.result_model import RevisitMaterial, RevisitSection
from proctored_exam.services.exam_service import get_incorrect_attempts
from proctored_exam.services.openai_client import call_openai, parse_json_object

logger = logging.getLogger(__name__)

# A4 (pt)
_PAGE_WIDTH = 595
_PAGE_HEIGHT = 842
_MARGIN = 50
_LINE_HEIGHT = 15
_WRAP_CHARS = 90


def _build_revisit_system_prompt(topic: str) -> str:
    return f"""You are creating a "Revisit Guide" to help a student understand concepts they struggled with
on a quiz about "{topic}". Only cover the questions provided, which the student answered incorrectly or skipped.

Return a single JSON object:
{{
  "title": "Revisit Guide for {topic}",
  "introduction": "An encouraging introductory paragraph.",
  "sections": [
    {{"question": "...", "correctAnswer": "...", "studentAnswer": "... or Skipped", "detailedExplanation": "..."}}
  ]
}}

For each detailedExplanation: explain the core concept, why the correct answer is right, and why the
distractors are wrong, in clear and simple language."""


def _fallback_material(topic: str, wrong: Sequence[QuestionAttempt]) -> RevisitMaterial:
    return RevisitMaterial(
        title=f"Revisit Guide for {topic}",
        introduction="Review the questions below and compare your answer with the correct one.",
        sections=[
            RevisitSection(
                question=a.question,
                correct_answer=a.correct_answer_text,
                student_answer=a.student_answer_text,
            )
            for a in wrong
        ],
    )


def generate_revisit_material(
    topic: str,
    attempts: Sequence[QuestionAttempt],
    client: Optional[OpenAI] = None,
) -> RevisitMaterial:
    wrong = get_incorrect_attempts(attempts)
    if not wrong:
        return RevisitMaterial(title=f"Revisit Guide for {topic}", introduction="No incorrect answers. Great job!")

    user_content = json.dumps(
        [
            {
                "question": a.question,
                "options": a.options,
                "correctAnswerText": a.correct_answer_text,
                "studentAnswerText": a.student_answer_text,
            }
            for a in wrong
        ],
        ensure_ascii=False,
    )
    data = parse_json_object(call_openai(_build_revisit_system_prompt(topic), user_content, client))
    if data is None:
        logger.warning("복습 자료 생성 실패, 기본 자료로 대체")
        return _fallback_material(topic, wrong)

    try:
        sections = [
            RevisitSection(
                question=str(s.get("question", "")),
                correct_answer=str(s.get("correctAnswer", "")),
                student_answer=s.get("studentAnswer"),
                detailed_explanation=str(s.get("detailedExplanation", "")),
            )
            for s in data.get("sections", [])
            if isinstance(s, dict)
        ]
        return RevisitMaterial(
            title=str(data.get("title") or f"Revisit Guide for {topic}"),
            introduction=str(data.get("introduction", "")),
            sections=sections,
        )
    except ValidationError as e:
        logger.warning(f"복습 자료 검증 실패, 기본 자료로 대체: {e}")
        return _fallback_material(topic, wrong)


def _wrap(text: str) -> List[str]:
    lines: List[str] = []
    for paragraph in (text or "").splitlines() or [""]:
        lines.extend(textwrap.wrap(paragraph, _WRAP_CHARS) or [""])
    return lines


def render_revisit_pdf(material: RevisitMaterial) -> bytes:
    """RevisitMaterial → PDF 바이트. 줄 단위로 쓰고 페이지가 차면 새 페이지."""
    doc = fitz.open()
    try:
        page = doc.new_page(width=_PAGE_WIDTH, height=_PAGE_HEIGHT)
        y = _MARGIN

        def write(line: str, fontsize: float = 10, fontname: str = "helv") -> None:
            nonlocal page, y
            if y + _LINE_HEIGHT > _PAGE_HEIGHT - _MARGIN:
                page = doc.new_page(width=_PAGE_WIDTH, height=_PAGE_HEIGHT)
                y = _MARGIN
            page.insert_text((_MARGIN, y), line, fontsize=fontsize, fontname=fontname)
            y += _LINE_HEIGHT

        write(material.title, fontsize=16, fontname="hebo")
        y += _LINE_HEIGHT
        for line in _wrap(material.introduction):
            write(line)

        for no, section in enumerate(material.sections, start=1):
            y += _LINE_HEIGHT
            for line in _wrap(f"Q{no}. {section.question}"):
                write(line, fontsize=11, fontname="hebo")
            write(f"Correct answer: {section.correct_answer}")
            write(f"Your answer: {section.student_answer or 'Skipped'}")
            for line in _wrap(section.detailed_explanation):
                write(line)

        return doc.tobytes()
    finally:
        doc.close()
