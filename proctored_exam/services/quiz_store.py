"""
services/quiz_store.py — 퀴즈 문서 저장소 (생성/조회만 지원)

메모리에 보관하고, storage_dir가 주어지면 퀴즈마다 JSON 파일로도 기록한다.
재시작 후에는 파일에서 다시 읽어 온다.
"""

import logging
import os
import threading
import uuid
from typing import Dict, Optional

from pydantic import ValidationError

from proctored_exam.errors import QuizNotFound
from proctored_exam.models.question_model import Quiz, QuizDraft

logger = logging.getLogger(__name__)


class QuizStore:
    def __init__(self, storage_dir: Optional[str] = None):
        self._lock = threading.Lock()
        self._quizzes: Dict[str, Quiz] = {}
        self.storage_dir = storage_dir or None
        if self.storage_dir:
            os.makedirs(self.storage_dir, exist_ok=True)

    def save(self, draft: QuizDraft) -> str:
        """새 퀴즈를 저장하고 퀴즈 ID를 반환."""
        quiz = Quiz(id=uuid.uuid4().hex, **draft.model_dump())
        with self._lock:
            self._quizzes[quiz.id] = quiz
            if self.storage_dir:
                with open(self._path(quiz.id), "w", encoding="utf-8") as f:
                    f.write(quiz.model_dump_json())
        logger.info(f"퀴즈 저장: id={quiz.id} topic={quiz.topic!r} 문제 {len(quiz.questions)}개")
        return quiz.id

    def get(self, quiz_id: str) -> Quiz:
        """퀴즈 ID로 조회. 없으면 QuizNotFound."""
        with self._lock:
            quiz = self._quizzes.get(quiz_id)
            if quiz is not None:
                return quiz
            quiz = self._load(quiz_id)
            if quiz is None:
                raise QuizNotFound(quiz_id)
            self._quizzes[quiz_id] = quiz
            return quiz

    def _path(self, quiz_id: str) -> str:
        return os.path.join(self.storage_dir, f"{quiz_id}.json")

    def _load(self, quiz_id: str) -> Optional[Quiz]:
        # 경로 조작 방지: 발급한 ID 형식(hex)만 허용
        if not self.storage_dir or not quiz_id.isalnum():
            return None
        path = self._path(quiz_id)
        if not os.path.exists(path):
            return None
        try:
            with open(path, encoding="utf-8") as f:
                return Quiz.model_validate_json(f.read())
        except (OSError, ValidationError) as e:
            logger.error(f"퀴즈 파일 읽기 실패: {path}: {e}")
            return None
