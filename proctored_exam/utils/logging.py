"""
utils/logging.py — 감독 이벤트 로깅

형식: [PROCTOR] session=<id> event=<type> key=value ...
"""

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("proctored_exam.proctor")

_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def log_proctor_event(
    session_id: str,
    event_type: str,
    details: Optional[Dict[str, Any]] = None,
    level: str = "info",
) -> None:
    message = f"[PROCTOR] session={session_id} event={event_type}"
    if details:
        message += " " + " ".join(f"{k}={v}" for k, v in details.items())
    logger.log(_LEVELS.get(level, logging.INFO), message)


def log_session_start(session_id: str, quiz_id: str, question_count: int, duration_seconds: int) -> None:
    log_proctor_event(
        session_id,
        "session_start",
        {"quiz_id": quiz_id, "questions": question_count, "duration": duration_seconds},
    )


def log_session_end(session_id: str, score: float, reason: str, violations: int) -> None:
    log_proctor_event(
        session_id,
        "session_end",
        {"score": score, "reason": reason or "none", "violations": violations},
    )


def log_violation(session_id: str, kind: str, raised: bool) -> None:
    log_proctor_event(
        session_id,
        "violation_raised" if raised else "violation_cleared",
        {"kind": kind},
        level="warning" if raised else "info",
    )
