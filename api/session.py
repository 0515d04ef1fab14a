"""
api/session.py — 멀티유저 인메모리 세션 (쿠키 기반)

각 사용자에게 UUID 세션 ID를 발급하고, 세션별로 독립된 상태를 유지.
세션에는 감독 시험 컨트롤러와 브라우저 미디어 버퍼가 들어 있으므로,
만료/초기화 시 컨트롤러를 폐기(abandon)해 스트림과 주기 작업을 정리한다.
TTL(기본 1시간) 경과 시 자동 만료.
"""

import logging
import threading
import time
import uuid
from typing import Any

logger = logging.getLogger(__name__)

_lock = threading.Lock()
_sessions: dict[str, dict[str, Any]] = {}
_timestamps: dict[str, float] = {}

SESSION_TTL = 3600  # 1시간


def _new_state() -> dict[str, Any]:
    return {
        "api_key": "",
        "quiz_id": None,
        "controller": None,
        "media": None,
    }


def _dispose(state: dict[str, Any]) -> None:
    controller = state.get("controller")
    if controller is not None:
        try:
            controller.abandon()
        except Exception as e:
            logger.error(f"세션 컨트롤러 정리 실패: {e}")


def create_session() -> str:
    """새 세션을 생성하고 세션 ID를 반환."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> dict[str, Any] | None:
    """세션 ID로 세션 데이터를 가져옴. 만료되었거나 없으면 None."""
    expired = None
    with _lock:
        if sid not in _sessions:
            return None
        if time.time() - _timestamps[sid] > SESSION_TTL:
            expired = _sessions.pop(sid)
            del _timestamps[sid]
        else:
            _timestamps[sid] = time.time()  # 접근 시 갱신
            return _sessions[sid]
    _dispose(expired)
    return None


def get(sid: str, key: str, default=None):
    """세션에서 값 읽기."""
    session = get_session(sid)
    if session is None:
        return default
    return session.get(key, default)


def put(sid: str, key: str, value) -> None:
    """세션에 값 쓰기."""
    with _lock:
        if sid in _sessions:
            _sessions[sid][key] = value
            _timestamps[sid] = time.time()


def reset(sid: str) -> None:
    """세션 초기화 (API 키는 유지). 진행 중인 시험은 폐기."""
    with _lock:
        old = _sessions.get(sid)
        if old is None:
            return
        saved_key = old.get("api_key", "")
        _sessions[sid] = _new_state()
        _sessions[sid]["api_key"] = saved_key
        _timestamps[sid] = time.time()
    _dispose(old)


def cleanup_expired() -> int:
    """만료된 세션을 정리. 제거된 수 반환."""
    now = time.time()
    removed = []
    with _lock:
        expired = [sid for sid, ts in _timestamps.items() if now - ts > SESSION_TTL]
        for sid in expired:
            removed.append(_sessions.pop(sid))
            del _timestamps[sid]
    for state in removed:
        _dispose(state)
    return len(removed)
