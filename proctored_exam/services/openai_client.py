"""
services/openai_client.py

OpenAI Chat API 공통 호출부.
비전 분석, 성적 분석, 복습 자료 생성이 모두 이 모듈을 통해 호출한다.

설계 원칙:
- 클라이언트는 API 키별로 생성 (세션마다 키가 다를 수 있음)
- Rate Limit / 일시적 API 오류는 지수 백오프로 재시도
- 최종 실패 시 None 반환, 호출자가 실패를 어떻게 다룰지 결정
"""

import json
import logging
import re
import time
from typing import Any, Dict, Optional

from openai import OpenAI, RateLimitError, APIError

from config import MODEL_NAME

logger = logging.getLogger(__name__)

_MAX_API_RETRIES = 3
_BACKOFF_BASE = 1.0
_RATE_LIMIT_MAX_RETRIES = 5
_RATE_LIMIT_BACKOFF_BASE = 2.0


def make_client(api_key: str) -> Optional[OpenAI]:
    """API 키로 OpenAI 클라이언트를 생성."""
    if not api_key:
        logger.warning("API 키가 제공되지 않았습니다.")
        return None
    try:
        return OpenAI(api_key=api_key)
    except Exception as e:
        logger.error(f"OpenAI 클라이언트 초기화 실패: {e}")
        return None


def call_openai(
    system_prompt: str,
    user_content: str | list,
    client: Optional[OpenAI] = None,
    model: str = MODEL_NAME,
    max_retries: int = _MAX_API_RETRIES,
    max_tokens: int = 4096,
) -> Optional[str]:
    """OpenAI Chat API 호출 + 지수 백오프 재시도. 텍스트(str)와 비전(list) 모두 지원."""
    if client is None:
        return None

    last_exception: Optional[Exception] = None
    effective_retries = max_retries

    for attempt in range(1, effective_retries + 1):
        try:
            response = client.chat.completions.create(
                model=model,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_content},
                ],
                temperature=0.1,
                response_format={"type": "json_object"},
                max_tokens=max_tokens,
            )
            return response.choices[0].message.content
        except RateLimitError as e:
            last_exception = e
            effective_retries = _RATE_LIMIT_MAX_RETRIES
            if attempt < effective_retries:
                wait = _RATE_LIMIT_BACKOFF_BASE * (2 ** (attempt - 1))
                logger.warning(f"Rate Limit, {wait:.1f}초 후 재시도 ({attempt}/{effective_retries})")
                time.sleep(wait)
            else:
                logger.error("Rate Limit 최대 재시도 초과.")
                break
        except APIError as e:
            last_exception = e
            error_str = str(e).lower()
            is_transient = any(
                k in error_str
                for k in ("timeout", "connection", "unavailable")
            )
            if getattr(e, "status_code", None) in (500, 502, 503, 504):
                is_transient = True
            if attempt < effective_retries and is_transient:
                wait = _BACKOFF_BASE * (2 ** (attempt - 1))
                logger.warning(f"API 오류, {wait:.1f}초 후 재시도 ({attempt}/{effective_retries})")
                time.sleep(wait)
            else:
                logger.error(f"API 오류: {e}")
                break
        except Exception as e:
            last_exception = e
            logger.error(f"예상치 못한 오류: {type(e).__name__}: {e}")
            break

    logger.error(f"API 최종 실패: {last_exception}")
    return None


def clean_json_response(response_text: str) -> str:
    """LLM 응답에서 순수 JSON을 추출."""
    if not response_text:
        return ""

    text = re.sub(r"```(?:json)?\s*", "", response_text, flags=re.IGNORECASE)
    text = re.sub(r"```", "", text)
    text = text.strip()

    if text.startswith("{") or text.startswith("["):
        return text

    match = re.search(r"[{[].*[}\]]", text, re.DOTALL)
    if match:
        return match.group(0).strip()

    return ""


def parse_json_object(raw_response: Optional[str]) -> Optional[Dict[str, Any]]:
    """LLM 응답 → dict. JSON 객체가 아니면 None."""
    cleaned = clean_json_response(raw_response or "")
    if not cleaned:
        return None
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None
