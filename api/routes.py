"""
api/routes.py — FastAPI 엔드포인트

브라우저는 권한 결과, 전체화면/가시성 이벤트, 캡처 프레임과 오디오 주파수 데이터를
보고하고, /api/exam/state를 폴링해 상태와 알림(토스트/명령)을 받아 간다.
"""

import asyncio
import base64
import binascii
from typing import Optional

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel

import api.session as session
from api.sample_quiz import SAMPLE_QUIZ
from proctored_exam.errors import (
    AnswerEntryBlocked,
    ExamError,
    InvalidTransition,
    PermissionDenied,
    QuizNotFound,
    WrongShareSurface,
)
from proctored_exam.models.question_model import QuizDraft
from proctored_exam.models.session_state import SessionState
from proctored_exam.proctoring.controller import SessionController
from proctored_exam.proctoring.devices import ClientMediaSource
from proctored_exam.proctoring.sampler import byte_frequency_data
from proctored_exam.services.exam_service import is_passed
from proctored_exam.services.openai_client import make_client
from proctored_exam.services.performance_analyzer import PerformanceAnalyzer
from proctored_exam.services.quiz_store import QuizStore
from proctored_exam.services.study_guide import generate_revisit_material, render_revisit_pdf
from proctored_exam.services.vision_analyzer import VisionAnalyzer

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class ApiKeyBody(BaseModel):
    api_key: str

class LoadExamBody(BaseModel):
    quiz_id: str

class CameraMicBody(BaseModel):
    granted: bool
    has_video: bool = True
    has_audio: bool = True
    label: str = ""

class ScreenShareBody(BaseModel):
    granted: bool
    display_surface: str = ""

class FullscreenBody(BaseModel):
    is_fullscreen: bool

class VisibilityBody(BaseModel):
    hidden: bool

class RestrictedActionBody(BaseModel):
    action: str                             # copy | paste | cut | context_menu

class FrameBody(BaseModel):
    image_data_uri: Optional[str] = None
    frequency_data: Optional[list[int]] = None
    pcm_base64: Optional[str] = None        # int16 PCM, frequency_data 대신 보낼 수 있음

class AnswerBody(BaseModel):
    option_index: Optional[int] = None

class NavigateBody(BaseModel):
    index: Optional[int] = None             # None이면 다음 문제로


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _sid(request: Request) -> str:
    return request.state.session_id


def _store(request: Request) -> QuizStore:
    return request.app.state.quiz_store


def _controller(request: Request) -> SessionController:
    controller = session.get(_sid(request), "controller")
    if controller is None:
        raise HTTPException(status_code=404, detail="시험 세션이 없습니다.")
    return controller


def _http_error(e: ExamError) -> HTTPException:
    if isinstance(e, WrongShareSurface):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, PermissionDenied):
        return HTTPException(status_code=403, detail=str(e))
    if isinstance(e, AnswerEntryBlocked):
        return HTTPException(status_code=423, detail=str(e))
    if isinstance(e, InvalidTransition):
        return HTTPException(status_code=409, detail=str(e))
    if isinstance(e, QuizNotFound):
        return HTTPException(status_code=404, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


def _state_response(controller: SessionController) -> dict:
    data = controller.snapshot()
    data["messages"] = [m.model_dump() for m in controller.drain_messages()]
    return data


# ── 설정 / 퀴즈 저장소 ───────────────────────────────────────────────────────

@router.post("/api/set-api-key")
async def set_api_key(body: ApiKeyBody, request: Request):
    key = body.api_key.strip()
    if not key:
        raise HTTPException(status_code=400, detail="API 키가 비어 있습니다.")
    if not key.startswith(("sk-", "sk-proj-")):
        raise HTTPException(status_code=400, detail="올바른 OpenAI API 키 형식이 아닙니다 (sk-... 형식).")
    session.put(_sid(request), "api_key", key)
    return {"ok": True}


@router.post("/api/quizzes")
async def save_quiz(body: QuizDraft, request: Request):
    quiz_id = _store(request).save(body)
    return {"quiz_id": quiz_id, "ok": True}


@router.get("/api/quizzes/{quiz_id}")
async def get_quiz(quiz_id: str, request: Request):
    try:
        quiz = _store(request).get(quiz_id)
    except QuizNotFound as e:
        raise _http_error(e)
    return quiz.model_dump(mode="json")


@router.post("/api/sample-quiz")
async def save_sample_quiz(request: Request):
    quiz_id = _store(request).save(SAMPLE_QUIZ)
    return {"quiz_id": quiz_id, "total": len(SAMPLE_QUIZ.questions), "ok": True}


# ── 시험 세션 ────────────────────────────────────────────────────────────────

@router.post("/api/exam/load")
async def load_exam(body: LoadExamBody, request: Request):
    sid = _sid(request)
    api_key = session.get(sid, "api_key", "")
    if not api_key:
        raise HTTPException(status_code=400, detail="API 키가 설정되지 않았습니다.")

    previous = session.get(sid, "controller")
    if previous is not None:
        previous.abandon()

    media = ClientMediaSource()
    controller = SessionController(
        media,
        classifier=VisionAnalyzer(api_key),
        analyzer=PerformanceAnalyzer(api_key),
    )
    try:
        quiz = controller.load_from_store(_store(request), body.quiz_id)
    except ExamError as e:
        raise _http_error(e)

    session.put(sid, "media", media)
    session.put(sid, "controller", controller)
    session.put(sid, "quiz_id", quiz.id)
    return {"session_id": controller.id, "total": len(quiz.questions), "state": controller.state.value}


@router.post("/api/exam/permissions/camera-mic")
async def grant_camera_mic(body: CameraMicBody, request: Request):
    controller = _controller(request)
    media: ClientMediaSource = session.get(_sid(request), "media")
    media.report_user_media(body.granted, has_video=body.has_video, has_audio=body.has_audio, label=body.label)
    try:
        controller.acquire_camera_and_mic()
    except ExamError as e:
        raise _http_error(e)
    return _state_response(controller)


@router.post("/api/exam/permissions/screen")
async def grant_screen_share(body: ScreenShareBody, request: Request):
    controller = _controller(request)
    media: ClientMediaSource = session.get(_sid(request), "media")
    media.report_display_media(body.granted, display_surface=body.display_surface)
    try:
        controller.acquire_screen_share()
    except ExamError as e:
        raise _http_error(e)
    return _state_response(controller)


@router.post("/api/exam/begin")
async def begin_exam(request: Request):
    controller = _controller(request)
    try:
        controller.begin_exam()
    except ExamError as e:
        raise _http_error(e)
    return _state_response(controller)


@router.post("/api/exam/fullscreen")
async def fullscreen_change(body: FullscreenBody, request: Request):
    controller = _controller(request)
    controller.on_fullscreen_change(body.is_fullscreen)
    return _state_response(controller)


@router.post("/api/exam/visibility")
async def visibility_change(body: VisibilityBody, request: Request):
    controller = _controller(request)
    controller.on_visibility_change(body.hidden)
    return _state_response(controller)


@router.post("/api/exam/resume")
async def resume_exam(request: Request):
    controller = _controller(request)
    resumed = controller.request_resume()
    data = _state_response(controller)
    data["resumed"] = resumed
    return data


@router.post("/api/exam/restricted-action")
async def restricted_action(body: RestrictedActionBody, request: Request):
    controller = _controller(request)
    try:
        blocked = controller.on_restricted_action(body.action)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    data = _state_response(controller)
    data["blocked"] = blocked
    return data


@router.post("/api/exam/frame")
async def push_frame(body: FrameBody, request: Request):
    _controller(request)
    media: ClientMediaSource = session.get(_sid(request), "media")

    frequency = body.frequency_data
    if frequency is None and body.pcm_base64:
        try:
            pcm = base64.b64decode(body.pcm_base64, validate=True)
        except (binascii.Error, ValueError):
            raise HTTPException(status_code=422, detail="오디오 데이터를 해석할 수 없습니다.")
        frequency = byte_frequency_data(pcm)

    media.push_sample(body.image_data_uri, frequency)
    return {"ok": True}


@router.post("/api/exam/answer")
async def select_answer(body: AnswerBody, request: Request):
    controller = _controller(request)
    try:
        controller.select_answer(body.option_index)
    except ExamError as e:
        raise _http_error(e)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"ok": True, "answered_count": controller.answers.answered_count}


@router.post("/api/exam/navigate")
async def navigate(body: NavigateBody, request: Request):
    controller = _controller(request)
    try:
        if body.index is None:
            idx = controller.advance_question()
        else:
            idx = controller.go_to_question(body.index)
    except ExamError as e:
        raise _http_error(e)
    return {"index": idx, "ok": True}


@router.post("/api/exam/submit")
async def submit_exam(request: Request):
    controller = _controller(request)
    try:
        result = await controller.submit()
    except ExamError as e:
        raise _http_error(e)
    return {"score": result.score, "partial": result.partial, "ok": True}


@router.get("/api/exam/state")
async def get_exam_state(request: Request):
    return _state_response(_controller(request))


@router.get("/api/exam/results")
async def get_results(request: Request):
    controller = _controller(request)
    if controller.state is SessionState.SUBMITTING:
        await controller.wait_for_results()
    if controller.state is not SessionState.RESULTS or controller.result is None:
        raise HTTPException(status_code=400, detail="시험이 아직 제출되지 않았습니다.")

    result = controller.result
    data = result.model_dump(mode="json")
    data["passed"] = is_passed(result.score)
    return data


@router.get("/api/exam/study-guide.pdf")
async def get_study_guide(request: Request):
    controller = _controller(request)
    result = controller.result
    if result is None:
        raise HTTPException(status_code=400, detail="시험이 아직 제출되지 않았습니다.")

    client = make_client(session.get(_sid(request), "api_key", ""))
    material = await asyncio.to_thread(generate_revisit_material, result.topic, result.attempts, client)
    pdf_bytes = await asyncio.to_thread(render_revisit_pdf, material)
    return Response(
        content=pdf_bytes,
        media_type="application/pdf",
        headers={"Content-Disposition": 'attachment; filename="revisit-guide.pdf"'},
    )


@router.post("/api/reset")
async def reset_session(request: Request):
    session.reset(_sid(request))
    return {"ok": True}
