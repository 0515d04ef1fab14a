"""
api/app.py — FastAPI 앱 인스턴스 + 세션 미들웨어 + static 파일 서빙
"""

import asyncio
import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse
from fastapi.staticfiles import StaticFiles

from config import QUIZ_STORE_DIR, STATIC_DIR
from api.routes import router
import api.session as session
from proctored_exam.services.quiz_store import QuizStore

SESSION_COOKIE = "exam_session"
CLEANUP_INTERVAL_SECONDS = 300

logger = logging.getLogger(__name__)


async def _cleanup_loop() -> None:
    # 만료 세션 주기적 정리 (5분마다). 컨트롤러가 이벤트 루프에 묶여 있어 루프 안에서 돈다.
    while True:
        await asyncio.sleep(CLEANUP_INTERVAL_SECONDS)
        removed = session.cleanup_expired()
        if removed:
            logger.info(f"만료 세션 {removed}개 정리")


@asynccontextmanager
async def _lifespan(app: FastAPI):
    task = asyncio.create_task(_cleanup_loop())
    try:
        yield
    finally:
        task.cancel()


def create_app(quiz_store: QuizStore | None = None) -> FastAPI:
    app = FastAPI(title="Proctored Exam", docs_url=None, redoc_url=None, lifespan=_lifespan)
    app.state.quiz_store = quiz_store or QuizStore(QUIZ_STORE_DIR)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # 세션 미들웨어: 쿠키에서 세션 ID를 읽고, 없으면 새로 발급
    @app.middleware("http")
    async def session_middleware(request: Request, call_next):
        sid = request.cookies.get(SESSION_COOKIE)
        if not sid or session.get_session(sid) is None:
            sid = session.create_session()

        request.state.session_id = sid
        response: Response = await call_next(request)
        response.set_cookie(
            key=SESSION_COOKIE,
            value=sid,
            httponly=True,
            samesite="lax",
            max_age=session.SESSION_TTL,
        )
        return response

    app.include_router(router)

    # static 파일 마운트
    if os.path.isdir(STATIC_DIR):
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    # 루트 → index.html
    @app.get("/")
    async def serve_index():
        index_path = os.path.join(STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    return app
