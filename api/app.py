"""
api/app.py — FastAPI 앱 인스턴스 + 세션 미들웨어 + static 파일 서빙
"""

import logging
import os
import threading
import time
from typing import Callable, Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles
from fastapi.responses import FileResponse

from config import STATIC_DIR, SESSION_TTL, SESSION_CLEANUP_INTERVAL, BROWSER_FULLSCREEN_TIMEOUT
from api.routes import router
import api.session as session
from qa_test_cbt.services.api_client import LearningApiClient
from qa_test_cbt.services.session_controller import SessionTimings

SESSION_COOKIE = "qa_session"


def create_app(
    api_client_factory: Callable[..., LearningApiClient] = LearningApiClient,
    session_timings: Optional[SessionTimings] = None,
    fullscreen_timeout: float = BROWSER_FULLSCREEN_TIMEOUT,
    start_cleanup: bool = True,
) -> FastAPI:
    app = FastAPI(title="Proctored Q&A Test", docs_url=None, redoc_url=None)

    # 라우트에서 사용하는 의존성 (테스트에서 교체)
    app.state.api_client_factory = api_client_factory
    app.state.session_timings = session_timings or SessionTimings()
    app.state.fullscreen_timeout = fullscreen_timeout

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
            max_age=SESSION_TTL,
        )
        return response

    app.include_router(router)

    # static 파일 마운트 (시험 화면 프론트엔드)
    if os.path.isdir(STATIC_DIR):
        app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")

    # 루트 → index.html
    @app.get("/")
    async def serve_index():
        index_path = os.path.join(STATIC_DIR, "index.html")
        if os.path.exists(index_path):
            return FileResponse(index_path)
        return {"error": "index.html not found"}

    # 만료 세션 주기적 정리
    def _cleanup_loop():
        while True:
            time.sleep(SESSION_CLEANUP_INTERVAL)
            removed = session.cleanup_expired()
            if removed:
                logging.getLogger(__name__).info(f"만료 세션 {removed}개 정리")

    if start_cleanup:
        t = threading.Thread(target=_cleanup_loop, daemon=True)
        t.start()

    return app
