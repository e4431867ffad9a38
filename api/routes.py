"""
api/routes.py — FastAPI 엔드포인트
"""

import asyncio
import logging

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

import api.session as session

from qa_test_cbt.exceptions import (
    AuthenticationError, CatalogError, ProctoredTestError, SessionStateError,
)
from qa_test_cbt.models.assessment import AssessmentDefinition
from qa_test_cbt.services.browser_bridge import (
    BrowserChannel, BrowserFullscreenBridge, BrowserKeyInterceptor, ChannelNotifier,
)
from qa_test_cbt.services.exam_service import (
    format_time, is_time_warning, progress_percentage,
)
from qa_test_cbt.services.session_controller import ProctoredSessionController

logger = logging.getLogger(__name__)

router = APIRouter()

# ── Pydantic request bodies ──────────────────────────────────────────────────

class TokenBody(BaseModel):
    access_token: str
    refresh_token: str = ""

class StartTestBody(BaseModel):
    test_id: int

class FullscreenReportBody(BaseModel):
    active: bool

class KeyBody(BaseModel):
    key: str

class SaveAnswerBody(BaseModel):
    question_index: int
    answer: str

class NavigateBody(BaseModel):
    index: int = 0

class SubmitBody(BaseModel):
    confirm: bool = False


# ── 헬퍼 ─────────────────────────────────────────────────────────────────────

def _sid(request: Request) -> str:
    return request.state.session_id


def _api_client(request: Request):
    sid = _sid(request)
    client = session.get(sid, "api_client")
    if client is None:
        client = request.app.state.api_client_factory()
        session.put(sid, "api_client", client)
    return client


def _controller(request: Request) -> ProctoredSessionController:
    controller = session.get(_sid(request), "controller")
    if controller is None or controller.state is None:
        raise HTTPException(status_code=404, detail="시험 세션이 없습니다.")
    return controller


def _test_to_dict(t: AssessmentDefinition) -> dict:
    return {
        "id": t.id,
        "title": t.title,
        "lesson_title": t.lesson_title,
        "num_questions": t.question_count,
        "time_limit": t.time_limit,
    }


async def _load_catalog(request: Request) -> dict[int, AssessmentDefinition]:
    client = _api_client(request)
    try:
        tests = await client.list_available_tests()
    except AuthenticationError as e:
        raise HTTPException(status_code=401, detail=e.message)
    except CatalogError as e:
        raise HTTPException(status_code=502, detail=e.message)

    catalog = {t.id: t for t in tests}
    session.put(_sid(request), "catalog", catalog)
    return catalog


async def _run_start(controller: ProctoredSessionController, definition: AssessmentDefinition) -> None:
    try:
        await controller.start_session(definition)
    except ProctoredTestError as e:
        # 사용자 알림은 컨트롤러가 이미 큐에 넣음
        logger.warning(f"시험 시작 실패: test_id={definition.id}, {e}")


# ── 엔드포인트 ───────────────────────────────────────────────────────────────

@router.post("/api/set-token")
async def set_token(request: Request, body: TokenBody):
    access = body.access_token.strip()
    if not access:
        raise HTTPException(status_code=400, detail="액세스 토큰이 비어 있습니다.")
    client = request.app.state.api_client_factory(
        access_token=access,
        refresh_token=body.refresh_token.strip(),
    )
    session.put(_sid(request), "api_client", client)
    return {"ok": True}


@router.get("/api/tests")
async def list_tests(request: Request):
    catalog = await _load_catalog(request)
    return {"tests": [_test_to_dict(t) for t in catalog.values()]}


@router.post("/api/start-test")
async def start_test(request: Request, body: StartTestBody):
    sid = _sid(request)
    current: ProctoredSessionController | None = session.get(sid, "controller")
    start_task: asyncio.Task | None = session.get(sid, "start_task")
    if current is not None and (current.is_active or (start_task and not start_task.done())):
        raise HTTPException(status_code=409, detail="이미 진행 중인 시험이 있습니다.")

    catalog = session.get(sid, "catalog", {})
    if body.test_id not in catalog:
        catalog = await _load_catalog(request)
    definition = catalog.get(body.test_id)
    if definition is None:
        raise HTTPException(status_code=404, detail="시험을 찾을 수 없습니다.")
    if definition.question_count < 1 or definition.time_limit < 1:
        raise HTTPException(status_code=400, detail="응시할 수 없는 시험입니다 (문항 또는 제한 시간 없음).")

    # 응시마다 새 컨트롤러와 브리지
    channel = BrowserChannel()
    fullscreen = BrowserFullscreenBridge(channel, timeout=request.app.state.fullscreen_timeout)
    keys = BrowserKeyInterceptor()
    controller = ProctoredSessionController(
        fullscreen=fullscreen,
        key_interceptor=keys,
        notifier=ChannelNotifier(channel),
        submission_service=_api_client(request),
        timings=request.app.state.session_timings,
    )
    fullscreen.set_change_listener(controller.check_compliance)

    session.put(sid, "channel", channel)
    session.put(sid, "fullscreen", fullscreen)
    session.put(sid, "keys", keys)
    session.put(sid, "controller", controller)
    session.put(sid, "start_task", asyncio.create_task(_run_start(controller, definition)))
    return {"ok": True, "status": "starting", "total": definition.question_count}


@router.post("/api/fullscreen")
async def report_fullscreen(request: Request, body: FullscreenReportBody):
    fullscreen: BrowserFullscreenBridge | None = session.get(_sid(request), "fullscreen")
    if fullscreen is None:
        raise HTTPException(status_code=404, detail="시험 세션이 없습니다.")
    fullscreen.report(body.active)
    controller = session.get(_sid(request), "controller")
    exits = controller.state.fullscreen_exit_count if controller and controller.state else 0
    return {"ok": True, "fullscreen_exit_count": exits}


@router.post("/api/keydown")
async def report_key(request: Request, body: KeyBody):
    keys: BrowserKeyInterceptor | None = session.get(_sid(request), "keys")
    if keys is None:
        return {"suppressed": False}
    return {"suppressed": keys.dispatch(body.key)}


@router.get("/api/events")
async def drain_events(request: Request):
    sid = _sid(request)
    channel: BrowserChannel | None = session.get(sid, "channel")
    keys: BrowserKeyInterceptor | None = session.get(sid, "keys")
    controller: ProctoredSessionController | None = session.get(sid, "controller")
    return {
        "events": channel.drain() if channel else [],
        "blocked_keys": keys.blocked_keys if keys else [],
        "status": controller.status.value if controller else "not_started",
    }


@router.get("/api/session-state")
async def get_session_state(request: Request):
    controller = _controller(request)
    state = controller.state
    fullscreen: BrowserFullscreenBridge | None = session.get(_sid(request), "fullscreen")
    total = controller.question_count
    outcome = controller.last_outcome

    return {
        "test_id": controller.definition.id,
        "title": controller.definition.title,
        "status": state.status.value,
        "current_question_index": state.current_question_index,
        "answers": {str(k): v for k, v in state.answers.items()},
        "remaining_seconds": state.remaining_seconds,
        "remaining_display": format_time(state.remaining_seconds),
        "time_warning": is_time_warning(state.remaining_seconds),
        "fullscreen_exit_count": state.fullscreen_exit_count,
        "is_fullscreen": fullscreen.is_fullscreen() if fullscreen else False,
        "total": total,
        "answered_count": total - controller.unanswered_count,
        "unanswered_count": controller.unanswered_count,
        "progress": progress_percentage(state.current_question_index, total),
        "submission": (
            {"ok": outcome.ok, "error": outcome.error_message} if outcome else None
        ),
    }


@router.get("/api/question/{index}")
async def get_question(request: Request, index: int):
    controller = _controller(request)
    total = controller.question_count
    if not (0 <= index < total):
        raise HTTPException(status_code=404, detail="문제를 찾을 수 없습니다.")

    q = controller.definition.questions[index]
    return {
        "index": index,
        "total": total,
        "question": q.question,
        "saved_answer": controller.state.answers.get(index, ""),
    }


@router.post("/api/save-answer")
async def save_answer(request: Request, body: SaveAnswerBody):
    controller = _controller(request)
    try:
        controller.set_answer(body.question_index, body.answer)
    except SessionStateError:
        raise HTTPException(status_code=400, detail="진행 중인 시험이 아닙니다.")
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return {"ok": True, "unanswered_count": controller.unanswered_count}


@router.post("/api/navigate")
async def navigate(request: Request, body: NavigateBody):
    controller = _controller(request)
    try:
        idx = controller.navigate_to(body.index)
    except SessionStateError:
        raise HTTPException(status_code=400, detail="진행 중인 시험이 아닙니다.")
    return {"index": idx, "ok": True}


@router.post("/api/submit-test")
async def submit_test(request: Request, body: SubmitBody):
    controller = _controller(request)
    if not controller.is_active:
        raise HTTPException(status_code=400, detail="진행 중인 시험이 아닙니다.")

    unanswered = controller.unanswered_count
    if unanswered > 0 and not body.confirm:
        raise HTTPException(
            status_code=409,
            detail={
                "confirm_required": True,
                "unanswered": unanswered,
                "message": f"You have {unanswered} unanswered question(s). Are you sure you want to submit?",
            },
        )

    async def _confirmed(_: int) -> bool:
        return body.confirm

    outcome = await controller.request_manual_submit(confirm=_confirmed)
    # 확인 대기 중 시간 초과로 자동 제출된 경우 그 결과를 돌려준다
    outcome = outcome or controller.last_outcome
    if outcome is None:
        raise HTTPException(status_code=400, detail="진행 중인 시험이 아닙니다.")

    return {
        "ok": outcome.ok,
        "error": outcome.error_message,
        "time_taken": outcome.payload.elapsed_seconds,
        "fullscreen_exits": outcome.payload.fullscreen_exit_count,
    }


@router.post("/api/reset")
async def reset_session(request: Request):
    sid = _sid(request)
    controller: ProctoredSessionController | None = session.get(sid, "controller")
    if controller is not None and controller.is_active:
        raise HTTPException(status_code=409, detail="시험 진행 중에는 초기화할 수 없습니다. 먼저 제출하세요.")

    start_task: asyncio.Task | None = session.get(sid, "start_task")
    if start_task is not None and not start_task.done():
        start_task.cancel()
    session.reset(sid)
    return {"ok": True}
