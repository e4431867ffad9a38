"""
api/session.py — 멀티유저 인메모리 세션 (쿠키 기반)

각 브라우저에 UUID 세션 ID를 발급하고, 세션별로 백엔드 클라이언트와
시험 컨트롤러를 독립적으로 유지.
마지막 접근 후 TTL(기본 1시간)이 지나면 만료되지만,
시험이 진행 중(ACTIVE)인 세션은 만료시키지 않는다 (타이머/감시 태스크 고아화 방지).
"""

import threading
import time
import uuid
from typing import Any

from config import SESSION_TTL

_lock = threading.Lock()
_sessions: dict[str, dict[str, Any]] = {}
_timestamps: dict[str, float] = {}


def _new_state() -> dict[str, Any]:
    return {
        "api_client": None,     # LearningApiClient (토큰 보관)
        "catalog": {},          # {test_id: AssessmentDefinition}
        "controller": None,     # ProctoredSessionController (응시 1회)
        "start_task": None,     # 시작 중인 asyncio.Task
        "channel": None,        # BrowserChannel
        "fullscreen": None,     # BrowserFullscreenBridge
        "keys": None,           # BrowserKeyInterceptor
    }


def _is_expired(sid: str, now: float) -> bool:
    if now - _timestamps[sid] <= SESSION_TTL:
        return False
    controller = _sessions[sid].get("controller")
    return not (controller is not None and controller.is_active)


def _drop(sid: str) -> None:
    _sessions.pop(sid, None)
    _timestamps.pop(sid, None)


def create_session() -> str:
    """새 세션을 생성하고 세션 ID를 반환."""
    sid = uuid.uuid4().hex
    with _lock:
        _sessions[sid] = _new_state()
        _timestamps[sid] = time.time()
    return sid


def get_session(sid: str) -> dict[str, Any] | None:
    """세션 ID로 세션 데이터를 가져옴. 만료되었거나 없으면 None. 접근 시 TTL 갱신."""
    now = time.time()
    with _lock:
        if sid not in _sessions:
            return None
        if _is_expired(sid, now):
            _drop(sid)
            return None
        _timestamps[sid] = now
        return _sessions[sid]


def get(sid: str, key: str, default=None):
    session = get_session(sid)
    if session is None:
        return default
    return session.get(key, default)


def put(sid: str, key: str, value) -> None:
    with _lock:
        if sid in _sessions:
            _sessions[sid][key] = value
            _timestamps[sid] = time.time()


def reset(sid: str) -> None:
    """응시 관련 상태만 비운다. 백엔드 클라이언트(토큰)와 시험 목록은 유지."""
    with _lock:
        if sid not in _sessions:
            return
        previous = _sessions[sid]
        fresh = _new_state()
        fresh["api_client"] = previous.get("api_client")
        fresh["catalog"] = previous.get("catalog", {})
        _sessions[sid] = fresh
        _timestamps[sid] = time.time()


def cleanup_expired() -> int:
    """만료된 세션을 정리. 진행 중인 시험이 있는 세션은 건너뜀. 제거된 수 반환."""
    now = time.time()
    with _lock:
        expired = [sid for sid in _timestamps if _is_expired(sid, now)]
        for sid in expired:
            _drop(sid)
    return len(expired)
