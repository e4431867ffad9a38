"""
services/browser_bridge.py

로컬 FastAPI 호스트와 브라우저 페이지 사이의 플랫폼 기능 구현.

브라우저 → 서버:
  - 전체화면 상태 보고 (fullscreenchange 이벤트)   → BrowserFullscreenBridge.report()
  - 캡처 단계에서 막은 키 보고                      → BrowserKeyInterceptor.dispatch()
서버 → 브라우저 (/api/events 로 가져감):
  - {"type": "toast", ...}               토스트 알림
  - {"type": "request_fullscreen"}       전체화면 진입 요청
  - {"type": "exit_fullscreen"}          전체화면 해제 요청
"""

import asyncio
import logging
from collections import deque
from typing import Callable, Dict, FrozenSet, List, Optional

from config import BROWSER_FULLSCREEN_TIMEOUT
from qa_test_cbt.exceptions import FullscreenRequestError
from qa_test_cbt.services.platform import KeyHandler

logger = logging.getLogger(__name__)

_MAX_PENDING_EVENTS = 200

# 같은 지시가 이미 대기 중이면 다시 넣지 않는다
_COLLAPSIBLE = frozenset({"request_fullscreen", "exit_fullscreen"})


class BrowserChannel:
    """브라우저가 폴링으로 가져가는 이벤트 큐."""

    def __init__(self, maxlen: int = _MAX_PENDING_EVENTS):
        self._events: deque = deque(maxlen=maxlen)

    def push(self, kind: str, **data: object) -> None:
        event = {"type": kind, **data}
        if kind in _COLLAPSIBLE and event in self._events:
            return
        if len(self._events) == self._events.maxlen:
            dropped = self._events[0]
            logger.warning(f"브라우저 이벤트 큐 가득 참, 가장 오래된 이벤트 폐기: {dropped.get('type')}")
        self._events.append(event)

    def drain(self) -> List[Dict[str, object]]:
        events = list(self._events)
        self._events.clear()
        return events


class ChannelNotifier:
    def __init__(self, channel: BrowserChannel):
        self._channel = channel

    def notify(self, title: str, description: str, variant: str = "default") -> None:
        self._channel.push("toast", title=title, description=description, variant=variant)


class BrowserFullscreenBridge:
    """
    브라우저가 마지막으로 보고한 전체화면 상태를 기준으로 동작하는 FullscreenController.

    request_fullscreen()은 진입 요청을 큐에 넣고 브라우저가 진입을 보고할 때까지
    timeout 초 동안 기다린다. 보고가 없으면 FullscreenRequestError.
    """

    def __init__(self, channel: BrowserChannel, timeout: float = BROWSER_FULLSCREEN_TIMEOUT):
        self._channel = channel
        self._timeout = timeout
        self._active = False
        self._entered = asyncio.Event()
        self._listener: Optional[Callable[[], None]] = None

    def set_change_listener(self, listener: Optional[Callable[[], None]]) -> None:
        self._listener = listener

    def is_fullscreen(self) -> bool:
        return self._active

    def report(self, active: bool) -> None:
        changed = active != self._active
        self._active = active
        if active:
            self._entered.set()
        else:
            self._entered.clear()
        if changed and self._listener is not None:
            self._listener()

    async def request_fullscreen(self) -> None:
        if self._active:
            return
        self._entered.clear()
        self._channel.push("request_fullscreen")
        try:
            await asyncio.wait_for(self._entered.wait(), self._timeout)
        except asyncio.TimeoutError:
            raise FullscreenRequestError(f"브라우저가 {self._timeout}초 안에 전체화면 진입을 보고하지 않았습니다.")

    async def exit_fullscreen(self) -> None:
        self._channel.push("exit_fullscreen")


class BrowserKeyInterceptor:
    """
    차단 키 목록을 브라우저에 알려주고(blocked_keys), 브라우저가 막은 키를 보고하면
    설치된 핸들러로 전달한다.
    """

    def __init__(self):
        self._keys: FrozenSet[str] = frozenset()
        self._handler: Optional[KeyHandler] = None

    @property
    def blocked_keys(self) -> List[str]:
        return sorted(self._keys)

    def install(self, keys: FrozenSet[str], handler: KeyHandler) -> None:
        self._keys = frozenset(keys)
        self._handler = handler

    def uninstall(self) -> None:
        self._keys = frozenset()
        self._handler = None

    def dispatch(self, key: str) -> bool:
        if self._handler is None or key not in self._keys:
            return False
        return self._handler(key)
