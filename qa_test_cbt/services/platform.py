"""
services/platform.py

세션 컨트롤러가 주입받는 플랫폼 기능 인터페이스.
전체화면, 키 가로채기, 알림(토스트), 제출 서비스를 전역 상태 대신 주입하여
테스트에서 가짜 구현으로 실패/이탈을 결정적으로 재현할 수 있게 한다.
"""

from typing import Awaitable, Callable, Dict, FrozenSet, Protocol

from qa_test_cbt.models.session_state import SubmissionPayload

# 전체화면 종료 키 / 전체화면 토글 키
EXIT_FULLSCREEN_KEY = "Escape"
TOGGLE_FULLSCREEN_KEY = "F11"
BLOCKED_KEYS: FrozenSet[str] = frozenset({EXIT_FULLSCREEN_KEY, TOGGLE_FULLSCREEN_KEY})

# 미응답 문항 수를 받아 제출 여부를 돌려주는 확인 콜백
Confirmer = Callable[[int], Awaitable[bool]]
KeyHandler = Callable[[str], bool]


class FullscreenController(Protocol):
    """Platform fullscreen API."""

    def is_fullscreen(self) -> bool:
        ...

    async def request_fullscreen(self) -> None:
        """May raise FullscreenRequestError when the platform rejects it."""
        ...

    async def exit_fullscreen(self) -> None:
        ...


class KeyInterceptor(Protocol):
    """Highest-priority keyboard hook."""

    def install(self, keys: FrozenSet[str], handler: KeyHandler) -> None:
        ...

    def uninstall(self) -> None:
        ...


class Notifier(Protocol):
    """Non-blocking toast notifications."""

    def notify(self, title: str, description: str, variant: str = "default") -> None:
        ...


class SubmissionService(Protocol):
    async def submit(self, payload: SubmissionPayload) -> Dict[str, object]:
        """May raise SubmissionError."""
        ...


async def always_confirm(unanswered: int) -> bool:
    return True
