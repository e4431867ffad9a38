"""
services/compliance_monitor.py

전체화면 준수 감시기.

설계 원칙:
- 짧은 주기(기본 500ms)로 전체화면 여부를 폴링 → 최악의 감지 지연이 주기로 제한됨
- 플랫폼의 변경 알림이 오면 check()를 즉시 호출해도 된다 (폴링과 동일 경로)
- 이탈 1회당 콜백 1회 → 경고 토스트 → 지연 후 재진입 요청
- 재진입 실패는 같은 지연으로 무한 재시도. 이탈만으로 세션을 실패시키지 않음
- stop() 이후에는 어떤 콜백도 상태를 건드리지 않는다
"""

import asyncio
import logging
from typing import Callable, Optional

from qa_test_cbt.exceptions import FullscreenRequestError
from qa_test_cbt.services.platform import FullscreenController, Notifier

logger = logging.getLogger(__name__)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


def cancel_task(task: Optional[asyncio.Task]) -> None:
    """실행 중인 태스크 자신은 취소하지 않는다 (자기 자신 안에서 정지 요청 시)."""
    if task is not None and task is not _current_task() and not task.done():
        task.cancel()


class FullscreenComplianceMonitor:
    """
    세션이 ACTIVE인 동안 전체화면 유지 여부를 감시하고 강제로 재진입시킨다.

    on_compliance_lost 콜백은 누적 이탈 횟수를 반환하고,
    세션이 더 이상 ACTIVE가 아니면 None을 반환한다.
    """

    def __init__(
        self,
        fullscreen: FullscreenController,
        notifier: Notifier,
        on_compliance_lost: Callable[[], Optional[int]],
        poll_interval: float = 0.5,
        reentry_delay: float = 1.0,
    ):
        self._fullscreen = fullscreen
        self._notifier = notifier
        self._on_compliance_lost = on_compliance_lost
        self._poll_interval = poll_interval
        self._reentry_delay = reentry_delay

        self._running = False
        self._compliant = True
        self._poll_task: Optional[asyncio.Task] = None
        self._reacquire_task: Optional[asyncio.Task] = None
        self.reacquire_requests = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        self._running = True
        self._compliant = True
        self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info("전체화면 감시 시작")

    def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        cancel_task(self._poll_task)
        cancel_task(self._reacquire_task)
        self._poll_task = None
        self._reacquire_task = None
        logger.info("전체화면 감시 종료")

    async def _poll_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._poll_interval)
            self.check()

    def check(self) -> None:
        """준수 여부 1회 검사. 이탈이 새로 감지되면 기록 후 재진입을 예약한다."""
        if not self._running:
            return
        if self._fullscreen.is_fullscreen():
            self._compliant = True
            return
        if not self._compliant:
            # 같은 이탈에 대해 이미 기록함, 재진입 대기 중
            return

        self._compliant = False
        exit_count = self._on_compliance_lost()
        if exit_count is None:
            return

        logger.warning(f"전체화면 이탈 감지 (누적 {exit_count}회), 재진입 예약")
        self._notifier.notify(
            "Fullscreen Exited!",
            "Warning: You exited fullscreen mode. This has been recorded. "
            f"({exit_count} exits). Re-entering fullscreen...",
            "destructive",
        )
        if self._reacquire_task is None or self._reacquire_task.done():
            self._reacquire_task = asyncio.create_task(self._reacquire())

    async def _reacquire(self) -> None:
        while self._running:
            await asyncio.sleep(self._reentry_delay)
            if not self._running:
                return
            if self._fullscreen.is_fullscreen():
                self._compliant = True
                return

            self.reacquire_requests += 1
            try:
                await self._fullscreen.request_fullscreen()
            except FullscreenRequestError as e:
                logger.warning(f"전체화면 재진입 실패 (요청 {self.reacquire_requests}회차): {e}")
                continue

            if self._fullscreen.is_fullscreen():
                self._compliant = True
                logger.info("전체화면 재진입 완료")
                return
