"""
services/session_controller.py

감독형(전체화면 고정) 서술형 시험 세션 컨트롤러.

상태 전이:
  NOT_STARTED ──start_session()──▶ ACTIVE ──submit()──▶ SUBMITTED (종료)
                                     │
                                     └─ 카운트다운 0 도달 시 submit(auto_submit=True)

ACTIVE 동안 세 가지 활동이 같은 이벤트 루프에서 돈다:
  - 1초 카운트다운 태스크
  - 전체화면 준수 감시 (FullscreenComplianceMonitor)
  - Escape / F11 키 가로채기 (이벤트 기반)
모든 상태 변경은 status == ACTIVE 를 먼저 확인하며,
SUBMITTED 전이 시 세 활동을 명시적으로 모두 해제한다.

컨트롤러 1개 = 응시 1회. 재사용하지 않는다.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

from pydantic import BaseModel, Field

from config import (
    COUNTDOWN_TICK_SECONDS, FULLSCREEN_POLL_SECONDS, FULLSCREEN_REENTRY_DELAY,
    FULLSCREEN_CONFIRM_DELAY, START_RETRY_DELAY, START_ATTEMPTS,
)
from qa_test_cbt.exceptions import (
    FullscreenRequestError, FullscreenRequiredError, InvalidAssessmentError,
    SessionStateError, SubmissionError,
)
from qa_test_cbt.models.assessment import AssessmentDefinition
from qa_test_cbt.models.session_state import (
    SessionState, SessionStatus, SubmissionOutcome, SubmissionPayload,
)
from qa_test_cbt.services.compliance_monitor import FullscreenComplianceMonitor, cancel_task
from qa_test_cbt.services.exam_service import build_answer_entries, clamp_index, count_unanswered
from qa_test_cbt.services.platform import (
    BLOCKED_KEYS, Confirmer, FullscreenController, KeyInterceptor, Notifier,
    SubmissionService, always_confirm,
)

logger = logging.getLogger(__name__)

GENERIC_SUBMIT_ERROR = "Failed to submit test"


class SessionTimings(BaseModel):
    """세션 타이밍 설정 (초). 테스트에서는 짧게 줄여서 사용."""

    tick_seconds: float = Field(default=COUNTDOWN_TICK_SECONDS, gt=0)
    poll_interval: float = Field(default=FULLSCREEN_POLL_SECONDS, gt=0)
    reentry_delay: float = Field(default=FULLSCREEN_REENTRY_DELAY, ge=0)
    confirm_delay: float = Field(default=FULLSCREEN_CONFIRM_DELAY, ge=0)
    start_retry_delay: float = Field(default=START_RETRY_DELAY, ge=0)
    start_attempts: int = Field(default=START_ATTEMPTS, ge=1)


class ProctoredSessionController:
    """
    시험 1회 응시의 수명주기를 관리한다.

    Args:
        fullscreen:         플랫폼 전체화면 API.
        key_interceptor:    최우선 키 입력 훅.
        notifier:           토스트 알림.
        submission_service: 제출 서비스 (/qa-submissions/submit/).
        confirm:            미응답 문항이 있을 때 수동 제출 확인 콜백.
        timings:            타이밍 설정.
        clock:              경과 시간 계산용 시계 (Unix timestamp).
    """

    def __init__(
        self,
        fullscreen: FullscreenController,
        key_interceptor: KeyInterceptor,
        notifier: Notifier,
        submission_service: SubmissionService,
        confirm: Confirmer = always_confirm,
        timings: Optional[SessionTimings] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._fullscreen = fullscreen
        self._key_interceptor = key_interceptor
        self._notifier = notifier
        self._submission_service = submission_service
        self._confirm = confirm
        self._timings = timings or SessionTimings()
        self._clock = clock

        self.definition: Optional[AssessmentDefinition] = None
        self.state: Optional[SessionState] = None
        self.last_outcome: Optional[SubmissionOutcome] = None
        self._countdown_task: Optional[asyncio.Task] = None
        self._monitor = FullscreenComplianceMonitor(
            fullscreen,
            notifier,
            self._record_compliance_loss,
            poll_interval=self._timings.poll_interval,
            reentry_delay=self._timings.reentry_delay,
        )

    # ── 조회 ─────────────────────────────────────────────────────────────────

    @property
    def status(self) -> SessionStatus:
        return self.state.status if self.state else SessionStatus.NOT_STARTED

    @property
    def is_active(self) -> bool:
        return self.state is not None and self.state.is_active

    @property
    def question_count(self) -> int:
        return self.definition.question_count if self.definition else 0

    @property
    def unanswered_count(self) -> int:
        return count_unanswered(self.state.answers) if self.state else 0

    @property
    def monitor(self) -> FullscreenComplianceMonitor:
        return self._monitor

    def _require_active(self, action: str) -> SessionState:
        if not self.is_active:
            raise SessionStateError(f"{action}: 진행 중인 시험이 아닙니다 (status={self.status.value}).")
        return self.state

    # ── NOT_STARTED → ACTIVE ────────────────────────────────────────────────

    async def start_session(self, definition: AssessmentDefinition) -> SessionState:
        """
        시험을 시작한다.

        전체화면 진입이 확인된 뒤에만 ACTIVE로 전이하고 카운트다운을 시작한다.
        확인되지 않으면 start_retry_delay 후 재요청하며,
        start_attempts 회 모두 실패하면 NOT_STARTED 상태로 남고 예외를 던진다.

        Raises:
            SessionStateError:       이미 시작된 컨트롤러.
            InvalidAssessmentError:  문항 0개 또는 제한 시간 0분.
            FullscreenRequiredError: 전체화면을 끝내 확보하지 못함.
        """
        if self.state is not None:
            raise SessionStateError("이미 사용된 세션입니다. 새 응시는 새 컨트롤러로 시작하세요.")
        if definition.question_count < 1:
            raise InvalidAssessmentError(f"시험 {definition.id}에 문제가 없습니다.")
        if definition.time_limit < 1:
            raise InvalidAssessmentError(f"시험 {definition.id}의 제한 시간이 올바르지 않습니다.")

        self.definition = definition
        self.state = SessionState.for_questions(definition.question_count, definition.time_limit)
        logger.info(
            f"시험 시작 요청: test_id={definition.id}, "
            f"문항={definition.question_count}, 제한={definition.time_limit}분"
        )

        attempts = self._timings.start_attempts
        for attempt in range(1, attempts + 1):
            if await self._acquire_fullscreen():
                self._activate()
                return self.state

            logger.warning(f"전체화면 미확인 (시도 {attempt}/{attempts})")
            if attempt < attempts:
                self._notifier.notify(
                    "Fullscreen Required",
                    "Attempting to enter fullscreen mode again...",
                    "destructive",
                )
                await asyncio.sleep(self._timings.start_retry_delay)

        self._notifier.notify(
            "Fullscreen Failed",
            "You must allow fullscreen mode to take the test. Please try again.",
            "destructive",
        )
        raise FullscreenRequiredError("전체화면 모드를 확보하지 못해 시험을 시작할 수 없습니다.")

    async def _acquire_fullscreen(self) -> bool:
        try:
            await self._fullscreen.request_fullscreen()
        except FullscreenRequestError as e:
            logger.warning(f"전체화면 요청 거부: {e}")
            self._notifier.notify(
                "Fullscreen Required",
                "Please allow fullscreen mode to start the test. Check your browser permissions.",
                "destructive",
            )
            return False

        # 실제 전환이 반영될 시간을 준 뒤 확인
        await asyncio.sleep(self._timings.confirm_delay)
        return self._fullscreen.is_fullscreen()

    def _activate(self) -> None:
        state = self.state
        state.session_start_epoch = self._clock()
        state.status = SessionStatus.ACTIVE

        self._key_interceptor.install(BLOCKED_KEYS, self.handle_key)
        self._monitor.start()
        self._countdown_task = asyncio.create_task(self._run_countdown())

        logger.info(f"시험 진행 중: test_id={self.definition.id}, 남은 시간 {state.remaining_seconds}초")
        self._notifier.notify(
            "Test Started!",
            f"You have {self.definition.time_limit} minutes. Stay in fullscreen mode.",
        )

    # ── 카운트다운 ───────────────────────────────────────────────────────────

    async def _run_countdown(self) -> None:
        while self.is_active:
            await asyncio.sleep(self._timings.tick_seconds)
            await self.tick()

    async def tick(self) -> None:
        """
        1초 경과 처리.

        남은 시간이 0 이하가 되면 0으로 고정하고 즉시 자동 제출한다
        (미응답 확인 없이).
        """
        if not self.is_active:
            return
        remaining = self.state.remaining_seconds - 1
        if remaining > 0:
            self.state.remaining_seconds = remaining
            return

        self.state.remaining_seconds = 0
        logger.info(f"제한 시간 종료, 자동 제출: test_id={self.definition.id}")
        await self.submit(auto_submit=True)

    # ── 전체화면 / 키 입력 ───────────────────────────────────────────────────

    def _record_compliance_loss(self) -> Optional[int]:
        if not self.is_active:
            return None
        self.state.fullscreen_exit_count += 1
        return self.state.fullscreen_exit_count

    def check_compliance(self) -> None:
        """플랫폼의 전체화면 변경 알림 시 호출. 폴링과 같은 검사를 즉시 수행."""
        self._monitor.check()

    def handle_key(self, key: str) -> bool:
        """
        가로챈 키 처리.

        Returns:
            True  : 키 입력을 막아야 함 (ACTIVE 중 Escape / F11)
            False : 그대로 통과
        """
        if not self.is_active or key not in BLOCKED_KEYS:
            return False
        logger.info(f"차단된 키 입력: {key}")
        self._notifier.notify(
            "Action Blocked",
            "You cannot exit fullscreen mode during the test.",
            "destructive",
        )
        return True

    # ── 답안 / 이동 ─────────────────────────────────────────────────────────

    def set_answer(self, index: int, text: str) -> None:
        """답안을 그대로 저장한다 (trim 없음, 빈 문자열 허용, 마지막 입력 우선)."""
        state = self._require_active("set_answer")
        if not 0 <= index < self.question_count:
            raise ValueError(f"문제 인덱스 범위 초과: {index}")
        state.answers[index] = text

    def navigate_to(self, index: int) -> int:
        state = self._require_active("navigate_to")
        state.current_question_index = clamp_index(index, self.question_count)
        return state.current_question_index

    def next_question(self) -> int:
        return self.navigate_to(self._require_active("next_question").current_question_index + 1)

    def previous_question(self) -> int:
        return self.navigate_to(self._require_active("previous_question").current_question_index - 1)

    # ── 제출 ─────────────────────────────────────────────────────────────────

    async def request_manual_submit(
        self, confirm: Optional[Confirmer] = None
    ) -> Optional[SubmissionOutcome]:
        """
        수동 제출.

        미응답(빈 문자열/공백) 문항이 있으면 확인 콜백을 먼저 호출하고,
        거절되면 아무것도 바꾸지 않고 None을 반환한다.
        """
        state = self._require_active("request_manual_submit")
        unanswered = count_unanswered(state.answers)
        if unanswered > 0:
            confirmer = confirm or self._confirm
            if not await confirmer(unanswered):
                logger.info(f"수동 제출 취소 (미응답 {unanswered}개)")
                return None
        return await self.submit(auto_submit=False)

    async def submit(self, auto_submit: bool = False) -> Optional[SubmissionOutcome]:
        """
        ACTIVE → SUBMITTED 전이 후 제출 요청을 1회 보낸다.

        상태는 요청 결과와 무관하게 요청 전에 SUBMITTED가 된다.
        이미 SUBMITTED(또는 시작 전)이면 아무것도 하지 않고 None을 반환한다.
        네트워크 실패 시 자동 재제출은 하지 않는다 (중복 채점 방지).
        """
        if not self.is_active:
            logger.info(f"제출 무시: status={self.status.value}")
            return None

        state = self.state
        state.status = SessionStatus.SUBMITTED
        self._stop_activities()

        elapsed = max(0, int(self._clock() - state.session_start_epoch))
        payload = SubmissionPayload(
            test_id=self.definition.id,
            answers=build_answer_entries(state.answers),
            elapsed_seconds=elapsed,
            fullscreen_exit_count=state.fullscreen_exit_count,
            auto_submitted=auto_submit,
        )
        logger.info(
            f"제출: test_id={payload.test_id}, 자동={auto_submit}, "
            f"경과={elapsed}초, 이탈={payload.fullscreen_exit_count}회"
        )
        if auto_submit:
            self._notifier.notify(
                "Time's Up!",
                "Your answers are being submitted automatically.",
            )

        # 취소되더라도 실패 결과는 남긴다
        outcome = SubmissionOutcome(payload=payload, ok=False, error_message=GENERIC_SUBMIT_ERROR)
        try:
            receipt = await self._submission_service.submit(payload)
        except SubmissionError as e:
            outcome = self._submission_failed(payload, e.message or GENERIC_SUBMIT_ERROR)
        except Exception:
            logger.exception(f"제출 중 예기치 않은 오류: test_id={payload.test_id}")
            outcome = self._submission_failed(payload, GENERIC_SUBMIT_ERROR)
        else:
            self._notifier.notify(
                "Test Submitted Successfully!",
                "Your answers have been sent for AI grading and teacher review.",
            )
            outcome = SubmissionOutcome(payload=payload, ok=True, receipt=receipt or {})
        finally:
            self.last_outcome = outcome
            await self._release_fullscreen()
        return outcome

    def _submission_failed(self, payload: SubmissionPayload, message: str) -> SubmissionOutcome:
        logger.error(f"제출 실패: test_id={payload.test_id}, {message}")
        self._notifier.notify(
            "Submission Failed",
            f"{message} (your attempt may not have been recorded, please contact your teacher)",
            "destructive",
        )
        return SubmissionOutcome(payload=payload, ok=False, error_message=message)

    def _stop_activities(self) -> None:
        self._monitor.stop()
        self._key_interceptor.uninstall()
        cancel_task(self._countdown_task)
        self._countdown_task = None

    async def _release_fullscreen(self) -> None:
        try:
            await self._fullscreen.exit_fullscreen()
        except FullscreenRequestError as e:
            logger.warning(f"전체화면 해제 실패: {e}")
