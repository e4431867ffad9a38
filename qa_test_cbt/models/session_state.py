"""
models/session_state.py

응시 1회분의 런타임 상태와 제출 페이로드 모델.
Pydantic BaseModel 기반 — 직렬화 및 타입 안전성 확보.
UI 코드 없음.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class SessionStatus(str, Enum):
    NOT_STARTED = "not_started"
    ACTIVE = "active"
    SUBMITTED = "submitted"


class SessionState(BaseModel):
    """
    세션 컨트롤러가 단독으로 소유하는 응시 상태.

    Attributes:
        status:                 NOT_STARTED → ACTIVE → SUBMITTED (종료 상태).
        current_question_index: 현재 보고 있는 문제 인덱스 (0-based).
        answers:                {문제 인덱스: 답안 문자열}. 시작 시 모든 칸이 "" 로 채워진다.
        remaining_seconds:      남은 시간 (초). ACTIVE 동안 감소만 한다.
        fullscreen_exit_count:  전체화면 이탈 횟수. 증가만 한다.
        session_start_epoch:    ACTIVE 진입 시각 (Unix timestamp). 경과 시간 계산용.
    """

    status: SessionStatus = Field(
        default=SessionStatus.NOT_STARTED,
        description="세션 상태"
    )
    current_question_index: int = Field(
        default=0,
        ge=0,
        description="현재 문제 인덱스 (0-based)"
    )
    answers: Dict[int, str] = Field(
        default_factory=dict,
        description="답안지. key: 문제 인덱스, value: 서술형 답안"
    )
    remaining_seconds: int = Field(
        default=0,
        ge=0,
        description="남은 시간 (초)"
    )
    fullscreen_exit_count: int = Field(
        default=0,
        ge=0,
        description="전체화면 이탈 횟수"
    )
    session_start_epoch: Optional[float] = Field(
        default=None,
        description="시험 시작 시각 (ACTIVE 진입 시 한 번만 기록)"
    )

    model_config = {"validate_assignment": True}

    @classmethod
    def for_questions(cls, question_count: int, time_limit_minutes: int) -> "SessionState":
        """문항 수만큼 빈 답안 칸을 미리 채운 새 상태를 만든다."""
        return cls(
            answers={i: "" for i in range(question_count)},
            remaining_seconds=time_limit_minutes * 60,
        )

    @property
    def is_active(self) -> bool:
        return self.status == SessionStatus.ACTIVE


class AnswerEntry(BaseModel):
    question_index: int
    answer: str


class SubmissionPayload(BaseModel):
    """
    /qa-submissions/submit/ 으로 전송되는 제출 데이터.
    서버 필드명(time_taken, fullscreen_exits)은 alias로 맞춘다.
    """

    test_id: int
    answers: List[AnswerEntry]
    elapsed_seconds: int = Field(..., ge=0, serialization_alias="time_taken")
    fullscreen_exit_count: int = Field(..., ge=0, serialization_alias="fullscreen_exits")
    auto_submitted: bool = Field(default=False, exclude=True)

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True)


class SubmissionOutcome(BaseModel):
    """제출 결과. 네트워크 실패 여부와 관계없이 세션은 이미 SUBMITTED 상태다."""

    payload: SubmissionPayload
    ok: bool
    error_message: Optional[str] = None
    receipt: Dict[str, object] = Field(default_factory=dict)
