from typing import List, Literal

from pydantic import BaseModel, Field, field_validator


class QAQuestion(BaseModel):
    """
    서술형(Q&A) 문제 한 개.
    """
    question: str = Field(
        ...,
        description="문제 본문 (발문)"
    )
    expected_points: str = Field(
        "",
        description="채점 시 기대하는 핵심 포인트 (학생 화면에는 표시하지 않음)"
    )


class AssessmentDefinition(BaseModel):
    """
    시험 카탈로그(/qa-tests/)에서 내려오는 서술형 시험 정의.
    세션 컨트롤러 입장에서는 읽기 전용이다.
    """
    id: int = Field(
        ...,
        description="시험 ID (제출 시 test_id로 사용)"
    )
    title: str = Field(
        ...,
        description="시험 제목"
    )
    lesson: int | None = Field(
        None,
        description="연결된 수업 ID"
    )
    lesson_title: str = Field(
        "",
        description="연결된 수업 제목"
    )
    questions: List[QAQuestion] = Field(
        default_factory=list,
        description="문제 목록 (순서 유지)"
    )
    time_limit: int = Field(
        ...,
        description="제한 시간 (분)"
    )
    status: Literal["draft", "pending", "approved", "rejected"] = Field(
        "approved",
        description="시험 승인 상태. 학생은 approved 시험만 응시 가능."
    )
    num_questions: int = Field(
        0,
        description="서버가 보고한 문항 수 (표시용)"
    )

    model_config = {"frozen": True}

    @field_validator("questions", mode="before")
    @classmethod
    def coerce_plain_questions(cls, v):
        """
        문자열만 들어있는 문제 목록도 허용한다 (구버전 시험 데이터).
        """
        if isinstance(v, list):
            return [{"question": q} if isinstance(q, str) else q for q in v]
        return v

    @property
    def question_count(self) -> int:
        return len(self.questions)
