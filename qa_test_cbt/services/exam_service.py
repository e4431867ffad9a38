"""
services/exam_service.py

답안지 집계 및 표시용 계산 로직.
순수 Python 함수로 구성 — UI 코드, 전역 상태 변경 없음.
"""

from typing import Dict, List

from qa_test_cbt.models.session_state import AnswerEntry

_TIME_WARNING_SECONDS = 60  # 1분 미만이면 경고 표시


def unanswered_indices(answers: Dict[int, str]) -> List[int]:
    """
    미응답 문제 인덱스 목록을 반환한다.

    미응답 판정 기준: 답안이 빈 문자열이거나 공백 문자만 있는 경우.

    Args:
        answers: 답안지. {문제 인덱스: 답안 문자열}

    Returns:
        미응답 인덱스 리스트 (오름차순).
    """
    return [i for i in sorted(answers) if not answers[i].strip()]


def count_unanswered(answers: Dict[int, str]) -> int:
    return len(unanswered_indices(answers))


def build_answer_entries(answers: Dict[int, str]) -> List[AnswerEntry]:
    """
    답안지를 제출용 리스트로 변환한다.

    답안 문자열은 그대로 보낸다 (trim 하지 않음).

    Returns:
        [AnswerEntry(question_index=i, answer=...), ...] 인덱스 순.
    """
    return [
        AnswerEntry(question_index=i, answer=answers[i])
        for i in sorted(answers)
    ]


def clamp_index(index: int, question_count: int) -> int:
    """문제 인덱스를 [0, question_count - 1] 범위로 보정한다."""
    if question_count <= 0:
        return 0
    return max(0, min(index, question_count - 1))


def format_time(seconds: int) -> str:
    """
    남은 시간 표시 문자열.

    Args:
        seconds: 남은 시간 (초). 음수는 0으로 취급.

    Returns:
        "M:SS" 형식 문자열 (예: 125 → "2:05").
    """
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


def is_time_warning(seconds: int) -> bool:
    return seconds < _TIME_WARNING_SECONDS


def progress_percentage(current_index: int, question_count: int) -> float:
    """현재 문제 위치 기준 진행률 (0.0 ~ 100.0)."""
    if question_count <= 0:
        return 0.0
    return round((current_index + 1) / question_count * 100, 1)
