"""
Answer-sheet helpers.
"""
from qa_test_cbt.services.exam_service import (
    build_answer_entries, clamp_index, count_unanswered, format_time, is_time_warning,
    progress_percentage, unanswered_indices,
)


def test_unanswered_treats_whitespace_as_empty():
    answers = {0: "Paris", 1: "", 2: "  \n\t", 3: "Rome"}

    assert unanswered_indices(answers) == [1, 2]
    assert count_unanswered(answers) == 2


def test_answer_entries_are_ordered_and_untrimmed():
    entries = build_answer_entries({2: " c ", 0: "a", 1: ""})

    assert [(e.question_index, e.answer) for e in entries] == [(0, "a"), (1, ""), (2, " c ")]


def test_clamp_index():
    assert clamp_index(99, 5) == 4
    assert clamp_index(-1, 5) == 0
    assert clamp_index(2, 5) == 2
    assert clamp_index(3, 0) == 0


def test_format_time():
    assert format_time(600) == "10:00"
    assert format_time(125) == "2:05"
    assert format_time(9) == "0:09"
    assert format_time(-4) == "0:00"


def test_time_warning_under_a_minute():
    assert is_time_warning(59)
    assert not is_time_warning(60)


def test_progress_percentage():
    assert progress_percentage(0, 4) == 25.0
    assert progress_percentage(3, 4) == 100.0
    assert progress_percentage(0, 0) == 0.0
