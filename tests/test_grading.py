from datetime import datetime, timezone

import pytest

from app.core.grading import (
    apply_late_penalty, auto_grade, is_past, manual_total, parse_timestamp,
    score_mcq_answers,
)

QUESTIONS = [
    {"id": "q1", "question_type": "mcq", "correct_answer": "b", "marks": 2},
    {"id": "q2", "question_type": "mcq", "correct_answer": "a", "marks": 3},
    {"id": "q3", "question_type": "essay", "correct_answer": None, "marks": 5},
]


def test_parse_timestamp_assumes_utc_for_naive_values():
    parsed = parse_timestamp("2025-03-01T10:00:00")
    assert parsed == datetime(2025, 3, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp("2025-03-01T10:00:00Z").tzinfo is not None
    assert parse_timestamp(None) is None


def test_is_past_compares_against_now():
    now = datetime(2025, 3, 1, 12, tzinfo=timezone.utc)
    assert is_past("2025-03-01T11:59:59Z", now)
    assert not is_past("2025-03-01T12:00:00Z", now)
    assert not is_past(None, now)


def test_score_mcq_counts_only_correct_mcq_answers():
    answers = {"q1": "b", "q2": "c", "q3": "anything"}
    assert score_mcq_answers(QUESTIONS, answers) == 2


def test_late_penalty_applies_only_when_late():
    assert apply_late_penalty(10, 20, False) == (10, 0.0)
    assert apply_late_penalty(10, 20, True) == (8.0, 2.0)
    assert apply_late_penalty(10, None, True) == (10, 0.0)


def test_manual_total_sums_valid_points():
    assert manual_total({"q3": 4.5}, QUESTIONS) == 4.5


def test_manual_total_rejects_points_above_question_marks():
    with pytest.raises(ValueError, match="between 0 and 5"):
        manual_total({"q3": 6}, QUESTIONS)


def test_manual_total_rejects_unknown_question():
    with pytest.raises(ValueError, match="does not belong"):
        manual_total({"q9": 1}, QUESTIONS)


def test_manual_total_rejects_mcq_points_after_auto_grading():
    with pytest.raises(ValueError, match="already auto-graded"):
        manual_total({"q1": 2, "q3": 5}, QUESTIONS, auto_graded=True)

    assert manual_total({"q1": 2, "q3": 5}, QUESTIONS) == 7


def test_local_auto_grade_scores_and_leaves_manual_questions_pending(db):
    for q in QUESTIONS:
        db.add("assignment_questions", {**q, "assignment_id": "a1"})
    submission = db.add("student_submissions", {
        "assignment_id": "a1", "answers": {"q1": "b", "q2": "a"}, "is_late": True,
        "grading_status": "pending",
    })

    score = auto_grade(submission, {"id": "a1", "late_penalty_percentage": 10})

    assert score == 4.5
    stored = db.rows("student_submissions", id=submission["id"])[0]
    assert stored["auto_graded_score"] == 4.5
    assert stored["penalty_applied"] == 0.5
    assert stored["grading_status"] == "auto_graded"


def test_local_auto_grade_completes_mcq_only_assignments(db):
    db.add("assignment_questions", {**QUESTIONS[0], "assignment_id": "a2"})
    submission = db.add("student_submissions", {"assignment_id": "a2", "answers": {"q1": "b"}})

    auto_grade(submission, {"id": "a2"})

    stored = db.rows("student_submissions", id=submission["id"])[0]
    assert stored["grading_status"] == "completed"
    assert stored["total_score"] == 2


def test_rpc_auto_grade_delegates_to_database(db, monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "AUTO_GRADE_MODE", "rpc")
    db.functions["auto_grade_mcq_submission"] = lambda fake, params: 7

    assert auto_grade({"id": "sub-1"}, {"id": "a1"}) == 7
    assert db.rpc_calls[-1] == ("auto_grade_mcq_submission", {"submission_id": "sub-1"})
