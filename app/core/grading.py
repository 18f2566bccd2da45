"""
Submission scoring and late-penalty rules.

Auto-grading normally runs in the database (auto_grade_mcq_submission);
with AUTO_GRADE_MODE=local the same MCQ scoring runs here.
"""

import logging
from datetime import datetime, timezone

from dateutil import parser

from app.core.config import settings
from app.core.database import get_supabase

logger = logging.getLogger(__name__)

SUBMITTED_STATUSES = ("pending", "auto_graded", "completed")


def parse_timestamp(value) -> datetime | None:
    if not value:
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        dt = parser.isoparse(str(value))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def is_past(deadline, now: datetime | None = None) -> bool:
    deadline_dt = parse_timestamp(deadline)
    if deadline_dt is None:
        return False
    now = now or datetime.now(timezone.utc)
    return now > deadline_dt


def score_mcq_answers(questions: list[dict], answers: dict) -> float:
    """Sum the marks of MCQ questions answered with the correct option."""
    score = 0.0
    for q in questions:
        if q.get("question_type") != "mcq":
            continue
        expected = q.get("correct_answer")
        given = answers.get(q["id"])
        if expected is not None and given is not None and str(given).strip() == str(expected).strip():
            score += float(q.get("marks") or 0)
    return score


def apply_late_penalty(score: float, penalty_percentage, is_late: bool) -> tuple[float, float]:
    """Returns (penalised score, penalty points)."""
    if not is_late or not penalty_percentage:
        return score, 0.0
    penalty = round(score * float(penalty_percentage) / 100, 2)
    return round(score - penalty, 2), penalty


def manual_total(points: dict[str, float], questions: list[dict], auto_graded: bool = False) -> float:
    """
    Validate per-question points against question marks and sum them.
    Once auto-grading has scored the MCQ questions they take no manual points.
    """
    marks = {q["id"]: float(q.get("marks") or 0) for q in questions}
    mcq_ids = {q["id"] for q in questions if q.get("question_type") == "mcq"}
    total = 0.0
    for question_id, awarded in points.items():
        if question_id not in marks:
            raise ValueError(f"Question {question_id} does not belong to this assignment")
        if auto_graded and question_id in mcq_ids:
            raise ValueError(f"Question {question_id} is multiple choice and already auto-graded")
        if awarded < 0 or awarded > marks[question_id]:
            raise ValueError(f"Points for question {question_id} must be between 0 and {marks[question_id]:g}")
        total += awarded
    return total


def auto_grade(submission: dict, assignment: dict) -> float | None:
    """
    Auto-grade a freshly submitted attempt.
    Returns the score written by the grader.
    """
    db = get_supabase()

    if settings.AUTO_GRADE_MODE == "rpc":
        result = db.rpc("auto_grade_mcq_submission", {"submission_id": submission["id"]}).execute()
        logger.info("Auto-graded submission %s via database: %s", submission["id"], result.data)
        return result.data

    questions = (
        db.table("assignment_questions")
        .select("id, question_type, correct_answer, marks")
        .eq("assignment_id", assignment["id"])
        .execute()
    ).data or []

    raw = score_mcq_answers(questions, submission.get("answers") or {})
    score, penalty = apply_late_penalty(
        raw, assignment.get("late_penalty_percentage"), bool(submission.get("is_late"))
    )
    has_manual = any(q.get("question_type") != "mcq" for q in questions)

    db.table("student_submissions").update({
        "auto_graded_score": score,
        "total_score": score,
        "penalty_applied": penalty,
        "grading_status": "auto_graded" if has_manual else "completed",
        "graded_at": datetime.now(timezone.utc).isoformat() if not has_manual else None,
    }).eq("id", submission["id"]).execute()

    logger.info("Auto-graded submission %s locally: %s (penalty %s)", submission["id"], score, penalty)
    return score
