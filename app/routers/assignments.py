"""
Assignments router — Teacher authoring and grading, student drafts and submissions.

Lifecycle:
- Assignment status: draft → published ⇄ closed, anything → archived
- Submission grading_status: draft → pending → auto_graded → completed
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from app.core.database import get_supabase
from app.core.grading import (
    SUBMITTED_STATUSES, auto_grade, is_past, manual_total, parse_timestamp,
)
from app.core.middleware import get_owned_row
from app.core.realtime import publish_rows
from app.core.security import require_role
from app.schemas.assignments import (
    AssignmentCreate, AssignmentStatusUpdate, AssignmentSubmit, AssignmentUpdate,
    DraftSave, SubmissionGrade,
)
from app.utils.matching import matches_class
from app.utils.response import csv_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/assignments", tags=["Assignments"])

teacher_only = require_role(["teacher"])
student_only = require_role(["student"])

STATUS_TRANSITIONS = {
    "draft": {"published"},
    "published": {"closed"},
    "closed": {"published"},
}

DISPLAY_STATUS = {
    "draft": "Draft Saved",
    "pending": "Submitted",
    "auto_graded": "Auto-graded",
    "completed": "Graded",
}

# Question columns a student may see
STUDENT_QUESTION_COLUMNS = "id, question_text, question_type, marks, options, question_order, time_limit_seconds"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _questions(assignment_id: str, columns: str = "*") -> list[dict]:
    return (
        get_supabase()
        .table("assignment_questions")
        .select(columns)
        .eq("assignment_id", assignment_id)
        .order("question_order")
        .execute()
    ).data or []


def _student_map(student_ids) -> dict:
    ids = list({sid for sid in student_ids if sid})
    if not ids:
        return {}
    rows = (
        get_supabase()
        .table("students")
        .select("id, name, email, login_id, semester, section")
        .in_("id", ids)
        .execute()
    ).data or []
    return {s["id"]: s for s in rows}


def _latest_submission(assignment_id: str, student_id: str) -> dict | None:
    result = (
        get_supabase()
        .table("student_submissions")
        .select("*")
        .eq("assignment_id", assignment_id)
        .eq("student_id", student_id)
        .order("attempt_number", desc=True)
        .limit(1)
        .execute()
    )
    return result.data[0] if result.data else None


def _open_assignment(assignment_id: str, user: dict) -> dict:
    """A published assignment targeted at the student's semester and section."""
    db = get_supabase()
    result = db.table("assignments").select("*").eq("id", assignment_id).limit(1).execute()
    if not result.data or not matches_class(user, result.data[0].get("semester"), result.data[0].get("section")):
        raise HTTPException(status_code=404, detail="Assignment not found")
    assignment = result.data[0]
    if assignment.get("status") != "published":
        raise HTTPException(status_code=409, detail="Assignment is not open for submissions")
    return assignment


def _next_attempt(assignment: dict, latest: dict | None) -> int:
    attempt = (latest.get("attempt_number") or 1) + 1 if latest else 1
    max_attempts = assignment.get("max_attempts") or 1
    if attempt > max_attempts:
        raise HTTPException(
            status_code=409,
            detail=f"Maximum attempts ({max_attempts}) reached for this assignment",
        )
    return attempt


# ═══════════════════════════════════════════════════════════
# STUDENT
# ═══════════════════════════════════════════════════════════

@router.get("/student")
async def get_student_assignments(user: dict = Depends(student_only)):
    """Published assignments for the student's class with their latest attempt."""
    db = get_supabase()
    assignments = (
        db.table("assignments")
        .select("*, subjects(name, code)")
        .eq("status", "published")
        .order("deadline")
        .execute()
    ).data or []
    assignments = [a for a in assignments if matches_class(user, a.get("semester"), a.get("section"))]

    submissions = (
        db.table("student_submissions")
        .select("*")
        .eq("student_id", user["user_id"])
        .execute()
    ).data or []
    latest: dict[str, dict] = {}
    for s in submissions:
        current = latest.get(s["assignment_id"])
        if current is None or (s.get("attempt_number") or 1) > (current.get("attempt_number") or 1):
            latest[s["assignment_id"]] = s

    now = _now()
    result = []
    for a in assignments:
        submission = latest.get(a["id"])
        a["subject_name"] = (a.get("subjects") or {}).get("name")
        a["submission"] = submission
        a["display_status"] = DISPLAY_STATUS.get(submission["grading_status"], "Not Started") if submission else "Not Started"
        a["is_overdue"] = is_past(a.get("deadline"), now)
        result.append(a)

    return success_response(data=result)


@router.get("/student/{assignment_id}")
async def get_student_assignment(
    assignment_id: str,
    user: dict = Depends(student_only),
):
    """Assignment questions without answers, plus the student's latest attempt."""
    db = get_supabase()
    result = db.table("assignments").select("*").eq("id", assignment_id).limit(1).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Assignment not found")
    assignment = result.data[0]
    if assignment.get("status") not in ("published", "closed") or not matches_class(
        user, assignment.get("semester"), assignment.get("section")
    ):
        raise HTTPException(status_code=404, detail="Assignment not found")

    assignment["questions"] = _questions(assignment_id, STUDENT_QUESTION_COLUMNS)
    assignment["submission"] = _latest_submission(assignment_id, user["user_id"])
    return success_response(data=assignment)


@router.put("/student/{assignment_id}/draft")
async def save_draft(
    assignment_id: str,
    body: DraftSave,
    user: dict = Depends(student_only),
):
    assignment = _open_assignment(assignment_id, user)
    db = get_supabase()
    latest = _latest_submission(assignment_id, user["user_id"])

    data = {
        "answers": body.answers,
        "file_attachments": body.file_attachments,
        "grading_status": "draft",
    }
    if body.started_at:
        data["started_at"] = body.started_at

    if latest and latest.get("grading_status") == "draft":
        result = db.table("student_submissions").update(data).eq("id", latest["id"]).execute()
        event = "UPDATE"
    else:
        data.update({
            "assignment_id": assignment_id,
            "student_id": user["user_id"],
            "attempt_number": _next_attempt(assignment, latest),
            "started_at": body.started_at or _now().isoformat(),
        })
        result = db.table("student_submissions").insert(data).execute()
        event = "INSERT"

    publish_rows("student_submissions", event, result.data)
    return success_response(data=result.data[0] if result.data else None, message="Draft saved")


@router.post("/student/{assignment_id}/submit")
async def submit_assignment(
    assignment_id: str,
    body: AssignmentSubmit,
    user: dict = Depends(student_only),
):
    assignment = _open_assignment(assignment_id, user)
    db = get_supabase()

    if not body.auto_submit:
        attachments = body.file_attachments or {}
        unanswered = [
            q for q in _questions(assignment_id, "id, question_type")
            if not str(body.answers.get(q["id"]) or "").strip() and not attachments.get(q["id"])
        ]
        if unanswered:
            raise HTTPException(
                status_code=400,
                detail=f"Please answer all questions ({len(unanswered)} unanswered)",
            )

    now = _now()
    is_late = is_past(assignment.get("deadline"), now)
    if is_late and not assignment.get("late_submission_allowed"):
        raise HTTPException(status_code=409, detail="The deadline has passed and late submissions are not allowed")

    latest = _latest_submission(assignment_id, user["user_id"])
    draft = latest if latest and latest.get("grading_status") == "draft" else None

    started_at = parse_timestamp(body.started_at or (draft or {}).get("started_at"))
    time_taken = max(0, round((now - started_at).total_seconds() / 60)) if started_at else None

    data = {
        "answers": body.answers,
        "file_attachments": body.file_attachments,
        "grading_status": "pending",
        "submitted_at": now.isoformat(),
        "is_late": is_late,
        "time_taken_minutes": time_taken,
    }

    if draft:
        result = db.table("student_submissions").update(data).eq("id", draft["id"]).execute()
    else:
        data.update({
            "assignment_id": assignment_id,
            "student_id": user["user_id"],
            "attempt_number": _next_attempt(assignment, latest),
            "started_at": started_at.isoformat() if started_at else now.isoformat(),
        })
        result = db.table("student_submissions").insert(data).execute()

    submission = result.data[0]
    logger.info(
        "Student %s submitted assignment %s (attempt %s, late=%s)",
        user["user_id"], assignment_id, submission.get("attempt_number"), is_late,
    )

    score = None
    if assignment.get("auto_grade_mcq"):
        score = auto_grade(submission, assignment)

    publish_rows("student_submissions", "UPDATE" if draft else "INSERT", result.data)
    message = "Assignment submitted"
    if is_late:
        message += " (late)"
    return success_response(
        data={"submission": submission, "auto_graded_score": score, "is_late": is_late},
        message=message,
    )


# ═══════════════════════════════════════════════════════════
# TEACHER — AUTHORING
# ═══════════════════════════════════════════════════════════

@router.post("")
async def create_assignment(
    body: AssignmentCreate,
    user: dict = Depends(teacher_only),
):
    if parse_timestamp(body.deadline) is None:
        raise HTTPException(status_code=400, detail="Deadline is required")

    db = get_supabase()
    data = {
        **body.model_dump(exclude={"questions"}),
        "teacher_id": user["user_id"],
        "status": "draft",
    }
    result = db.table("assignments").insert(data).execute()
    assignment = result.data[0]

    if body.questions:
        questions = [
            {**q.model_dump(), "assignment_id": assignment["id"], "question_order": i}
            for i, q in enumerate(body.questions, start=1)
        ]
        assignment["questions"] = db.table("assignment_questions").insert(questions).execute().data
    else:
        assignment["questions"] = []

    publish_rows("assignments", "INSERT", result.data)
    logger.info("Teacher %s created assignment %s", user["user_id"], assignment["id"])
    return success_response(data=assignment, message="Assignment created")


@router.get("")
async def get_teacher_assignments(
    status: str | None = None,
    user: dict = Depends(teacher_only),
):
    db = get_supabase()
    query = db.table("assignments").select("*, subjects(name, code)").eq("teacher_id", user["user_id"])
    if status:
        query = query.eq("status", status)
    assignments = query.order("created_at", desc=True).execute().data or []

    for a in assignments:
        submissions = (
            db.table("student_submissions")
            .select("grading_status")
            .eq("assignment_id", a["id"])
            .execute()
        ).data or []
        a["subject_name"] = (a.get("subjects") or {}).get("name")
        a["submission_count"] = sum(1 for s in submissions if s.get("grading_status") in SUBMITTED_STATUSES)
        a["graded_count"] = sum(1 for s in submissions if s.get("grading_status") == "completed")

    return success_response(data=assignments)


@router.get("/reports/student/{student_id}")
async def student_report(
    student_id: str,
    user: dict = Depends(teacher_only),
):
    """One student's latest attempt on each of the teacher's assignments."""
    db = get_supabase()
    student = _student_map([student_id]).get(student_id)
    if not student:
        raise HTTPException(status_code=404, detail="Student not found")

    assignments = (
        db.table("assignments")
        .select("id, title, total_marks, deadline, status, semester, section")
        .eq("teacher_id", user["user_id"])
        .neq("status", "draft")
        .order("deadline")
        .execute()
    ).data or []
    assignments = [a for a in assignments if matches_class(student, a.get("semester"), a.get("section"))]

    rows = []
    scored, marks_total = 0.0, 0.0
    for a in assignments:
        latest = _latest_submission(a["id"], student_id)
        submitted = latest if latest and latest.get("grading_status") in SUBMITTED_STATUSES else None
        rows.append({
            "assignment_id": a["id"],
            "title": a["title"],
            "deadline": a.get("deadline"),
            "total_marks": a.get("total_marks"),
            "status": DISPLAY_STATUS.get(submitted["grading_status"]) if submitted else "Not Submitted",
            "score": submitted.get("total_score") if submitted else None,
            "is_late": bool(submitted and submitted.get("is_late")),
        })
        if submitted and submitted.get("grading_status") == "completed":
            scored += float(submitted.get("total_score") or 0)
            marks_total += float(a.get("total_marks") or 0)

    return success_response(data={
        "student": student,
        "assignments": rows,
        "submitted": sum(1 for r in rows if r["status"] != "Not Submitted"),
        "percentage": round(scored / marks_total * 100, 2) if marks_total else 0,
    })


@router.patch("/submissions/{submission_id}/grade")
async def grade_submission(
    submission_id: str,
    body: SubmissionGrade,
    user: dict = Depends(teacher_only),
):
    """Manual grading: per-question points on top of the auto-graded score."""
    db = get_supabase()
    result = db.table("student_submissions").select("*").eq("id", submission_id).limit(1).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Submission not found")
    submission = result.data[0]
    if submission.get("grading_status") == "draft":
        raise HTTPException(status_code=409, detail="Drafts cannot be graded")

    get_owned_row("assignments", submission["assignment_id"], "teacher_id", user["user_id"], label="Submission")
    questions = _questions(submission["assignment_id"], "id, marks, question_type")
    auto_graded = submission.get("auto_graded_score") is not None

    try:
        manual = manual_total(body.question_points, questions, auto_graded=auto_graded)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    total = float(submission.get("auto_graded_score") or 0) + manual
    now = _now().isoformat()
    updated = db.table("student_submissions").update({
        "manual_graded_score": manual,
        "total_score": total,
        "grading_status": "completed",
        "feedback": body.feedback,
        "graded_at": now,
        "graded_by": user["user_id"],
    }).eq("id", submission_id).execute()

    db.table("question_grades").delete().eq("submission_id", submission_id).execute()
    if body.question_points:
        db.table("question_grades").insert([
            {
                "submission_id": submission_id,
                "question_id": question_id,
                "points_awarded": points,
                "graded_by": user["user_id"],
                "graded_at": now,
            }
            for question_id, points in body.question_points.items()
        ]).execute()

    publish_rows("student_submissions", "UPDATE", updated.data)
    logger.info("Submission %s graded by %s: %s", submission_id, user["user_id"], total)
    return success_response(data=updated.data, message=f"Submission graded ({total:g} marks)")


@router.get("/{assignment_id}")
async def get_assignment(
    assignment_id: str,
    user: dict = Depends(teacher_only),
):
    assignment = get_owned_row("assignments", assignment_id, "teacher_id", user["user_id"], label="Assignment")
    assignment["questions"] = _questions(assignment_id)
    return success_response(data=assignment)


@router.patch("/{assignment_id}")
async def update_assignment(
    assignment_id: str,
    body: AssignmentUpdate,
    user: dict = Depends(teacher_only),
):
    get_owned_row("assignments", assignment_id, "teacher_id", user["user_id"], label="Assignment")
    update_data = {k: v for k, v in body.model_dump().items() if v is not None}
    if not update_data:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    update_data["updated_at"] = _now().isoformat()

    db = get_supabase()
    result = db.table("assignments").update(update_data).eq("id", assignment_id).execute()
    publish_rows("assignments", "UPDATE", result.data)
    return success_response(data=result.data, message="Assignment updated")


@router.delete("/{assignment_id}")
async def delete_assignment(
    assignment_id: str,
    user: dict = Depends(teacher_only),
):
    get_owned_row("assignments", assignment_id, "teacher_id", user["user_id"], label="Assignment")
    db = get_supabase()
    db.table("assignments").delete().eq("id", assignment_id).execute()
    publish_rows("assignments", "DELETE", [{"id": assignment_id}])
    return success_response(message="Assignment deleted")


@router.patch("/{assignment_id}/status")
async def change_assignment_status(
    assignment_id: str,
    body: AssignmentStatusUpdate,
    user: dict = Depends(teacher_only),
):
    assignment = get_owned_row("assignments", assignment_id, "teacher_id", user["user_id"], label="Assignment")
    current = assignment.get("status") or "draft"

    if body.status != "archived" and body.status not in STATUS_TRANSITIONS.get(current, set()):
        raise HTTPException(
            status_code=409,
            detail=f"Cannot change assignment status from '{current}' to '{body.status}'",
        )

    db = get_supabase()
    result = db.table("assignments").update({
        "status": body.status,
        "updated_at": _now().isoformat(),
    }).eq("id", assignment_id).execute()
    publish_rows("assignments", "UPDATE", result.data)
    logger.info("Assignment %s: %s -> %s", assignment_id, current, body.status)
    return success_response(data=result.data, message=f"Assignment {body.status}")


# ═══════════════════════════════════════════════════════════
# TEACHER — SUBMISSIONS & REPORTS
# ═══════════════════════════════════════════════════════════

@router.get("/{assignment_id}/eligible-students")
async def get_eligible_students(
    assignment_id: str,
    user: dict = Depends(teacher_only),
):
    get_owned_row("assignments", assignment_id, "teacher_id", user["user_id"], label="Assignment")
    db = get_supabase()
    result = db.table("assignment_eligible_students").select("*").eq("assignment_id", assignment_id).execute()
    return success_response(data=result.data)


@router.get("/{assignment_id}/stats")
async def get_assignment_stats(
    assignment_id: str,
    user: dict = Depends(teacher_only),
):
    get_owned_row("assignments", assignment_id, "teacher_id", user["user_id"], label="Assignment")
    db = get_supabase()
    result = db.rpc("get_assignment_stats", {"assignment_uuid": assignment_id}).execute()
    return success_response(data=result.data)


@router.get("/{assignment_id}/submissions")
async def get_submissions(
    assignment_id: str,
    status: str = "all",
    user: dict = Depends(teacher_only),
):
    """Submissions filtered by `pending` (awaiting manual grading), `completed` or `all`."""
    get_owned_row("assignments", assignment_id, "teacher_id", user["user_id"], label="Assignment")
    db = get_supabase()
    query = db.table("student_submissions").select("*").eq("assignment_id", assignment_id)
    if status == "pending":
        query = query.in_("grading_status", ["pending", "auto_graded"])
    elif status == "completed":
        query = query.eq("grading_status", "completed")
    elif status == "all":
        query = query.in_("grading_status", list(SUBMITTED_STATUSES))
    else:
        raise HTTPException(status_code=400, detail="status must be 'pending', 'completed' or 'all'")

    submissions = query.order("submitted_at", desc=True).execute().data or []
    students = _student_map(s["student_id"] for s in submissions)
    for s in submissions:
        student = students.get(s["student_id"]) or {}
        s["student_name"] = student.get("name")
        s["student_login_id"] = student.get("login_id")

    return success_response(data=submissions)


def _assignment_summary(assignment_id: str) -> tuple[dict, list[dict]]:
    submissions = (
        get_supabase()
        .table("student_submissions")
        .select("*")
        .eq("assignment_id", assignment_id)
        .in_("grading_status", list(SUBMITTED_STATUSES))
        .execute()
    ).data or []
    graded = [float(s.get("total_score") or 0) for s in submissions if s.get("grading_status") == "completed"]
    summary = {
        "submitted": len(submissions),
        "graded": len(graded),
        "pending": len(submissions) - len(graded),
        "late": sum(1 for s in submissions if s.get("is_late")),
        "average": round(sum(graded) / len(graded), 2) if graded else 0,
        "highest": max(graded) if graded else 0,
        "lowest": min(graded) if graded else 0,
    }
    return summary, submissions


@router.get("/{assignment_id}/report")
async def assignment_report(
    assignment_id: str,
    user: dict = Depends(teacher_only),
):
    assignment = get_owned_row("assignments", assignment_id, "teacher_id", user["user_id"], label="Assignment")
    summary, _ = _assignment_summary(assignment_id)
    return success_response(data={
        "assignment_id": assignment_id,
        "title": assignment.get("title"),
        "total_marks": assignment.get("total_marks"),
        **summary,
    })


@router.get("/{assignment_id}/report/export")
async def export_assignment_report(
    assignment_id: str,
    user: dict = Depends(teacher_only),
):
    assignment = get_owned_row("assignments", assignment_id, "teacher_id", user["user_id"], label="Assignment")
    _, submissions = _assignment_summary(assignment_id)
    students = _student_map(s["student_id"] for s in submissions)

    header = ["Student ID", "Student Name", "Attempt", "Submitted At", "Late",
              "Auto Score", "Manual Score", "Total Score", "Status"]
    rows = []
    for s in sorted(submissions, key=lambda s: (students.get(s["student_id"]) or {}).get("login_id") or ""):
        student = students.get(s["student_id"]) or {}
        rows.append([
            student.get("login_id", ""), student.get("name", ""), s.get("attempt_number") or 1,
            s.get("submitted_at") or "", "Yes" if s.get("is_late") else "No",
            s.get("auto_graded_score") if s.get("auto_graded_score") is not None else "",
            s.get("manual_graded_score") if s.get("manual_graded_score") is not None else "",
            s.get("total_score") if s.get("total_score") is not None else "",
            DISPLAY_STATUS.get(s.get("grading_status"), s.get("grading_status")),
        ])

    safe_title = "".join(c if c.isalnum() else "_" for c in assignment.get("title") or "assignment")
    return csv_response(f"{safe_title}_grades.csv", header, rows)
