"""
Dashboard router — Summary counts for the teacher and student home pages.
"""

from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends

from app.core.database import count_rows, get_supabase
from app.core.grading import SUBMITTED_STATUSES
from app.core.security import require_role
from app.utils.matching import matches_class
from app.utils.response import success_response

router = APIRouter(prefix="/api/dashboard", tags=["Dashboard"])


def _unread_messages(user: dict) -> int:
    db = get_supabase()
    direct = (
        db.table("messages")
        .select("id", count="exact")
        .eq("recipient_id", user["user_id"])
        .eq("recipient_type", user["role"])
        .eq("is_read", False)
        .execute()
    )
    group = (
        db.table("message_recipients")
        .select("id", count="exact")
        .eq("recipient_id", user["user_id"])
        .eq("is_read", False)
        .execute()
    )
    return sum(r.count if r.count is not None else len(r.data or []) for r in (direct, group))


@router.get("/teacher")
async def teacher_dashboard(user: dict = Depends(require_role(["teacher"]))):
    db = get_supabase()
    today = date.today().isoformat()

    assignments = (
        db.table("assignments")
        .select("id, status")
        .eq("teacher_id", user["user_id"])
        .execute()
    ).data or []
    by_status = {s: 0 for s in ("draft", "published", "closed", "archived")}
    for a in assignments:
        by_status[a.get("status") or "draft"] = by_status.get(a.get("status") or "draft", 0) + 1

    pending_grading = 0
    if assignments:
        pending = (
            db.table("student_submissions")
            .select("id", count="exact")
            .in_("assignment_id", [a["id"] for a in assignments])
            .in_("grading_status", ["pending", "auto_graded"])
            .execute()
        )
        pending_grading = pending.count if pending.count is not None else len(pending.data or [])

    upcoming_classes = (
        db.table("live_classes")
        .select("id, title, class_date, start_time, end_time, status, semester, section")
        .eq("teacher_id", user["user_id"])
        .eq("status", "scheduled")
        .gte("class_date", today)
        .order("class_date")
        .order("start_time")
        .limit(5)
        .execute()
    ).data or []

    upcoming_events = (
        db.table("calendar_events")
        .select("id, title, event_type, start_date, priority, status")
        .eq("teacher_id", user["user_id"])
        .gte("start_date", datetime.now(timezone.utc).isoformat())
        .neq("status", "completed")
        .order("start_date")
        .limit(5)
        .execute()
    ).data or []

    return success_response(data={
        "subjects": count_rows("subjects", teacher_id=user["user_id"]),
        "assignments": len(assignments),
        "assignments_by_status": by_status,
        "pending_grading": pending_grading,
        "upcoming_classes": upcoming_classes,
        "upcoming_events": upcoming_events,
        "unread_messages": _unread_messages(user),
    })


@router.get("/student")
async def student_dashboard(user: dict = Depends(require_role(["student"]))):
    db = get_supabase()

    assignments = (
        db.table("assignments")
        .select("id, semester, section, total_marks")
        .eq("status", "published")
        .execute()
    ).data or []
    assignments = [a for a in assignments if matches_class(user, a.get("semester"), a.get("section"))]
    assignment_ids = {a["id"] for a in assignments}

    submissions = (
        db.table("student_submissions")
        .select("assignment_id, grading_status, total_score")
        .eq("student_id", user["user_id"])
        .execute()
    ).data or []
    submitted = {s["assignment_id"] for s in submissions
                 if s["assignment_id"] in assignment_ids and s.get("grading_status") in SUBMITTED_STATUSES}
    graded = [float(s.get("total_score") or 0) for s in submissions
              if s["assignment_id"] in assignment_ids and s.get("grading_status") == "completed"]

    attendance = (
        db.table("attendance")
        .select("present")
        .eq("student_id", user["user_id"])
        .execute()
    ).data or []
    present = sum(1 for r in attendance if r.get("present"))

    classes = (
        db.table("live_classes")
        .select("id, title, class_date, start_time, end_time, status, semester, section, meeting_link")
        .in_("status", ["scheduled", "live"])
        .gte("class_date", date.today().isoformat())
        .order("class_date")
        .order("start_time")
        .execute()
    ).data or []
    upcoming = [c for c in classes if matches_class(user, c.get("semester"), c.get("section"))][:5]

    return success_response(data={
        "assignments": len(assignments),
        "submitted": len(submitted),
        "pending": len(assignment_ids - submitted),
        "average_score": round(sum(graded) / len(graded), 2) if graded else 0,
        "attendance_percentage": round(present / len(attendance) * 100, 2) if attendance else 0,
        "upcoming_classes": upcoming,
        "unread_messages": _unread_messages(user),
    })
