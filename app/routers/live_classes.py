"""
Live classes router — Teacher-scheduled meeting links, student join tracking.

A class targets comma-separated semesters and sections; students see the
classes whose criteria match their own semester and section.
"""

import logging
from datetime import date, datetime, time, timezone

from fastapi import APIRouter, Depends, HTTPException

from app.core.database import get_supabase
from app.core.middleware import get_owned_row
from app.core.realtime import publish_rows
from app.core.security import require_role
from app.schemas.schedule import LiveClassCreate, LiveClassStatusUpdate, LiveClassUpdate
from app.utils.matching import filter_matching, matches_class
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/live-classes", tags=["Live Classes"])

teacher_only = require_role(["teacher"])
student_only = require_role(["student"])

JOINABLE = ("live", "upcoming", "available")


def _as_datetime(day, clock) -> datetime:
    day = day if isinstance(day, date) else date.fromisoformat(str(day))
    clock = clock if isinstance(clock, time) else time.fromisoformat(str(clock))
    return datetime.combine(day, clock)


def class_availability(live_class: dict, now: datetime | None = None) -> str:
    """
    Student-facing state of a class: live, upcoming, available, ended, cancelled.
    Class times are wall-clock times; `now` is compared naive.
    """
    status = live_class.get("status")
    if status == "live":
        return "live"
    if status == "completed":
        return "ended"
    if status == "cancelled":
        return "cancelled"

    now = now or datetime.now()
    start = _as_datetime(live_class["class_date"], live_class["start_time"])
    end = _as_datetime(live_class["class_date"], live_class["end_time"])
    if now < start:
        return "upcoming"
    if now <= end:
        return "available"
    return "ended"


def _serialize(body) -> dict:
    data = {}
    for key, value in body.model_dump().items():
        if value is None:
            continue
        data[key] = value.isoformat() if isinstance(value, (date, time)) else value
    return data


def _attendance_counts(class_ids: list[str]) -> dict[str, int]:
    if not class_ids:
        return {}
    rows = (
        get_supabase()
        .table("live_class_attendance")
        .select("live_class_id")
        .in_("live_class_id", class_ids)
        .execute()
    ).data or []
    counts: dict[str, int] = {}
    for r in rows:
        counts[r["live_class_id"]] = counts.get(r["live_class_id"], 0) + 1
    return counts


# ═══════════════════════════════════════════════════════════
# STUDENT
# ═══════════════════════════════════════════════════════════

@router.get("/student")
async def get_student_classes(user: dict = Depends(student_only)):
    """Classes matching the student's semester and section, with availability."""
    db = get_supabase()
    classes = (
        db.table("live_classes")
        .select("*, subjects(name, code), teachers(name)")
        .order("class_date")
        .order("start_time")
        .execute()
    ).data or []

    now = datetime.now()
    result = []
    for c in classes:
        if not matches_class(user, c.get("semester"), c.get("section")):
            continue
        c["availability"] = class_availability(c, now)
        c["subject_name"] = (c.get("subjects") or {}).get("name")
        c["teacher_name"] = (c.get("teachers") or {}).get("name")
        result.append(c)

    return success_response(data={
        "upcoming": [c for c in result if c["availability"] in JOINABLE],
        "past": [c for c in result if c["availability"] not in JOINABLE],
    })


@router.post("/student/{class_id}/join")
async def join_class(
    class_id: str,
    user: dict = Depends(student_only),
):
    db = get_supabase()
    result = db.table("live_classes").select("*").eq("id", class_id).limit(1).execute()
    if not result.data or not matches_class(user, result.data[0].get("semester"), result.data[0].get("section")):
        raise HTTPException(status_code=404, detail="Live class not found")
    live_class = result.data[0]

    availability = class_availability(live_class)
    if availability not in JOINABLE:
        raise HTTPException(status_code=409, detail=f"This class has {'been cancelled' if availability == 'cancelled' else 'ended'}")
    if not live_class.get("meeting_link"):
        raise HTTPException(status_code=400, detail="Meeting link not available for this class")

    existing = (
        db.table("live_class_attendance")
        .select("id")
        .eq("live_class_id", class_id)
        .eq("student_id", user["user_id"])
        .execute()
    )
    if not existing.data:
        inserted = db.table("live_class_attendance").insert({
            "live_class_id": class_id,
            "student_id": user["user_id"],
            "joined_at": datetime.now(timezone.utc).isoformat(),
            "status": "joined",
        }).execute()
        publish_rows("live_class_attendance", "INSERT", inserted.data)
        logger.info("Student %s joined live class %s", user["user_id"], class_id)

    return success_response(
        data={
            "meeting_link": live_class["meeting_link"],
            "meeting_id": live_class.get("meeting_id"),
            "meeting_password": live_class.get("meeting_password"),
            "availability": availability,
        },
        message="Joining class",
    )


# ═══════════════════════════════════════════════════════════
# TEACHER
# ═══════════════════════════════════════════════════════════

@router.get("")
async def get_teacher_classes(
    status: str | None = None,
    user: dict = Depends(teacher_only),
):
    db = get_supabase()
    query = db.table("live_classes").select("*, subjects(name, code)").eq("teacher_id", user["user_id"])
    if status:
        query = query.eq("status", status)
    classes = query.order("class_date", desc=True).order("start_time", desc=True).execute().data or []
    for c in classes:
        c["subject_name"] = (c.get("subjects") or {}).get("name")
    return success_response(data=classes)


@router.post("")
async def create_class(
    body: LiveClassCreate,
    user: dict = Depends(teacher_only),
):
    if body.subject_id:
        get_owned_row("subjects", body.subject_id, "teacher_id", user["user_id"], columns="id", label="Subject")

    data = {
        **_serialize(body),
        "teacher_id": user["user_id"],
        "status": "scheduled",
        "max_participants": body.max_participants or 100,
    }
    db = get_supabase()
    result = db.table("live_classes").insert(data).execute()
    publish_rows("live_classes", "INSERT", result.data)
    logger.info("Teacher %s scheduled live class %s", user["user_id"], result.data[0]["id"])
    return success_response(data=result.data, message="Live class scheduled")


@router.get("/history")
async def get_class_history(user: dict = Depends(teacher_only)):
    """Completed classes with how many students joined."""
    db = get_supabase()
    classes = (
        db.table("live_classes")
        .select("*, subjects(name, code)")
        .eq("teacher_id", user["user_id"])
        .eq("status", "completed")
        .order("class_date", desc=True)
        .execute()
    ).data or []
    counts = _attendance_counts([c["id"] for c in classes])
    for c in classes:
        c["subject_name"] = (c.get("subjects") or {}).get("name")
        c["attendance_count"] = counts.get(c["id"], 0)
    return success_response(data=classes)


@router.patch("/{class_id}")
async def update_class(
    class_id: str,
    body: LiveClassUpdate,
    user: dict = Depends(teacher_only),
):
    live_class = get_owned_row("live_classes", class_id, "teacher_id", user["user_id"], label="Live class")
    update_data = _serialize(body)
    if not update_data:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    merged = {**live_class, **update_data}
    if _as_datetime(merged["class_date"], merged["end_time"]) <= _as_datetime(merged["class_date"], merged["start_time"]):
        raise HTTPException(status_code=400, detail="End time must be after start time")

    update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
    db = get_supabase()
    result = db.table("live_classes").update(update_data).eq("id", class_id).execute()
    publish_rows("live_classes", "UPDATE", result.data)
    return success_response(data=result.data, message="Live class updated")


@router.patch("/{class_id}/status")
async def change_class_status(
    class_id: str,
    body: LiveClassStatusUpdate,
    user: dict = Depends(teacher_only),
):
    get_owned_row("live_classes", class_id, "teacher_id", user["user_id"], label="Live class")
    db = get_supabase()
    result = db.table("live_classes").update({
        "status": body.status,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }).eq("id", class_id).execute()
    publish_rows("live_classes", "UPDATE", result.data)
    return success_response(data=result.data, message=f"Class marked {body.status}")


@router.delete("/{class_id}")
async def delete_class(
    class_id: str,
    user: dict = Depends(teacher_only),
):
    get_owned_row("live_classes", class_id, "teacher_id", user["user_id"], label="Live class")
    db = get_supabase()
    db.table("live_classes").delete().eq("id", class_id).execute()
    publish_rows("live_classes", "DELETE", [{"id": class_id}])
    return success_response(message="Live class deleted")


@router.get("/{class_id}/students")
async def get_class_students(
    class_id: str,
    user: dict = Depends(teacher_only),
):
    """Students whose semester and section match the class criteria."""
    live_class = get_owned_row("live_classes", class_id, "teacher_id", user["user_id"], label="Live class")
    db = get_supabase()
    students = (
        db.table("students")
        .select("id, name, email, login_id, semester, section")
        .order("name")
        .execute()
    ).data or []
    return success_response(data=filter_matching(students, live_class.get("semester"), live_class.get("section")))


@router.get("/{class_id}/attendance")
async def get_class_attendance(
    class_id: str,
    user: dict = Depends(teacher_only),
):
    get_owned_row("live_classes", class_id, "teacher_id", user["user_id"], label="Live class")
    db = get_supabase()
    rows = (
        db.table("live_class_attendance")
        .select("*")
        .eq("live_class_id", class_id)
        .order("joined_at")
        .execute()
    ).data or []

    student_ids = [r["student_id"] for r in rows]
    students = {}
    if student_ids:
        students = {
            s["id"]: s
            for s in db.table("students").select("id, name, login_id").in_("id", student_ids).execute().data or []
        }
    for r in rows:
        student = students.get(r["student_id"]) or {}
        r["student_name"] = student.get("name")
        r["student_login_id"] = student.get("login_id")
    return success_response(data=rows)
