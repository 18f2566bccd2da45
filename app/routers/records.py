"""
Records router — Attendance and marks kept by teachers, read back by students.

Teachers work with the students of their own department, narrowed by
semester and section. Attendance is one row per student per date; marks are
one row per student per subject/class, with every change kept in marks_history.
"""

import logging
from datetime import date, datetime, timezone

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from app.core.config import settings
from app.core.database import get_supabase
from app.core.middleware import get_owned_row
from app.core.realtime import publish_rows
from app.core.security import require_role
from app.schemas.workflow import AttendanceMark, MarksConfig, MarksSubmit
from app.utils.csv_tools import attendance_report, decode_upload, parse_attendance_csv
from app.utils.response import csv_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/records", tags=["Records"])

teacher_only = require_role(["teacher"])
student_only = require_role(["student"])

DEFAULT_MARKS_CONFIG = {
    "max_internal_marks": 50,
    "max_practical_marks": 25,
    "max_assignment_marks": 25,
}
MARK_COMPONENTS = ("internal_marks", "practical_marks", "assignment_marks")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _department_students(user: dict, semester: str | None = None, section: str | None = None) -> list[dict]:
    db = get_supabase()
    query = db.table("students").select("id, name, email, login_id, semester, section")
    if user.get("department_id"):
        query = query.eq("department_id", user["department_id"])
    if semester:
        query = query.eq("semester", semester)
    if section:
        query = query.eq("section", section)
    return query.order("name").execute().data or []


def _upsert_attendance(user: dict, day: str, records: dict[str, bool]) -> list[dict]:
    rows = [
        {
            "student_id": student_id,
            "teacher_id": user["user_id"],
            "date": day,
            "present": present,
            "updated_at": _now(),
        }
        for student_id, present in records.items()
    ]
    if not rows:
        return []
    result = get_supabase().table("attendance").upsert(rows, on_conflict="student_id,date").execute()
    publish_rows("attendance", "UPSERT", result.data)
    return result.data or []


# ═══════════════════════════════════════════════════════════
# ATTENDANCE
# ═══════════════════════════════════════════════════════════

@router.get("/students")
async def get_students(
    semester: str | None = None,
    section: str | None = None,
    user: dict = Depends(teacher_only),
):
    return success_response(data=_department_students(user, semester, section))


@router.get("/attendance")
async def get_attendance(
    day: date,
    semester: str | None = None,
    section: str | None = None,
    user: dict = Depends(teacher_only),
):
    """Attendance sheet for a date; students without a record are absent."""
    students = _department_students(user, semester, section)
    db = get_supabase()
    marked = {}
    if students:
        rows = (
            db.table("attendance")
            .select("student_id, present")
            .eq("date", day.isoformat())
            .in_("student_id", [s["id"] for s in students])
            .execute()
        ).data or []
        marked = {r["student_id"]: bool(r["present"]) for r in rows}

    sheet = [{**s, "present": marked.get(s["id"], False)} for s in students]
    return success_response(data={
        "date": day.isoformat(),
        "students": sheet,
        "present": sum(1 for s in sheet if s["present"]),
        "absent": sum(1 for s in sheet if not s["present"]),
    })


@router.post("/attendance")
async def save_attendance(
    body: AttendanceMark,
    user: dict = Depends(teacher_only),
):
    records = {r.student_id: r.present for r in body.records}
    saved = _upsert_attendance(user, body.date.isoformat(), records)
    logger.info("Teacher %s saved attendance for %d students on %s", user["user_id"], len(records), body.date)
    return success_response(
        data={"count": len(saved)},
        message=f"Attendance saved for {len(records)} students",
    )


@router.post("/attendance/upload")
async def upload_attendance(
    file: UploadFile = File(...),
    day: date = Form(...),
    save: bool = Form(False),
    user: dict = Depends(teacher_only),
):
    """
    CSV with a header row, then `student_id,status` rows.
    student_id may be the student's login ID or record id.
    """
    try:
        text = decode_upload(await file.read())
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="File must be UTF-8 encoded CSV")

    parsed, errors = parse_attendance_csv(text)

    students = _department_students(user)
    lookup = {s["id"]: s["id"] for s in students}
    lookup.update({s["login_id"]: s["id"] for s in students if s.get("login_id")})

    records: dict[str, bool] = {}
    for key, present in parsed.items():
        if key not in lookup:
            errors.append(f"Unknown student '{key}'")
            continue
        records[lookup[key]] = present

    if save and records:
        _upsert_attendance(user, day.isoformat(), records)

    return success_response(
        data={"records": records, "errors": errors, "saved": bool(save and records)},
        message=f"Read {len(records)} attendance rows, {len(errors)} errors",
    )


@router.get("/attendance/export")
async def export_attendance(
    start_date: date,
    end_date: date,
    semester: str | None = None,
    section: str | None = None,
    user: dict = Depends(teacher_only),
):
    if end_date < start_date:
        raise HTTPException(status_code=400, detail="end_date must not be before start_date")

    students = {s["id"]: s for s in _department_students(user, semester, section)}
    db = get_supabase()
    records = []
    if students:
        records = (
            db.table("attendance")
            .select("student_id, date, present")
            .gte("date", start_date.isoformat())
            .lte("date", end_date.isoformat())
            .in_("student_id", list(students))
            .order("date")
            .execute()
        ).data or []
    for r in records:
        r["students"] = students.get(r["student_id"])

    header, rows = attendance_report(records)
    return csv_response(f"attendance_report_{start_date}_to_{end_date}.csv", header, rows)


# ═══════════════════════════════════════════════════════════
# MARKS
# ═══════════════════════════════════════════════════════════

def _marks_config(user: dict, subject_id: str, semester: str, section: str) -> dict:
    result = (
        get_supabase()
        .table("marks_configuration")
        .select("*")
        .eq("teacher_id", user["user_id"])
        .eq("subject_id", subject_id)
        .eq("semester", semester)
        .eq("section", section)
        .limit(1)
        .execute()
    )
    if result.data:
        return result.data[0]
    return {"subject_id": subject_id, "semester": semester, "section": section, **DEFAULT_MARKS_CONFIG}


def _with_total(config: dict) -> dict:
    config["max_total_marks"] = sum(config.get(f"max_{c}") or 0 for c in MARK_COMPONENTS)
    return config


@router.get("/marks/config")
async def get_marks_config(
    subject_id: str,
    semester: str,
    section: str,
    user: dict = Depends(teacher_only),
):
    return success_response(data=_with_total(_marks_config(user, subject_id, semester, section)))


@router.put("/marks/config")
async def save_marks_config(
    body: MarksConfig,
    user: dict = Depends(teacher_only),
):
    get_owned_row("subjects", body.subject_id, "teacher_id", user["user_id"], columns="id", label="Subject")
    data = _with_total({**body.model_dump(), "teacher_id": user["user_id"], "updated_at": _now()})
    result = (
        get_supabase()
        .table("marks_configuration")
        .upsert(data, on_conflict="teacher_id,subject_id,semester,section")
        .execute()
    )
    publish_rows("marks_configuration", "UPSERT", result.data)
    return success_response(data=result.data, message="Marks configuration saved")


@router.get("/marks")
async def get_marks(
    subject_id: str,
    semester: str,
    section: str,
    user: dict = Depends(teacher_only),
):
    db = get_supabase()
    marks = (
        db.table("student_marks")
        .select("*")
        .eq("teacher_id", user["user_id"])
        .eq("subject_id", subject_id)
        .eq("semester", semester)
        .eq("section", section)
        .execute()
    ).data or []
    return success_response(data={
        "config": _with_total(_marks_config(user, subject_id, semester, section)),
        "marks": marks,
    })


@router.post("/marks")
async def save_marks(
    body: MarksSubmit,
    user: dict = Depends(teacher_only),
):
    """Validate every entry against the configured maxima, then upsert and log changes."""
    get_owned_row("subjects", body.subject_id, "teacher_id", user["user_id"], columns="id", label="Subject")
    config = _marks_config(user, body.subject_id, body.semester, body.section)

    for entry in body.entries:
        for component in MARK_COMPONENTS:
            limit = config.get(f"max_{component}") or 0
            if getattr(entry, component) > limit:
                raise HTTPException(
                    status_code=400,
                    detail=f"{component.replace('_', ' ').title()} for student {entry.student_id} cannot exceed {limit}",
                )

    db = get_supabase()
    existing = (
        db.table("student_marks")
        .select("*")
        .eq("teacher_id", user["user_id"])
        .eq("subject_id", body.subject_id)
        .eq("semester", body.semester)
        .eq("section", body.section)
        .execute()
    ).data or []
    previous = {m["student_id"]: m for m in existing}

    rows = []
    for entry in body.entries:
        values = {c: getattr(entry, c) for c in MARK_COMPONENTS}
        rows.append({
            "student_id": entry.student_id,
            "teacher_id": user["user_id"],
            "subject_id": body.subject_id,
            "semester": body.semester,
            "section": body.section,
            **values,
            "total_marks": sum(values.values()),
            "updated_at": _now(),
        })

    result = (
        db.table("student_marks")
        .upsert(rows, on_conflict="student_id,teacher_id,subject_id,semester,section")
        .execute()
    )
    saved = {m["student_id"]: m for m in result.data or []}

    history = []
    for row in rows:
        old = previous.get(row["student_id"])
        if not old or all(float(old.get(c) or 0) == float(row[c]) for c in MARK_COMPONENTS):
            continue
        history.append({
            "student_marks_id": saved.get(row["student_id"], old)["id"],
            "previous_internal_marks": old.get("internal_marks"),
            "previous_practical_marks": old.get("practical_marks"),
            "previous_assignment_marks": old.get("assignment_marks"),
            "new_internal_marks": row["internal_marks"],
            "new_practical_marks": row["practical_marks"],
            "new_assignment_marks": row["assignment_marks"],
            "changed_by": user["user_id"],
            "changed_at": _now(),
            "reason": body.reason,
        })
    if history:
        db.table("marks_history").insert(history).execute()

    publish_rows("student_marks", "UPSERT", result.data)
    logger.info(
        "Teacher %s saved marks for %d students (%d changed)",
        user["user_id"], len(rows), len(history),
    )
    return success_response(
        data={"saved": len(rows), "changed": len(history)},
        message=f"Marks saved for {len(rows)} students",
    )


@router.get("/marks/history")
async def get_marks_history(
    subject_id: str,
    semester: str,
    section: str,
    user: dict = Depends(teacher_only),
):
    db = get_supabase()
    marks = (
        db.table("student_marks")
        .select("id, student_id")
        .eq("teacher_id", user["user_id"])
        .eq("subject_id", subject_id)
        .eq("semester", semester)
        .eq("section", section)
        .execute()
    ).data or []
    if not marks:
        return success_response(data=[])

    owner = {m["id"]: m["student_id"] for m in marks}
    history = (
        db.table("marks_history")
        .select("*")
        .in_("student_marks_id", list(owner))
        .order("changed_at", desc=True)
        .limit(50)
        .execute()
    ).data or []

    names = {
        s["id"]: s["name"]
        for s in db.table("students").select("id, name").in_("id", list(set(owner.values()))).execute().data or []
    }
    for h in history:
        h["student_name"] = names.get(owner.get(h["student_marks_id"]), "Unknown")
    return success_response(data=history)


@router.get("/marks/export")
async def export_marks(
    subject_id: str,
    semester: str,
    section: str,
    user: dict = Depends(teacher_only),
):
    subject = get_owned_row("subjects", subject_id, "teacher_id", user["user_id"], label="Subject")
    config = _with_total(_marks_config(user, subject_id, semester, section))
    db = get_supabase()
    marks = {
        m["student_id"]: m
        for m in (
            db.table("student_marks")
            .select("*")
            .eq("teacher_id", user["user_id"])
            .eq("subject_id", subject_id)
            .eq("semester", semester)
            .eq("section", section)
            .execute()
        ).data or []
    }

    header = [
        "Student ID", "Student Name",
        f"Internal ({config['max_internal_marks']})",
        f"Practical ({config['max_practical_marks']})",
        f"Assignment ({config['max_assignment_marks']})",
        f"Total ({config['max_total_marks']})", "Percentage",
    ]
    rows = []
    for s in _department_students(user, semester, section):
        m = marks.get(s["id"]) or {}
        total = float(m.get("total_marks") or 0)
        pct = f"{total / config['max_total_marks'] * 100:.2f}%" if config["max_total_marks"] else "0%"
        rows.append([
            s.get("login_id"), s.get("name"),
            m.get("internal_marks", 0), m.get("practical_marks", 0), m.get("assignment_marks", 0),
            m.get("total_marks", 0), pct,
        ])
    return csv_response(f"{subject.get('code') or 'marks'}_{semester}_{section}_marks.csv", header, rows)


# ═══════════════════════════════════════════════════════════
# STUDENT
# ═══════════════════════════════════════════════════════════

@router.get("/student/attendance")
async def get_my_attendance(user: dict = Depends(student_only)):
    db = get_supabase()
    records = (
        db.table("attendance")
        .select("date, present")
        .eq("student_id", user["user_id"])
        .order("date", desc=True)
        .execute()
    ).data or []
    total = len(records)
    present = sum(1 for r in records if r.get("present"))
    percentage = round(present / total * 100, 2) if total else 0
    return success_response(data={
        "records": records,
        "total_days": total,
        "present_days": present,
        "absent_days": total - present,
        "percentage": percentage,
        "below_threshold": bool(total) and percentage < settings.ATTENDANCE_THRESHOLD,
    })


@router.get("/student/marks")
async def get_my_marks(user: dict = Depends(student_only)):
    db = get_supabase()
    marks = (
        db.table("student_marks")
        .select("*, subjects(name, code)")
        .eq("student_id", user["user_id"])
        .execute()
    ).data or []

    result = []
    for m in marks:
        config = _with_total(_marks_config(
            {"user_id": m["teacher_id"]}, m["subject_id"], m["semester"], m["section"]
        ))
        total = float(m.get("total_marks") or 0)
        result.append({
            **m,
            "subject_name": (m.get("subjects") or {}).get("name"),
            "subject_code": (m.get("subjects") or {}).get("code"),
            "max_total_marks": config["max_total_marks"],
            "percentage": round(total / config["max_total_marks"] * 100, 2) if config["max_total_marks"] else 0,
        })

    overall = sum(float(r.get("total_marks") or 0) for r in result)
    overall_max = sum(r["max_total_marks"] for r in result)
    return success_response(data={
        "subjects": result,
        "total": overall,
        "max_total": overall_max,
        "percentage": round(overall / overall_max * 100, 2) if overall_max else 0,
    })
