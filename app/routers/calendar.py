"""
Calendar router — Teacher events and student tasks.
The student feed also shows assignment deadlines and matching live classes.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException

from app.core.database import get_supabase
from app.core.grading import parse_timestamp
from app.core.middleware import get_owned_row
from app.core.realtime import publish_rows
from app.core.security import require_role
from app.schemas.schedule import EventCreate, EventStatusUpdate, EventUpdate
from app.utils.matching import matches_class
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/calendar", tags=["Calendar"])

# role → (events table, owner column)
EVENT_TABLES = {
    "teacher": ("calendar_events", "teacher_id"),
    "student": ("student_calendar_events", "student_id"),
}

teacher_or_student = require_role(["teacher", "student"])


def _check_range(start, end):
    try:
        start_dt, end_dt = parse_timestamp(start), parse_timestamp(end)
    except (ValueError, OverflowError):
        raise HTTPException(status_code=400, detail="Dates must be ISO 8601")
    if start_dt and end_dt and end_dt < start_dt:
        raise HTTPException(status_code=400, detail="End date must be after start date")


def _list_events(user: dict, start: str | None, end: str | None, status: str | None) -> list[dict]:
    table, owner = EVENT_TABLES[user["role"]]
    query = get_supabase().table(table).select("*").eq(owner, user["user_id"])
    if start:
        query = query.gte("start_date", start)
    if end:
        query = query.lte("start_date", end)
    if status:
        query = query.eq("status", status)
    return query.order("start_date").execute().data or []


@router.get("/events")
async def list_events(
    start: str | None = None,
    end: str | None = None,
    status: str | None = None,
    user: dict = Depends(teacher_or_student),
):
    return success_response(data=_list_events(user, start, end, status))


@router.post("/events")
async def create_event(
    body: EventCreate,
    user: dict = Depends(teacher_or_student),
):
    _check_range(body.start_date, body.end_date)
    table, owner = EVENT_TABLES[user["role"]]
    data = {**body.model_dump(), owner: user["user_id"]}
    if user["role"] == "student":
        # Students keep personal tasks only
        data.pop("attendees", None)
        data.pop("subject_id", None)

    result = get_supabase().table(table).insert(data).execute()
    publish_rows(table, "INSERT", result.data)
    return success_response(data=result.data, message="Event created")


@router.patch("/events/{event_id}")
async def update_event(
    event_id: str,
    body: EventUpdate,
    user: dict = Depends(teacher_or_student),
):
    table, owner = EVENT_TABLES[user["role"]]
    event = get_owned_row(table, event_id, owner, user["user_id"], label="Event")
    update_data = {k: v for k, v in body.model_dump().items() if v is not None}
    if not update_data:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    merged = {**event, **update_data}
    _check_range(merged.get("start_date"), merged.get("end_date"))

    update_data["updated_at"] = datetime.now(timezone.utc).isoformat()
    result = get_supabase().table(table).update(update_data).eq("id", event_id).execute()
    publish_rows(table, "UPDATE", result.data)
    return success_response(data=result.data, message="Event updated")


@router.patch("/events/{event_id}/status")
async def change_event_status(
    event_id: str,
    body: EventStatusUpdate,
    user: dict = Depends(teacher_or_student),
):
    table, owner = EVENT_TABLES[user["role"]]
    get_owned_row(table, event_id, owner, user["user_id"], columns="id", label="Event")
    result = get_supabase().table(table).update({
        "status": body.status,
        "updated_at": datetime.now(timezone.utc).isoformat(),
    }).eq("id", event_id).execute()
    publish_rows(table, "UPDATE", result.data)
    return success_response(data=result.data, message=f"Event marked {body.status.replace('_', ' ')}")


@router.delete("/events/{event_id}")
async def delete_event(
    event_id: str,
    user: dict = Depends(teacher_or_student),
):
    table, owner = EVENT_TABLES[user["role"]]
    get_owned_row(table, event_id, owner, user["user_id"], columns="id", label="Event")
    get_supabase().table(table).delete().eq("id", event_id).execute()
    publish_rows(table, "DELETE", [{"id": event_id}])
    return success_response(message="Event deleted")


@router.get("/student/feed")
async def student_feed(
    start: str | None = None,
    end: str | None = None,
    user: dict = Depends(require_role(["student"])),
):
    """Own tasks, published assignment deadlines and matching live classes, by date."""
    db = get_supabase()
    items = [
        {
            "id": e["id"],
            "source": "task",
            "title": e["title"],
            "event_type": e.get("event_type"),
            "start": e["start_date"],
            "end": e.get("end_date"),
            "status": e.get("status"),
            "priority": e.get("priority"),
        }
        for e in _list_events(user, start, end, None)
    ]

    assignments = (
        db.table("assignments")
        .select("id, title, deadline, semester, section, assignment_type")
        .eq("status", "published")
        .execute()
    ).data or []
    for a in assignments:
        if not matches_class(user, a.get("semester"), a.get("section")):
            continue
        items.append({
            "id": a["id"],
            "source": "assignment",
            "title": f"Due: {a['title']}",
            "event_type": "assignment",
            "start": a["deadline"],
            "end": None,
            "status": None,
            "priority": "high",
        })

    classes = (
        db.table("live_classes")
        .select("id, title, class_date, start_time, end_time, semester, section, status")
        .neq("status", "cancelled")
        .execute()
    ).data or []
    for c in classes:
        if not matches_class(user, c.get("semester"), c.get("section")):
            continue
        items.append({
            "id": c["id"],
            "source": "live_class",
            "title": c["title"],
            "event_type": "live_class",
            "start": f"{c['class_date']}T{c['start_time']}",
            "end": f"{c['class_date']}T{c['end_time']}",
            "status": c.get("status"),
            "priority": "medium",
        })

    start_dt = parse_timestamp(start)
    end_dt = parse_timestamp(end)
    feed = []
    for item in items:
        at = parse_timestamp(item["start"])
        if start_dt and at and at < start_dt:
            continue
        if end_dt and at and at > end_dt:
            continue
        feed.append(item)

    feed.sort(key=lambda i: parse_timestamp(i["start"]) or datetime.min.replace(tzinfo=timezone.utc))
    return success_response(data=feed)
