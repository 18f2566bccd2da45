"""
Messages router — Direct messages and class broadcasts.

Direct messages carry recipient_id/recipient_type on the message row and are
read-tracked there. Group messages (class/semester/section) are fanned out to
one message_recipients row per matching student, which tracks read state.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from app.core.config import settings
from app.core.database import get_supabase
from app.core.realtime import publish_rows
from app.core.security import ROLE_TABLES, require_role
from app.core.storage import build_object_path, file_extension, upload_file
from app.schemas.messages import GROUP_RECIPIENTS, MessageCreate
from app.utils.matching import normalize_section, normalize_semester
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/messages", tags=["Messages"])

participants = require_role(["teacher", "student", "admin"])

FILTERS = ("all", "unread", "starred", "important", "sent")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _group_students(user: dict, body: MessageCreate) -> list[dict]:
    """Students a group message reaches, limited to the sender's department."""
    query = get_supabase().table("students").select("id, semester, section")
    if user.get("department_id"):
        query = query.eq("department_id", user["department_id"])
    students = query.execute().data or []

    filters = body.recipient_filters
    semester = normalize_semester(filters.semester) if filters and filters.semester else None
    section = normalize_section(filters.section) if filters and filters.section else None
    if body.recipient_type == "semester" and not semester:
        raise HTTPException(status_code=400, detail="A semester is required for semester messages")
    if body.recipient_type == "section" and not section:
        raise HTTPException(status_code=400, detail="A section is required for section messages")

    return [
        s for s in students
        if (not semester or normalize_semester(s.get("semester")) == semester)
        and (not section or normalize_section(s.get("section")) == section)
    ]


def _names(keys: set[tuple[str, str]]) -> dict[tuple[str, str], str]:
    """(type, id) pairs → display names."""
    db = get_supabase()
    by_type: dict[str, list[str]] = {}
    for kind, person_id in keys:
        if kind in ROLE_TABLES and person_id:
            by_type.setdefault(kind, []).append(person_id)

    names = {}
    for kind, ids in by_type.items():
        rows = db.table(ROLE_TABLES[kind]).select("id, name").in_("id", ids).execute().data or []
        for r in rows:
            names[(kind, r["id"])] = r.get("name") or ""
    return names


def _visible_message(message_id: str, user: dict) -> tuple[dict, dict | None]:
    """The message plus the caller's recipient row for group messages."""
    db = get_supabase()
    result = db.table("messages").select("*").eq("id", message_id).limit(1).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Message not found")
    message = result.data[0]

    if message["sender_id"] == user["user_id"]:
        return message, None
    if message.get("recipient_id") == user["user_id"] and message.get("recipient_type") == user["role"]:
        return message, None

    recipient = (
        db.table("message_recipients")
        .select("*")
        .eq("message_id", message_id)
        .eq("recipient_id", user["user_id"])
        .limit(1)
        .execute()
    )
    if not recipient.data:
        raise HTTPException(status_code=404, detail="Message not found")
    return message, recipient.data[0]


@router.get("")
async def list_messages(
    filter: str = "all",
    user: dict = Depends(participants),
):
    if filter not in FILTERS:
        raise HTTPException(status_code=400, detail=f"filter must be one of {', '.join(FILTERS)}")
    db = get_supabase()

    if filter == "sent":
        messages = (
            db.table("messages")
            .select("*")
            .eq("sender_id", user["user_id"])
            .order("created_at", desc=True)
            .execute()
        ).data or []
        for m in messages:
            m["folder"] = "sent"
    else:
        direct = (
            db.table("messages")
            .select("*")
            .eq("recipient_id", user["user_id"])
            .eq("recipient_type", user["role"])
            .execute()
        ).data or []
        for m in direct:
            m["folder"] = "inbox"

        receipts = (
            db.table("message_recipients")
            .select("message_id, is_read, read_at")
            .eq("recipient_id", user["user_id"])
            .execute()
        ).data or []
        group = []
        if receipts:
            read_state = {r["message_id"]: r for r in receipts}
            group = (
                db.table("messages")
                .select("*")
                .in_("id", list(read_state))
                .execute()
            ).data or []
            for m in group:
                m["is_read"] = bool(read_state[m["id"]].get("is_read"))
                m["read_at"] = read_state[m["id"]].get("read_at")
                m["folder"] = "inbox"

        messages = sorted(direct + group, key=lambda m: m.get("created_at") or "", reverse=True)
        if filter == "unread":
            messages = [m for m in messages if not m.get("is_read")]
        elif filter == "starred":
            messages = [m for m in messages if m.get("is_starred")]
        elif filter == "important":
            messages = [m for m in messages if m.get("is_important")]

    keys = {(m.get("sender_type"), m.get("sender_id")) for m in messages}
    keys |= {(m.get("recipient_type"), m.get("recipient_id")) for m in messages}
    names = _names(keys)
    for m in messages:
        m["sender_name"] = names.get((m.get("sender_type"), m.get("sender_id")), "Unknown")
        if m.get("recipient_type") in GROUP_RECIPIENTS:
            filters = m.get("recipient_filters") or {}
            label = " ".join(v for v in (filters.get("semester"), filters.get("section")) if v)
            m["recipient_name"] = f"{m['recipient_type'].title()} {label}".strip()
        else:
            m["recipient_name"] = names.get((m.get("recipient_type"), m.get("recipient_id")), "Unknown")

    return success_response(data=messages)


@router.get("/unread-count")
async def unread_count(user: dict = Depends(participants)):
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
    total = sum(r.count if r.count is not None else len(r.data or []) for r in (direct, group))
    return success_response(data={"unread": total})


@router.post("")
async def send_message(
    body: MessageCreate,
    user: dict = Depends(participants),
):
    db = get_supabase()
    if user["role"] == "student" and body.recipient_type != "teacher":
        raise HTTPException(status_code=403, detail="Students can only message teachers")

    students = []
    if body.recipient_type in GROUP_RECIPIENTS:
        students = _group_students(user, body)
        if not students:
            raise HTTPException(status_code=400, detail="No students match these recipients")
    else:
        recipient = (
            db.table(ROLE_TABLES[body.recipient_type])
            .select("id")
            .eq("id", body.recipient_id)
            .limit(1)
            .execute()
        )
        if not recipient.data:
            raise HTTPException(status_code=404, detail="Recipient not found")

    data = {
        **body.model_dump(exclude={"recipient_filters"}),
        "recipient_filters": body.recipient_filters.model_dump() if body.recipient_filters else None,
        "sender_id": user["user_id"],
        "sender_type": user["role"],
        "is_read": False,
        "is_starred": False,
    }
    result = db.table("messages").insert(data).execute()
    message = result.data[0]

    if students:
        db.table("message_recipients").insert([
            {
                "message_id": message["id"],
                "recipient_id": s["id"],
                "recipient_type": "student",
                "is_read": False,
            }
            for s in students
        ]).execute()
        publish_rows("message_recipients", "INSERT", None)

    publish_rows("messages", "INSERT", result.data)
    logger.info(
        "%s %s sent a %s message %s (%d group recipients)",
        user["role"], user["user_id"], body.recipient_type, message["id"], len(students),
    )
    return success_response(
        data={**message, "recipient_count": len(students) or 1},
        message="Message sent",
    )


@router.post("/{message_id}/read")
async def mark_read(
    message_id: str,
    user: dict = Depends(participants),
):
    message, receipt = _visible_message(message_id, user)
    db = get_supabase()
    if receipt:
        db.table("message_recipients").update({"is_read": True, "read_at": _now()}).eq("id", receipt["id"]).execute()
        publish_rows("message_recipients", "UPDATE", [receipt])
    elif message.get("recipient_id") == user["user_id"]:
        db.table("messages").update({"is_read": True}).eq("id", message_id).execute()
        publish_rows("messages", "UPDATE", [message])
    return success_response(message="Marked as read")


@router.post("/{message_id}/star")
async def toggle_star(
    message_id: str,
    user: dict = Depends(participants),
):
    message, receipt = _visible_message(message_id, user)
    if receipt:
        raise HTTPException(status_code=400, detail="Class messages cannot be starred")
    if message.get("recipient_id") != user["user_id"]:
        raise HTTPException(status_code=403, detail="Only the recipient can star a message")
    starred = not message.get("is_starred")
    result = get_supabase().table("messages").update({"is_starred": starred}).eq("id", message_id).execute()
    publish_rows("messages", "UPDATE", result.data)
    return success_response(data={"is_starred": starred}, message="Starred" if starred else "Unstarred")


@router.delete("/{message_id}")
async def delete_message(
    message_id: str,
    user: dict = Depends(participants),
):
    message, _ = _visible_message(message_id, user)
    if message["sender_id"] != user["user_id"]:
        raise HTTPException(status_code=403, detail="Only the sender can delete a message")
    get_supabase().table("messages").delete().eq("id", message_id).execute()
    publish_rows("messages", "DELETE", [message])
    return success_response(message="Message deleted")


@router.post("/{message_id}/attachments")
async def upload_attachment(
    message_id: str,
    file: UploadFile = File(...),
    user: dict = Depends(participants),
):
    message, _ = _visible_message(message_id, user)
    if message["sender_id"] != user["user_id"]:
        raise HTTPException(status_code=403, detail="Only the sender can attach files")

    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    filename = file.filename or "attachment"
    path = build_object_path(f"messages/{message_id}", filename)
    file_url = upload_file(settings.MESSAGE_FILES_BUCKET, path, content, file.content_type)

    result = get_supabase().table("message_attachments").insert({
        "message_id": message_id,
        "file_name": filename,
        "file_url": file_url,
        "file_type": file.content_type or file_extension(filename) or "file",
        "file_size": len(content),
    }).execute()
    publish_rows("message_attachments", "INSERT", result.data)
    return success_response(data=result.data, message="Attachment uploaded")


@router.get("/{message_id}/attachments")
async def list_attachments(
    message_id: str,
    user: dict = Depends(participants),
):
    _visible_message(message_id, user)
    result = get_supabase().table("message_attachments").select("*").eq("message_id", message_id).execute()
    return success_response(data=result.data)


@router.get("/contacts/list")
async def list_contacts(user: dict = Depends(participants)):
    """Teachers for students; students of the department for teachers; everyone for admins."""
    db = get_supabase()
    contacts = []
    if user["role"] in ("student", "admin"):
        teachers = db.table("teachers").select("id, name, email, employee_id").order("name").execute().data or []
        contacts += [{**t, "type": "teacher"} for t in teachers]
    if user["role"] in ("teacher", "admin"):
        query = db.table("students").select("id, name, email, login_id, semester, section")
        if user["role"] == "teacher" and user.get("department_id"):
            query = query.eq("department_id", user["department_id"])
        contacts += [{**s, "type": "student"} for s in query.order("name").execute().data or []]
    return success_response(data=contacts)
