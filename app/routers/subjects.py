"""
Subjects router — Teacher-owned subjects with topics, materials and enrollments.
Every subject route checks the subject belongs to the calling teacher.
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from app.core.config import settings
from app.core.database import get_supabase
from app.core.middleware import get_owned_row
from app.core.realtime import publish_rows
from app.core.security import require_role
from app.core.storage import build_object_path, detect_material_type, remove_file, upload_file
from app.schemas.academic import (
    BulkTopics, MaterialLink, SubjectCreate, SubjectEnrollment, SubjectUpdate,
    TopicCreate, TopicUpdate,
)
from app.utils.response import success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subjects", tags=["Subjects"])

teacher_only = require_role(["teacher"])


def _own_subject(subject_id: str, user: dict) -> dict:
    return get_owned_row("subjects", subject_id, "teacher_id", user["user_id"], label="Subject")


# ═══════════════════════════════════════════════════════════
# SUBJECTS
# ═══════════════════════════════════════════════════════════

@router.get("")
async def list_subjects(user: dict = Depends(teacher_only)):
    """Own subjects with material/topic/enrollment counts."""
    db = get_supabase()
    subjects = (
        db.table("subjects")
        .select("*")
        .eq("teacher_id", user["user_id"])
        .order("created_at", desc=True)
        .execute()
    ).data or []

    for subject in subjects:
        topics = db.table("subject_topics").select("status").eq("subject_id", subject["id"]).execute().data or []
        materials = db.table("subject_materials").select("id", count="exact").eq("subject_id", subject["id"]).execute()
        enrollments = (
            db.table("subject_enrollments")
            .select("id", count="exact")
            .eq("subject_id", subject["id"])
            .eq("status", "active")
            .execute()
        )
        subject["materials_count"] = materials.count if materials.count is not None else len(materials.data or [])
        subject["topics_count"] = len(topics)
        subject["in_progress_topics"] = sum(1 for t in topics if t.get("status") == "in_progress")
        subject["completed_topics"] = sum(1 for t in topics if t.get("status") == "completed")
        subject["enrolled_students"] = enrollments.count if enrollments.count is not None else len(enrollments.data or [])

    return success_response(data=subjects)


@router.post("")
async def create_subject(
    body: SubjectCreate,
    user: dict = Depends(teacher_only),
):
    db = get_supabase()
    existing = (
        db.table("subjects")
        .select("id")
        .eq("teacher_id", user["user_id"])
        .eq("code", body.code)
        .execute()
    )
    if existing.data:
        raise HTTPException(status_code=400, detail=f"You already have a subject with code '{body.code}'")

    data = {**body.model_dump(), "teacher_id": user["user_id"]}
    result = db.table("subjects").insert(data).execute()
    publish_rows("subjects", "INSERT", result.data)
    return success_response(data=result.data, message="Subject created")


@router.get("/{subject_id}")
async def get_subject(
    subject_id: str,
    user: dict = Depends(teacher_only),
):
    subject = _own_subject(subject_id, user)
    return success_response(data=subject)


@router.patch("/{subject_id}")
async def update_subject(
    subject_id: str,
    body: SubjectUpdate,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    update_data = {k: v for k, v in body.model_dump().items() if v is not None}
    if not update_data:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    update_data["updated_at"] = datetime.now(timezone.utc).isoformat()

    db = get_supabase()
    result = db.table("subjects").update(update_data).eq("id", subject_id).execute()
    publish_rows("subjects", "UPDATE", result.data)
    return success_response(data=result.data, message="Subject updated")


@router.delete("/{subject_id}")
async def delete_subject(
    subject_id: str,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    db = get_supabase()
    db.table("subjects").delete().eq("id", subject_id).execute()
    publish_rows("subjects", "DELETE", [{"id": subject_id}])
    return success_response(message="Subject deleted")


# ═══════════════════════════════════════════════════════════
# TOPICS
# ═══════════════════════════════════════════════════════════

@router.get("/{subject_id}/topics")
async def list_topics(
    subject_id: str,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    db = get_supabase()
    result = (
        db.table("subject_topics")
        .select("*")
        .eq("subject_id", subject_id)
        .order("week_number")
        .execute()
    )
    return success_response(data=result.data)


@router.post("/{subject_id}/topics")
async def create_topic(
    subject_id: str,
    body: TopicCreate,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    db = get_supabase()
    result = db.table("subject_topics").insert({**body.model_dump(), "subject_id": subject_id}).execute()
    publish_rows("subject_topics", "INSERT", result.data)
    return success_response(data=result.data, message="Topic added")


@router.post("/{subject_id}/topics/bulk")
async def bulk_create_topics(
    subject_id: str,
    body: BulkTopics,
    user: dict = Depends(teacher_only),
):
    """Insert many topics at once; unnamed rows are ignored."""
    _own_subject(subject_id, user)

    topics = [
        {
            "topic_name": t.topic_name.strip(),
            "description": t.description or "",
            "week_number": t.week_number or 1,
            "estimated_hours": t.estimated_hours or 2,
            "status": t.status,
        }
        for t in body.topics
        if t.topic_name.strip()
    ]
    if not topics:
        raise HTTPException(status_code=400, detail="At least one topic with a name is required")

    db = get_supabase()
    result = db.rpc("bulk_insert_topics", {"p_subject_id": subject_id, "p_topics": topics}).execute()
    publish_rows("subject_topics", "INSERT", None)
    logger.info("Bulk inserted %d topics into subject %s", len(topics), subject_id)
    return success_response(data=result.data, message=f"{len(topics)} topics added")


@router.patch("/{subject_id}/topics/{topic_id}")
async def update_topic(
    subject_id: str,
    topic_id: str,
    body: TopicUpdate,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    update_data = {k: v for k, v in body.model_dump().items() if v is not None}
    if not update_data:
        raise HTTPException(status_code=400, detail="No valid fields to update")

    db = get_supabase()
    result = (
        db.table("subject_topics")
        .update(update_data)
        .eq("id", topic_id)
        .eq("subject_id", subject_id)
        .execute()
    )
    if not result.data:
        raise HTTPException(status_code=404, detail="Topic not found")
    publish_rows("subject_topics", "UPDATE", result.data)
    return success_response(data=result.data, message="Topic updated")


@router.delete("/{subject_id}/topics/{topic_id}")
async def delete_topic(
    subject_id: str,
    topic_id: str,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    db = get_supabase()
    db.table("subject_topics").delete().eq("id", topic_id).eq("subject_id", subject_id).execute()
    publish_rows("subject_topics", "DELETE", [{"id": topic_id}])
    return success_response(message="Topic deleted")


# ═══════════════════════════════════════════════════════════
# MATERIALS
# ═══════════════════════════════════════════════════════════

@router.get("/{subject_id}/materials")
async def list_materials(
    subject_id: str,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    db = get_supabase()
    result = (
        db.table("subject_materials")
        .select("*")
        .eq("subject_id", subject_id)
        .order("created_at", desc=True)
        .execute()
    )
    return success_response(data=result.data)


@router.post("/{subject_id}/materials/upload")
async def upload_material(
    subject_id: str,
    file: UploadFile = File(...),
    title: str = Form(""),
    description: str = Form(""),
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    content = await file.read()
    if not content:
        raise HTTPException(status_code=400, detail="Uploaded file is empty")

    filename = file.filename or "upload"
    path = build_object_path(f"subject-materials/{subject_id}", filename)
    file_url = upload_file(settings.SUBJECT_FILES_BUCKET, path, content, file.content_type)

    db = get_supabase()
    result = db.table("subject_materials").insert({
        "subject_id": subject_id,
        "title": title.strip() or filename,
        "description": description,
        "file_url": file_url,
        "file_type": detect_material_type(filename),
        "file_size": len(content),
    }).execute()
    publish_rows("subject_materials", "INSERT", result.data)
    return success_response(data=result.data, message="Material uploaded")


@router.post("/{subject_id}/materials/link")
async def add_material_link(
    subject_id: str,
    body: MaterialLink,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    db = get_supabase()
    result = db.table("subject_materials").insert({
        **body.model_dump(),
        "subject_id": subject_id,
        "file_type": "url",
        "file_size": 0,
    }).execute()
    publish_rows("subject_materials", "INSERT", result.data)
    return success_response(data=result.data, message="Link added")


@router.delete("/{subject_id}/materials/{material_id}")
async def delete_material(
    subject_id: str,
    material_id: str,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    db = get_supabase()
    material = (
        db.table("subject_materials")
        .select("*")
        .eq("id", material_id)
        .eq("subject_id", subject_id)
        .limit(1)
        .execute()
    )
    if not material.data:
        raise HTTPException(status_code=404, detail="Material not found")

    row = material.data[0]
    if row.get("file_type") != "url" and row.get("file_url"):
        remove_file(settings.SUBJECT_FILES_BUCKET, row["file_url"])

    db.table("subject_materials").delete().eq("id", material_id).execute()
    publish_rows("subject_materials", "DELETE", [{"id": material_id}])
    return success_response(message="Material deleted")


# ═══════════════════════════════════════════════════════════
# ENROLLMENTS
# ═══════════════════════════════════════════════════════════

@router.get("/{subject_id}/enrollments")
async def list_enrollments(
    subject_id: str,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    db = get_supabase()
    enrollments = (
        db.table("subject_enrollments")
        .select("*")
        .eq("subject_id", subject_id)
        .eq("status", "active")
        .execute()
    ).data or []

    student_ids = [e["student_id"] for e in enrollments]
    students = {}
    if student_ids:
        rows = (
            db.table("students")
            .select("id, name, email, login_id, semester, section")
            .in_("id", student_ids)
            .execute()
        ).data or []
        students = {s["id"]: s for s in rows}

    for e in enrollments:
        e["student"] = students.get(e["student_id"])
    return success_response(data=enrollments)


@router.post("/{subject_id}/enrollments")
async def enroll_students(
    subject_id: str,
    body: SubjectEnrollment,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    db = get_supabase()
    existing = db.table("subject_enrollments").select("student_id").eq("subject_id", subject_id).execute()
    already = {e["student_id"] for e in existing.data or []}

    new_ids = [sid for sid in dict.fromkeys(body.student_ids) if sid not in already]
    if not new_ids:
        return success_response(data=[], message="All students are already enrolled")

    records = [{"subject_id": subject_id, "student_id": sid, "status": "active"} for sid in new_ids]
    result = db.table("subject_enrollments").insert(records).execute()
    publish_rows("subject_enrollments", "INSERT", result.data)
    return success_response(
        data=result.data,
        message=f"Enrolled {len(new_ids)} students ({len(body.student_ids) - len(new_ids)} already enrolled)",
    )


@router.delete("/{subject_id}/enrollments/{student_id}")
async def remove_enrollment(
    subject_id: str,
    student_id: str,
    user: dict = Depends(teacher_only),
):
    _own_subject(subject_id, user)
    db = get_supabase()
    db.table("subject_enrollments").delete().eq("subject_id", subject_id).eq("student_id", student_id).execute()
    publish_rows("subject_enrollments", "DELETE", None)
    return success_response(message="Student removed from subject")


# ═══════════════════════════════════════════════════════════
# STUDENT VIEW
# ═══════════════════════════════════════════════════════════

@router.get("/student/enrolled")
async def student_subjects(user: dict = Depends(require_role(["student"]))):
    """Subjects the student is actively enrolled in, with topics and materials."""
    db = get_supabase()
    enrollments = (
        db.table("subject_enrollments")
        .select("subject_id, enrolled_at")
        .eq("student_id", user["user_id"])
        .eq("status", "active")
        .execute()
    ).data or []

    subjects = []
    for e in enrollments:
        subject = db.table("subjects").select("*").eq("id", e["subject_id"]).limit(1).execute().data
        if not subject:
            continue
        subject = subject[0]
        subject["enrolled_at"] = e.get("enrolled_at")
        subject["topics"] = (
            db.table("subject_topics").select("*").eq("subject_id", subject["id"]).order("week_number").execute()
        ).data or []
        subject["materials"] = (
            db.table("subject_materials")
            .select("*")
            .eq("subject_id", subject["id"])
            .order("created_at", desc=True)
            .execute()
        ).data or []
        subjects.append(subject)

    return success_response(data=subjects)
