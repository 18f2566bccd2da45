"""
Admin router — Academic directory management.

Admin can:
- Manage departments and courses
- Create teachers and students (IDs generated by the database)
- Assign teachers to courses and subjects to course sections
- Bulk-upload teachers and students from CSV
- Generate reports, manage email settings
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, BackgroundTasks, Depends, File, HTTPException, UploadFile

from app.core.database import count_rows, get_supabase
from app.core.email import send_welcome_email
from app.core.realtime import publish_rows
from app.core.security import generate_password, get_password_hash, require_role
from app.schemas.academic import (
    CourseCreate, CourseUpdate, DepartmentCreate, DepartmentUpdate,
    SubjectCourseAssign, TeacherCourseAssign,
)
from app.schemas.people import (
    EmailSettingsUpdate, StudentCreate, StudentUpdate, TeacherCreate, TeacherUpdate,
)
from app.utils.csv_tools import (
    STUDENT_COLUMNS, TEACHER_COLUMNS, decode_upload, parse_directory_csv,
)
from app.utils.response import csv_response, success_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])

admin_only = require_role(["admin"])

SECRET_SETTINGS = ("smtp_password", "resend_api_key")


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _changes(body) -> dict:
    update_data = {k: v for k, v in body.model_dump().items() if v is not None}
    if not update_data:
        raise HTTPException(status_code=400, detail="No valid fields to update")
    return update_data


def _ensure_email_free(table: str, email: str, exclude_id: str | None = None):
    db = get_supabase()
    existing = db.table(table).select("id").eq("email", email).execute()
    if any(row["id"] != exclude_id for row in existing.data or []):
        raise HTTPException(status_code=400, detail=f"An account with email '{email}' already exists")


# ═══════════════════════════════════════════════════════════
# DEPARTMENTS
# ═══════════════════════════════════════════════════════════

@router.post("/departments")
async def create_department(
    body: DepartmentCreate,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    result = db.table("departments").insert(body.model_dump()).execute()
    publish_rows("departments", "INSERT", result.data)
    return success_response(data=result.data, message="Department created")


@router.get("/departments")
async def list_departments(user: dict = Depends(require_role(["admin", "teacher"]))):
    db = get_supabase()
    departments = db.table("departments").select("*").order("name").execute().data or []
    for dept in departments:
        dept["teacher_count"] = count_rows("teachers", department_id=dept["id"])
        dept["student_count"] = count_rows("students", department_id=dept["id"])
    return success_response(data=departments)


@router.patch("/departments/{dept_id}")
async def update_department(
    dept_id: str,
    body: DepartmentUpdate,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    update_data = {**_changes(body), "updated_at": _now()}
    result = db.table("departments").update(update_data).eq("id", dept_id).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Department not found")
    publish_rows("departments", "UPDATE", result.data)
    return success_response(data=result.data, message="Department updated")


@router.delete("/departments/{dept_id}")
async def delete_department(
    dept_id: str,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    in_use = count_rows("teachers", department_id=dept_id) + count_rows("students", department_id=dept_id)
    if in_use:
        raise HTTPException(
            status_code=409,
            detail=f"Department still has {in_use} teachers/students assigned",
        )
    db.table("departments").delete().eq("id", dept_id).execute()
    publish_rows("departments", "DELETE", [{"id": dept_id}])
    return success_response(message="Department deleted")


# ═══════════════════════════════════════════════════════════
# COURSES
# ═══════════════════════════════════════════════════════════

@router.post("/courses")
async def create_course(
    body: CourseCreate,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    existing = db.table("courses").select("id").eq("code", body.code).execute()
    if existing.data:
        raise HTTPException(status_code=400, detail=f"Course code '{body.code}' already exists")
    result = db.table("courses").insert(body.model_dump()).execute()
    publish_rows("courses", "INSERT", result.data)
    return success_response(data=result.data, message="Course created")


@router.get("/courses")
async def list_courses(user: dict = Depends(require_role(["admin", "teacher"]))):
    db = get_supabase()
    result = (
        db.table("courses")
        .select("*, departments(name)")
        .order("code")
        .execute()
    )
    return success_response(data=result.data)


@router.patch("/courses/{course_id}")
async def update_course(
    course_id: str,
    body: CourseUpdate,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    update_data = {**_changes(body), "updated_at": _now()}
    result = db.table("courses").update(update_data).eq("id", course_id).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Course not found")
    publish_rows("courses", "UPDATE", result.data)
    return success_response(data=result.data, message="Course updated")


@router.delete("/courses/{course_id}")
async def delete_course(
    course_id: str,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    db.table("courses").delete().eq("id", course_id).execute()
    publish_rows("courses", "DELETE", [{"id": course_id}])
    return success_response(message="Course deleted")


@router.post("/teacher-courses")
async def assign_teacher_course(
    body: TeacherCourseAssign,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    existing = (
        db.table("teacher_courses")
        .select("id")
        .eq("teacher_id", body.teacher_id)
        .eq("course_id", body.course_id)
        .execute()
    )
    if existing.data:
        raise HTTPException(status_code=400, detail="Teacher already assigned to this course")
    result = db.table("teacher_courses").insert(body.model_dump()).execute()
    publish_rows("teacher_courses", "INSERT", result.data)
    return success_response(data=result.data, message="Teacher assigned to course")


@router.get("/teacher-courses")
async def list_teacher_courses(user: dict = Depends(admin_only)):
    db = get_supabase()
    result = (
        db.table("teacher_courses")
        .select("*, teachers(name, employee_id), courses(name, code)")
        .order("assigned_at", desc=True)
        .execute()
    )
    return success_response(data=result.data)


@router.delete("/teacher-courses/{assignment_id}")
async def unassign_teacher_course(
    assignment_id: str,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    db.table("teacher_courses").delete().eq("id", assignment_id).execute()
    publish_rows("teacher_courses", "DELETE", [{"id": assignment_id}])
    return success_response(message="Teacher removed from course")


@router.post("/subject-assignments")
async def assign_subject_to_course(
    body: SubjectCourseAssign,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    result = db.table("subject_assignments").insert(body.model_dump()).execute()
    publish_rows("subject_assignments", "INSERT", result.data)
    return success_response(data=result.data, message="Subject mapped to course section")


@router.get("/subject-assignments")
async def list_subject_assignments(
    course_id: str | None = None,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    query = db.table("subject_assignments").select("*, subjects(name, code), courses(name, code)")
    if course_id:
        query = query.eq("course_id", course_id)
    result = query.order("semester").execute()
    return success_response(data=result.data)


# ═══════════════════════════════════════════════════════════
# TEACHERS
# ═══════════════════════════════════════════════════════════

def _create_teacher(body: TeacherCreate, background_tasks: BackgroundTasks) -> dict:
    db = get_supabase()
    email = body.email.strip().lower()
    _ensure_email_free("teachers", email)

    employee_id = db.rpc("generate_teacher_employee_id", {}).execute().data
    password = body.password or generate_password()

    data = {
        **body.model_dump(exclude={"password"}),
        "email": email,
        "employee_id": employee_id,
        "password_hash": get_password_hash(password),
    }
    result = db.table("teachers").insert(data).execute()
    teacher = result.data[0]
    publish_rows("teachers", "INSERT", result.data)

    background_tasks.add_task(send_welcome_email, email, body.name, employee_id, password, "teacher")
    logger.info("Teacher %s created as %s", teacher["id"], employee_id)
    return {"teacher": teacher, "employee_id": employee_id, "temp_password": password}


@router.post("/teachers")
async def create_teacher(
    body: TeacherCreate,
    background_tasks: BackgroundTasks,
    user: dict = Depends(admin_only),
):
    created = _create_teacher(body, background_tasks)
    created["teacher"].pop("password_hash", None)
    return success_response(data=created, message=f"Teacher '{body.name}' created with ID {created['employee_id']}")


@router.get("/teachers")
async def list_teachers(
    search: str | None = None,
    department_id: str | None = None,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    query = db.table("teachers").select(
        "id, name, email, mobile, employee_id, department_id, qualification, experience, subjects, created_at, departments(name)"
    )
    if department_id:
        query = query.eq("department_id", department_id)
    rows = query.order("name").execute().data or []

    if search:
        needle = search.lower()
        rows = [
            t for t in rows
            if needle in (t.get("name") or "").lower()
            or needle in (t.get("email") or "").lower()
            or needle in (t.get("employee_id") or "").lower()
        ]
    return success_response(data=rows)


@router.patch("/teachers/{teacher_id}")
async def update_teacher(
    teacher_id: str,
    body: TeacherUpdate,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    update_data = _changes(body)
    if "email" in update_data:
        update_data["email"] = update_data["email"].strip().lower()
        _ensure_email_free("teachers", update_data["email"], exclude_id=teacher_id)
    if "password" in update_data:
        update_data["password_hash"] = get_password_hash(update_data.pop("password"))
    update_data["updated_at"] = _now()

    result = db.table("teachers").update(update_data).eq("id", teacher_id).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Teacher not found")
    publish_rows("teachers", "UPDATE", result.data)
    for row in result.data:
        row.pop("password_hash", None)
    return success_response(data=result.data, message="Teacher updated")


@router.delete("/teachers/{teacher_id}")
async def delete_teacher(
    teacher_id: str,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    db.table("teachers").delete().eq("id", teacher_id).execute()
    publish_rows("teachers", "DELETE", [{"id": teacher_id}])
    return success_response(message="Teacher deleted")


# ═══════════════════════════════════════════════════════════
# STUDENTS
# ═══════════════════════════════════════════════════════════

def _create_student(body: StudentCreate, background_tasks: BackgroundTasks) -> dict:
    db = get_supabase()
    email = body.email.strip().lower()
    _ensure_email_free("students", email)

    login_id = db.rpc("generate_student_login_id", {}).execute().data
    password = body.password or generate_password()

    data = {
        **body.model_dump(exclude={"password"}),
        "email": email,
        "login_id": login_id,
        "password_hash": get_password_hash(password),
    }
    result = db.table("students").insert(data).execute()
    student = result.data[0]
    publish_rows("students", "INSERT", result.data)

    background_tasks.add_task(send_welcome_email, email, body.name, login_id, password, "student")
    logger.info("Student %s created as %s", student["id"], login_id)
    return {"student": student, "login_id": login_id, "temp_password": password}


@router.post("/students")
async def create_student(
    body: StudentCreate,
    background_tasks: BackgroundTasks,
    user: dict = Depends(admin_only),
):
    created = _create_student(body, background_tasks)
    created["student"].pop("password_hash", None)
    return success_response(data=created, message=f"Student '{body.name}' created with ID {created['login_id']}")


@router.get("/students")
async def list_students(
    search: str | None = None,
    semester: str | None = None,
    section: str | None = None,
    department_id: str | None = None,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    query = db.table("students").select(
        "id, name, email, mobile, login_id, department_id, semester, section, enrollment_date, created_at, departments(name)"
    )
    if semester:
        query = query.eq("semester", semester)
    if section:
        query = query.eq("section", section)
    if department_id:
        query = query.eq("department_id", department_id)
    rows = query.order("name").execute().data or []

    if search:
        needle = search.lower()
        rows = [
            s for s in rows
            if needle in (s.get("name") or "").lower()
            or needle in (s.get("email") or "").lower()
            or needle in (s.get("login_id") or "").lower()
        ]
    return success_response(data=rows)


@router.patch("/students/{student_id}")
async def update_student(
    student_id: str,
    body: StudentUpdate,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    update_data = _changes(body)
    if "email" in update_data:
        update_data["email"] = update_data["email"].strip().lower()
        _ensure_email_free("students", update_data["email"], exclude_id=student_id)
    if "password" in update_data:
        update_data["password_hash"] = get_password_hash(update_data.pop("password"))
    update_data["updated_at"] = _now()

    result = db.table("students").update(update_data).eq("id", student_id).execute()
    if not result.data:
        raise HTTPException(status_code=404, detail="Student not found")
    publish_rows("students", "UPDATE", result.data)
    for row in result.data:
        row.pop("password_hash", None)
    return success_response(data=result.data, message="Student updated")


@router.delete("/students/{student_id}")
async def delete_student(
    student_id: str,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    db.table("students").delete().eq("id", student_id).execute()
    publish_rows("students", "DELETE", [{"id": student_id}])
    return success_response(message="Student deleted")


# ═══════════════════════════════════════════════════════════
# BULK UPLOAD
# ═══════════════════════════════════════════════════════════

@router.post("/bulk-upload/{kind}")
async def bulk_upload(
    kind: str,
    background_tasks: BackgroundTasks,
    file: UploadFile = File(...),
    user: dict = Depends(admin_only),
):
    """
    Create teachers or students from a CSV file.
    Students:  name,email,mobile,department,semester,section,password
    Teachers:  name,email,mobile,department,qualification,experience,"subj1, subj2",password
    """
    if kind not in ("students", "teachers"):
        raise HTTPException(status_code=400, detail="kind must be 'students' or 'teachers'")

    try:
        text = decode_upload(await file.read())
    except UnicodeDecodeError:
        raise HTTPException(status_code=400, detail="File must be UTF-8 encoded CSV")

    columns = STUDENT_COLUMNS if kind == "students" else TEACHER_COLUMNS
    rows, errors = parse_directory_csv(text, columns)

    db = get_supabase()
    departments = {
        d["name"].lower(): d["id"]
        for d in db.table("departments").select("id, name").execute().data or []
    }

    created = []
    for row_number, record in rows:
        department_id = departments.get(record["department"].lower()) if record["department"] else None
        try:
            if kind == "students":
                if not record["semester"] or not record["section"]:
                    errors.append(f"Row {row_number}: semester and section are required")
                    continue
                result = _create_student(StudentCreate(
                    name=record["name"], email=record["email"], mobile=record["mobile"],
                    department_id=department_id, semester=record["semester"],
                    section=record["section"], password=record["password"] or None,
                ), background_tasks)
                created.append({"row": row_number, "login_id": result["login_id"], "name": record["name"]})
            else:
                subjects = [s.strip() for s in record["subjects"].split(",") if s.strip()]
                result = _create_teacher(TeacherCreate(
                    name=record["name"], email=record["email"], mobile=record["mobile"],
                    department_id=department_id, qualification=record["qualification"] or None,
                    experience=record["experience"] or None, subjects=subjects,
                    password=record["password"] or None,
                ), background_tasks)
                created.append({"row": row_number, "employee_id": result["employee_id"], "name": record["name"]})
        except HTTPException as e:
            errors.append(f"Row {row_number}: {e.detail}")
        except ValueError as e:
            errors.append(f"Row {row_number}: {e}")

    logger.info("Bulk upload of %s: %d created, %d errors", kind, len(created), len(errors))
    return success_response(
        data={"created": created, "errors": errors},
        message=f"Created {len(created)} {kind}, {len(errors)} rows failed",
    )


# ═══════════════════════════════════════════════════════════
# REPORTS
# ═══════════════════════════════════════════════════════════

@router.get("/reports/overview")
async def reports_overview(user: dict = Depends(admin_only)):
    db = get_supabase()

    departments = db.table("departments").select("id, name").order("name").execute().data or []
    breakdown = []
    for dept in departments:
        breakdown.append({
            "department_id": dept["id"],
            "department_name": dept["name"],
            "students": count_rows("students", department_id=dept["id"]),
            "teachers": count_rows("teachers", department_id=dept["id"]),
            "courses": count_rows("courses", department_id=dept["id"]),
        })

    students = db.table("students").select("semester").execute().data or []
    by_semester: dict[str, int] = {}
    for s in students:
        by_semester[s.get("semester") or "-"] = by_semester.get(s.get("semester") or "-", 0) + 1

    return success_response(data={
        "total_students": count_rows("students"),
        "total_teachers": count_rows("teachers"),
        "total_courses": count_rows("courses"),
        "total_departments": len(departments),
        "departments": breakdown,
        "students_by_semester": by_semester,
    })


@router.get("/reports/export/{kind}")
async def export_directory(
    kind: str,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    if kind == "students":
        rows = (
            db.table("students")
            .select("login_id, name, email, mobile, semester, section, enrollment_date, departments(name)")
            .order("login_id")
            .execute()
        ).data or []
        header = ["Student ID", "Name", "Email", "Mobile", "Department", "Semester", "Section", "Enrollment Date"]
        lines = [
            [r.get("login_id"), r.get("name"), r.get("email"), r.get("mobile"),
             (r.get("departments") or {}).get("name", ""), r.get("semester"),
             r.get("section"), r.get("enrollment_date") or ""]
            for r in rows
        ]
    elif kind == "teachers":
        rows = (
            db.table("teachers")
            .select("employee_id, name, email, mobile, qualification, experience, subjects, departments(name)")
            .order("employee_id")
            .execute()
        ).data or []
        header = ["Employee ID", "Name", "Email", "Mobile", "Department", "Qualification", "Experience", "Subjects"]
        lines = [
            [r.get("employee_id"), r.get("name"), r.get("email"), r.get("mobile"),
             (r.get("departments") or {}).get("name", ""), r.get("qualification") or "",
             r.get("experience") or "", "; ".join(r.get("subjects") or [])]
            for r in rows
        ]
    else:
        raise HTTPException(status_code=400, detail="kind must be 'students' or 'teachers'")

    stamp = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    return csv_response(f"{kind}_report_{stamp}.csv", header, lines)


# ═══════════════════════════════════════════════════════════
# EMAIL SETTINGS
# ═══════════════════════════════════════════════════════════

def _masked(row: dict) -> dict:
    return {k: ("********" if k in SECRET_SETTINGS and v else v) for k, v in row.items()}


@router.get("/email-settings")
async def get_email_settings(user: dict = Depends(admin_only)):
    db = get_supabase()
    result = db.table("email_settings").select("*").limit(1).execute()
    return success_response(data=_masked(result.data[0]) if result.data else None)


@router.put("/email-settings")
async def update_email_settings(
    body: EmailSettingsUpdate,
    user: dict = Depends(admin_only),
):
    db = get_supabase()
    changes = {k: v for k, v in body.model_dump().items() if v is not None}
    existing = db.table("email_settings").select("id").limit(1).execute()
    if existing.data:
        result = (
            db.table("email_settings")
            .update({**changes, "updated_at": _now()})
            .eq("id", existing.data[0]["id"])
            .execute()
        )
    else:
        result = db.table("email_settings").insert(changes).execute()
    return success_response(data=_masked(result.data[0]) if result.data else None, message="Email settings saved")
