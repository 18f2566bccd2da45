import io

from app.core.security import verify_password


def test_create_student_generates_login_id_and_password(client, db, admin_headers):
    response = client.post("/api/admin/students", headers=admin_headers, json={
        "name": "Divya Nair", "email": "Divya@LearnMe.edu", "semester": "2", "section": "B",
        "department_id": "dept-cs",
    })

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["login_id"] == "STU004"
    assert "password_hash" not in data["student"]

    stored = db.rows("students", login_id="STU004")[0]
    assert stored["email"] == "divya@learnme.edu"
    assert verify_password(data["temp_password"], stored["password_hash"])


def test_duplicate_email_is_rejected(client, admin_headers):
    response = client.post("/api/admin/teachers", headers=admin_headers, json={
        "name": "Copy", "email": "ravi@learnme.edu",
    })
    assert response.status_code == 400


def test_create_teacher_uses_given_password(client, db, admin_headers):
    response = client.post("/api/admin/teachers", headers=admin_headers, json={
        "name": "Kiran Patel", "email": "kiran@learnme.edu", "password": "chosen1",
        "subjects": ["Maths"],
    })

    assert response.status_code == 200
    assert response.json()["data"]["employee_id"] == "TCH003"
    stored = db.rows("teachers", employee_id="TCH003")[0]
    assert verify_password("chosen1", stored["password_hash"])


def test_list_students_filters_and_searches(client, admin_headers):
    response = client.get("/api/admin/students?semester=2&search=bela", headers=admin_headers)

    assert response.status_code == 200
    assert [s["login_id"] for s in response.json()["data"]] == ["STU002"]


def test_update_student_password(client, db, admin_headers):
    response = client.patch("/api/admin/students/student-3", headers=admin_headers, json={"password": "reset99"})

    assert response.status_code == 200
    assert verify_password("reset99", db.rows("students", id="student-3")[0]["password_hash"])


def test_update_requires_fields(client, admin_headers):
    response = client.patch("/api/admin/teachers/teacher-1", headers=admin_headers, json={})
    assert response.status_code == 400


def test_bulk_upload_students_reports_row_errors(client, db, admin_headers):
    csv_text = (
        "name,email,mobile,department,semester,section,password\n"
        "Esha Jain,esha@learnme.edu,900,computer science,2,A,pass123\n"
        "No Email,,901,Computer Science,2,A,\n"
        "No Semester,nosem@learnme.edu,902,Computer Science,,A,\n"
        "Arjun Again,arjun@learnme.edu,903,Computer Science,2,A,\n"
    )
    response = client.post(
        "/api/admin/bulk-upload/students",
        headers=admin_headers,
        files={"file": ("students.csv", io.BytesIO(csv_text.encode("utf-8")), "text/csv")},
    )

    assert response.status_code == 200
    data = response.json()["data"]
    assert [c["name"] for c in data["created"]] == ["Esha Jain"]
    assert len(data["errors"]) == 3
    assert data["errors"][0] == "Row 3: missing email"
    assert db.rows("students", email="esha@learnme.edu")[0]["department_id"] == "dept-cs"


def test_bulk_upload_teachers_splits_subjects(client, db, admin_headers):
    csv_text = (
        "name,email,mobile,department,qualification,experience,subjects,password\n"
        'Farah Khan,farah@learnme.edu,800,Mechanical,M.Tech,5,"Thermo, Fluids",\n'
    )
    response = client.post(
        "/api/admin/bulk-upload/teachers",
        headers=admin_headers,
        files={"file": ("teachers.csv", io.BytesIO(csv_text.encode("utf-8")), "text/csv")},
    )

    assert response.status_code == 200
    teacher = db.rows("teachers", email="farah@learnme.edu")[0]
    assert teacher["subjects"] == ["Thermo", "Fluids"]
    assert teacher["department_id"] == "dept-me"


def test_department_with_members_cannot_be_deleted(client, admin_headers):
    response = client.delete("/api/admin/departments/dept-cs", headers=admin_headers)
    assert response.status_code == 409

    assert client.delete("/api/admin/departments/dept-me", headers=admin_headers).status_code == 200


def test_departments_list_counts_members(client, admin_headers):
    response = client.get("/api/admin/departments", headers=admin_headers)

    cs = next(d for d in response.json()["data"] if d["id"] == "dept-cs")
    assert cs["teacher_count"] == 2
    assert cs["student_count"] == 3


def test_course_codes_are_unique(client, admin_headers):
    body = {"name": "B.Tech CSE", "code": "BTCSE", "semester": "1", "department_id": "dept-cs"}
    assert client.post("/api/admin/courses", headers=admin_headers, json=body).status_code == 200
    assert client.post("/api/admin/courses", headers=admin_headers, json=body).status_code == 400


def test_reports_overview(client, admin_headers):
    response = client.get("/api/admin/reports/overview", headers=admin_headers)

    data = response.json()["data"]
    assert data["total_students"] == 3
    assert data["total_teachers"] == 2
    assert data["students_by_semester"] == {"2": 2, "4": 1}


def test_export_students_csv(client, admin_headers):
    response = client.get("/api/admin/reports/export/students", headers=admin_headers)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("Student ID,Name,Email")
    assert lines[1].startswith("STU001,Arjun Rao")
    assert "Computer Science" in lines[1]


def test_email_settings_mask_secrets(client, admin_headers):
    saved = client.put("/api/admin/email-settings", headers=admin_headers, json={
        "from_email": "noreply@learnme.edu", "smtp_password": "hunter2",
    })
    assert saved.status_code == 200

    response = client.get("/api/admin/email-settings", headers=admin_headers)
    data = response.json()["data"]
    assert data["from_email"] == "noreply@learnme.edu"
    assert data["smtp_password"] == "********"
