import bcrypt
import pytest
from fastapi.testclient import TestClient

from app.core import database
from app.core.config import settings
from app.main import app
from fake_supabase import FakeSupabase

PASSWORD = "secret123"


def _hash(password: str) -> str:
    # Low cost factor keeps the suite fast
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=4)).decode("utf-8")


def seed(db: FakeSupabase) -> FakeSupabase:
    password_hash = _hash(PASSWORD)
    db.add("departments", {"id": "dept-cs", "name": "Computer Science"})
    db.add("departments", {"id": "dept-me", "name": "Mechanical"})

    db.add("admin_users", {
        "id": "admin-1", "name": "Asha Admin", "email": "admin@learnme.edu",
        "password_hash": password_hash,
    })
    db.add("teachers", {
        "id": "teacher-1", "name": "Ravi Kumar", "email": "ravi@learnme.edu",
        "employee_id": "TCH001", "department_id": "dept-cs", "password_hash": password_hash,
    })
    db.add("teachers", {
        "id": "teacher-2", "name": "Meena Iyer", "email": "meena@learnme.edu",
        "employee_id": "TCH002", "department_id": "dept-cs", "password_hash": password_hash,
    })
    db.add("students", {
        "id": "student-1", "name": "Arjun Rao", "email": "arjun@learnme.edu", "login_id": "STU001",
        "department_id": "dept-cs", "semester": "2", "section": "A", "password_hash": password_hash,
    })
    db.add("students", {
        "id": "student-2", "name": "Bela Shah", "email": "bela@learnme.edu", "login_id": "STU002",
        "department_id": "dept-cs", "semester": "2", "section": "A", "password_hash": password_hash,
    })
    db.add("students", {
        "id": "student-3", "name": "Chetan Das", "email": "chetan@learnme.edu", "login_id": "STU003",
        "department_id": "dept-cs", "semester": "4", "section": "B", "password_hash": password_hash,
    })
    db.add("subjects", {
        "id": "subject-1", "name": "Data Structures", "code": "CS201", "teacher_id": "teacher-1",
    })
    return db


@pytest.fixture(autouse=True)
def app_settings(monkeypatch):
    monkeypatch.setattr(settings, "AUTH_MODE", "mock")
    monkeypatch.setattr(settings, "AUTO_GRADE_MODE", "local")
    monkeypatch.setattr(settings, "EMAILJS_SERVICE_ID", "")


@pytest.fixture
def db(monkeypatch):
    fake = seed(FakeSupabase())
    monkeypatch.setattr(database, "_supabase_client", fake)
    return fake


@pytest.fixture
def client(db):
    return TestClient(app)


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def admin_headers():
    return bearer("mock-admin-admin@learnme.edu")


@pytest.fixture
def teacher_headers():
    return bearer("mock-teacher-TCH001")


@pytest.fixture
def other_teacher_headers():
    return bearer("mock-teacher-TCH002")


@pytest.fixture
def student_headers():
    return bearer("mock-student-STU001")


@pytest.fixture
def other_student_headers():
    return bearer("mock-student-STU003")
