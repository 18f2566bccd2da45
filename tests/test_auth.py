from datetime import datetime, timedelta, timezone

from conftest import PASSWORD


def login(client, user_type, login_id, password=PASSWORD):
    return client.post("/api/auth/login", json={
        "user_type": user_type, "login_id": login_id, "password": password,
    })


def test_teacher_logs_in_with_employee_id(client):
    response = login(client, "teacher", "TCH001")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["data"]["token"] == "mock-teacher-TCH001"
    assert body["data"]["user"]["employee_id"] == "TCH001"
    assert body["data"]["user"]["role"] == "teacher"


def test_student_logs_in_with_email(client):
    response = login(client, "student", "arjun@learnme.edu")

    assert response.status_code == 200
    assert response.json()["data"]["user"]["login_id"] == "STU001"


def test_email_logins_ignore_case(client):
    assert login(client, "admin", "Admin@LearnMe.edu").status_code == 200
    assert login(client, "student", "ARJUN@learnme.edu").json()["data"]["user"]["login_id"] == "STU001"


def test_wrong_password_is_rejected(client):
    response = login(client, "admin", "admin@learnme.edu", "nope")
    assert response.status_code == 401


def test_unknown_teacher_is_rejected(client):
    response = login(client, "teacher", "TCH999")

    assert response.status_code == 401
    assert "Employee ID" in response.json()["detail"]


def test_legacy_database_hash_still_verifies(client, db):
    db.rows("teachers", id="teacher-2")[0]["password_hash"] = "legacy:oldpass"

    assert login(client, "teacher", "TCH002", "oldpass").status_code == 200
    assert login(client, "teacher", "TCH002", "wrong").status_code == 401


def test_jwt_tokens_round_trip(client, monkeypatch):
    from app.core.config import settings

    monkeypatch.setattr(settings, "AUTH_MODE", "jwt")
    token = login(client, "student", "STU001").json()["data"]["token"]
    assert not token.startswith("mock-")

    me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["data"]["user_id"] == "student-1"

    bad = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
    assert bad.status_code == 401


def test_me_includes_department_name(client, teacher_headers):
    response = client.get("/api/auth/me", headers=teacher_headers)

    assert response.status_code == 200
    assert response.json()["data"]["department_name"] == "Computer Science"


def test_requests_without_token_are_rejected(client):
    assert client.get("/api/auth/me").status_code in (401, 403)


def test_role_guard_blocks_other_roles(client, student_headers):
    response = client.get("/api/admin/students", headers=student_headers)
    assert response.status_code == 403


def test_change_password(client, student_headers):
    wrong = client.post("/api/auth/change-password", headers=student_headers, json={
        "current_password": "bad", "new_password": "newpass1",
    })
    assert wrong.status_code == 401

    ok = client.post("/api/auth/change-password", headers=student_headers, json={
        "current_password": PASSWORD, "new_password": "newpass1",
    })
    assert ok.status_code == 200
    assert login(client, "student", "STU001", "newpass1").status_code == 200


def test_password_reset_flow(client, db):
    response = client.post("/api/auth/forgot-password", json={
        "email": "Bela@learnme.edu", "user_type": "student",
    })
    assert response.status_code == 200

    tokens = db.rows("password_reset_tokens", email="bela@learnme.edu")
    assert len(tokens) == 1
    code = tokens[0]["token"]
    assert len(code) == 6 and code.isdigit()

    reset = {"email": "bela@learnme.edu", "user_type": "student", "token": code, "new_password": "fresh123"}
    assert client.post("/api/auth/reset-password", json=reset).status_code == 200
    assert login(client, "student", "STU002", "fresh123").status_code == 200

    # Codes are single use
    assert client.post("/api/auth/reset-password", json=reset).status_code == 400


def test_forgot_password_does_not_reveal_unknown_emails(client, db):
    response = client.post("/api/auth/forgot-password", json={
        "email": "ghost@learnme.edu", "user_type": "student",
    })
    assert response.status_code == 200
    assert db.rows("password_reset_tokens") == []


def test_expired_reset_code_is_rejected(client, db):
    db.add("password_reset_tokens", {
        "email": "arjun@learnme.edu",
        "token": "123456",
        "used": False,
        "expires_at": (datetime.now(timezone.utc) - timedelta(minutes=1)).isoformat(),
    })
    response = client.post("/api/auth/reset-password", json={
        "email": "arjun@learnme.edu", "user_type": "student", "token": "123456", "new_password": "fresh123",
    })
    assert response.status_code == 400
    assert "expired" in response.json()["detail"]
