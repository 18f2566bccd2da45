from datetime import date, datetime, timedelta

from app.routers.live_classes import class_availability

TOMORROW = (date.today() + timedelta(days=1)).isoformat()


def class_body(**overrides):
    body = {
        "title": "Trees revision",
        "subject_id": "subject-1",
        "class_date": TOMORROW,
        "start_time": "10:00",
        "end_time": "11:00",
        "meeting_link": "https://meet.google.com/abc-defg-hij",
        "semester": "2nd, 3rd",
        "section": "a",
    }
    body.update(overrides)
    return body


def test_availability_follows_status_and_clock():
    live_class = {"class_date": "2025-03-01", "start_time": "10:00:00", "end_time": "11:00:00", "status": "scheduled"}

    assert class_availability(live_class, datetime(2025, 3, 1, 9, 59)) == "upcoming"
    assert class_availability(live_class, datetime(2025, 3, 1, 10, 30)) == "available"
    assert class_availability(live_class, datetime(2025, 3, 1, 11, 1)) == "ended"
    assert class_availability({**live_class, "status": "live"}, datetime(2025, 3, 2)) == "live"
    assert class_availability({**live_class, "status": "completed"}) == "ended"
    assert class_availability({**live_class, "status": "cancelled"}) == "cancelled"


def test_end_time_must_follow_start_time(client, teacher_headers):
    response = client.post(
        "/api/live-classes",
        headers=teacher_headers,
        json=class_body(start_time="11:00", end_time="10:00"),
    )
    assert response.status_code == 422


def test_create_defaults(client, teacher_headers):
    response = client.post("/api/live-classes", headers=teacher_headers, json=class_body())

    assert response.status_code == 200
    created = response.json()["data"][0]
    assert created["status"] == "scheduled"
    assert created["max_participants"] == 100
    assert created["start_time"] == "10:00:00"


def test_update_rechecks_time_window(client, teacher_headers):
    created = client.post("/api/live-classes", headers=teacher_headers, json=class_body()).json()["data"][0]

    response = client.patch(f"/api/live-classes/{created['id']}", headers=teacher_headers, json={"end_time": "09:00"})
    assert response.status_code == 400


def test_matching_students_are_listed(client, teacher_headers):
    created = client.post("/api/live-classes", headers=teacher_headers, json=class_body()).json()["data"][0]

    response = client.get(f"/api/live-classes/{created['id']}/students", headers=teacher_headers)
    assert [s["login_id"] for s in response.json()["data"]] == ["STU001", "STU002"]


def test_student_sees_matching_classes_only(client, teacher_headers, student_headers, other_student_headers):
    client.post("/api/live-classes", headers=teacher_headers, json=class_body())

    mine = client.get("/api/live-classes/student", headers=student_headers).json()["data"]
    assert [c["title"] for c in mine["upcoming"]] == ["Trees revision"]
    assert mine["upcoming"][0]["availability"] == "upcoming"
    assert mine["upcoming"][0]["subject_name"] == "Data Structures"

    other = client.get("/api/live-classes/student", headers=other_student_headers).json()["data"]
    assert other == {"upcoming": [], "past": []}


def test_join_records_attendance_once(client, db, teacher_headers, student_headers):
    created = client.post("/api/live-classes", headers=teacher_headers, json=class_body()).json()["data"][0]

    for _ in range(2):
        response = client.post(f"/api/live-classes/student/{created['id']}/join", headers=student_headers)
        assert response.status_code == 200
        assert response.json()["data"]["meeting_link"] == "https://meet.google.com/abc-defg-hij"

    rows = db.rows("live_class_attendance", live_class_id=created["id"])
    assert len(rows) == 1
    assert rows[0]["status"] == "joined"

    attendance = client.get(f"/api/live-classes/{created['id']}/attendance", headers=teacher_headers).json()["data"]
    assert attendance[0]["student_name"] == "Arjun Rao"


def test_cannot_join_cancelled_or_unmatched_class(client, teacher_headers, student_headers, other_student_headers):
    created = client.post("/api/live-classes", headers=teacher_headers, json=class_body()).json()["data"][0]

    outsider = client.post(f"/api/live-classes/student/{created['id']}/join", headers=other_student_headers)
    assert outsider.status_code == 404

    client.patch(f"/api/live-classes/{created['id']}/status", headers=teacher_headers, json={"status": "cancelled"})
    cancelled = client.post(f"/api/live-classes/student/{created['id']}/join", headers=student_headers)
    assert cancelled.status_code == 409


def test_history_counts_attendance(client, db, teacher_headers, student_headers):
    created = client.post("/api/live-classes", headers=teacher_headers, json=class_body()).json()["data"][0]
    client.post(f"/api/live-classes/student/{created['id']}/join", headers=student_headers)
    client.patch(f"/api/live-classes/{created['id']}/status", headers=teacher_headers, json={"status": "completed"})

    history = client.get("/api/live-classes/history", headers=teacher_headers).json()["data"]

    assert history[0]["id"] == created["id"]
    assert history[0]["attendance_count"] == 1


def test_other_teacher_cannot_delete(client, teacher_headers, other_teacher_headers):
    created = client.post("/api/live-classes", headers=teacher_headers, json=class_body()).json()["data"][0]

    response = client.delete(f"/api/live-classes/{created['id']}", headers=other_teacher_headers)
    assert response.status_code == 404
