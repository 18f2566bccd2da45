from datetime import date, datetime, timedelta, timezone


def test_teacher_event_lifecycle(client, db, teacher_headers):
    created = client.post("/api/calendar/events", headers=teacher_headers, json={
        "title": "Department meeting",
        "event_type": "meeting",
        "start_date": "2025-03-10T09:00:00Z",
        "end_date": "2025-03-10T10:00:00Z",
        "attendees": ["teacher-2"],
    })
    assert created.status_code == 200
    event_id = created.json()["data"][0]["id"]
    assert db.rows("calendar_events", id=event_id)[0]["teacher_id"] == "teacher-1"

    status = client.patch(f"/api/calendar/events/{event_id}/status", headers=teacher_headers, json={"status": "completed"})
    assert status.status_code == 200

    listed = client.get("/api/calendar/events?status=completed", headers=teacher_headers).json()["data"]
    assert [e["id"] for e in listed] == [event_id]

    assert client.delete(f"/api/calendar/events/{event_id}", headers=teacher_headers).status_code == 200
    assert db.rows("calendar_events") == []


def test_end_before_start_is_rejected(client, teacher_headers):
    response = client.post("/api/calendar/events", headers=teacher_headers, json={
        "title": "Backwards", "start_date": "2025-03-10T10:00:00Z", "end_date": "2025-03-10T09:00:00Z",
    })
    assert response.status_code == 400


def test_update_rechecks_range(client, teacher_headers):
    event_id = client.post("/api/calendar/events", headers=teacher_headers, json={
        "title": "Review", "start_date": "2025-03-10T10:00:00Z", "end_date": "2025-03-10T11:00:00Z",
    }).json()["data"][0]["id"]

    response = client.patch(
        f"/api/calendar/events/{event_id}",
        headers=teacher_headers,
        json={"end_date": "2025-03-09T11:00:00Z"},
    )
    assert response.status_code == 400


def test_student_tasks_are_separate_from_teacher_events(client, db, teacher_headers, student_headers):
    teacher_event = client.post("/api/calendar/events", headers=teacher_headers, json={
        "title": "Grading", "start_date": "2025-03-10T10:00:00Z",
    }).json()["data"][0]["id"]

    created = client.post("/api/calendar/events", headers=student_headers, json={
        "title": "Revise trees", "start_date": "2025-03-11T18:00:00Z", "subject_id": "subject-1",
    })
    assert created.status_code == 200
    task = db.rows("student_calendar_events")[0]
    assert task["student_id"] == "student-1"
    assert "subject_id" not in task

    response = client.delete(f"/api/calendar/events/{teacher_event}", headers=student_headers)
    assert response.status_code == 404


def test_list_events_filters_by_range(client, student_headers):
    for day in ("2025-03-01", "2025-03-15", "2025-04-01"):
        client.post("/api/calendar/events", headers=student_headers, json={"title": day, "start_date": f"{day}T08:00:00Z"})

    listed = client.get(
        "/api/calendar/events?start=2025-03-01&end=2025-03-31",
        headers=student_headers,
    ).json()["data"]
    assert [e["title"] for e in listed] == ["2025-03-01", "2025-03-15"]


def test_student_feed_merges_tasks_deadlines_and_classes(client, db, student_headers):
    deadline = (datetime.now(timezone.utc) + timedelta(days=2)).isoformat()
    db.add("assignments", {
        "title": "Quiz 1", "status": "published", "semester": "2", "section": "A",
        "deadline": deadline, "teacher_id": "teacher-1",
    })
    db.add("assignments", {
        "title": "Other class", "status": "published", "semester": "4", "section": "B",
        "deadline": deadline, "teacher_id": "teacher-1",
    })
    db.add("live_classes", {
        "title": "Trees live", "status": "scheduled", "semester": "2nd", "section": "a",
        "class_date": (date.today() + timedelta(days=1)).isoformat(),
        "start_time": "10:00:00", "end_time": "11:00:00", "teacher_id": "teacher-1",
    })
    client.post("/api/calendar/events", headers=student_headers, json={
        "title": "Study group", "start_date": (datetime.now(timezone.utc) + timedelta(days=3)).isoformat(),
    })

    feed = client.get("/api/calendar/student/feed", headers=student_headers).json()["data"]

    assert [item["source"] for item in feed] == ["live_class", "assignment", "task"]
    assert feed[1]["title"] == "Due: Quiz 1"
