import csv
import io
from datetime import datetime, timedelta, timezone

import pytest


def _deadline(days: int) -> str:
    return (datetime.now(timezone.utc) + timedelta(days=days)).isoformat()


def assignment_body(**overrides):
    body = {
        "title": "Linked Lists Quiz",
        "subject_id": "subject-1",
        "semester": "2nd",
        "section": "A",
        "deadline": _deadline(3),
        "total_marks": 10,
        "questions": [
            {"question_text": "Head of an empty list?", "question_type": "mcq", "marks": 4,
             "options": {"a": "0", "b": "None"}, "correct_answer": "b", "explanation": "Nothing to point at"},
            {"question_text": "Explain insertion.", "question_type": "short_answer", "marks": 6,
             "rubric": "Mentions pointers"},
        ],
    }
    body.update(overrides)
    return body


@pytest.fixture
def create_assignment(client, teacher_headers):
    def create(publish=True, **overrides):
        response = client.post("/api/assignments", headers=teacher_headers, json=assignment_body(**overrides))
        assert response.status_code == 200
        assignment = response.json()["data"]
        if publish:
            published = client.patch(
                f"/api/assignments/{assignment['id']}/status",
                headers=teacher_headers,
                json={"status": "published"},
            )
            assert published.status_code == 200
        return assignment
    return create


def _answers(assignment, mcq="b", text="Update the next pointer"):
    mcq_q, text_q = assignment["questions"]
    return {mcq_q["id"]: mcq, text_q["id"]: text}


def test_create_assignment_starts_as_draft(client, db, create_assignment):
    assignment = create_assignment(publish=False)

    assert assignment["status"] == "draft"
    assert [q["question_order"] for q in assignment["questions"]] == [1, 2]
    assert len(db.rows("assignment_questions", assignment_id=assignment["id"])) == 2


def test_mcq_needs_correct_option(client, teacher_headers):
    body = assignment_body()
    body["questions"][0]["correct_answer"] = "z"

    response = client.post("/api/assignments", headers=teacher_headers, json=body)
    assert response.status_code == 422


@pytest.mark.parametrize("start, target, allowed", [
    ("draft", "closed", False),
    ("draft", "published", True),
    ("published", "closed", True),
    ("closed", "published", True),
    ("closed", "draft", False),
    ("published", "archived", True),
])
def test_status_transitions(client, db, teacher_headers, create_assignment, start, target, allowed):
    assignment = create_assignment(publish=False)
    db.rows("assignments", id=assignment["id"])[0]["status"] = start

    response = client.patch(
        f"/api/assignments/{assignment['id']}/status",
        headers=teacher_headers,
        json={"status": target},
    )
    assert response.status_code == (200 if allowed else 409)


def test_other_teacher_cannot_change_assignment(client, create_assignment, other_teacher_headers):
    assignment = create_assignment()
    response = client.patch(
        f"/api/assignments/{assignment['id']}",
        headers=other_teacher_headers,
        json={"title": "Hijacked"},
    )
    assert response.status_code == 404


def test_student_sees_only_published_assignments_for_their_class(
    client, create_assignment, student_headers, other_student_headers,
):
    create_assignment(publish=False, title="Hidden draft")
    create_assignment(title="Visible")

    mine = client.get("/api/assignments/student", headers=student_headers).json()["data"]
    assert [a["title"] for a in mine] == ["Visible"]
    assert mine[0]["display_status"] == "Not Started"
    assert mine[0]["subject_name"] == "Data Structures"

    other = client.get("/api/assignments/student", headers=other_student_headers).json()["data"]
    assert other == []


def test_student_view_withholds_answers(client, create_assignment, student_headers):
    assignment = create_assignment()

    response = client.get(f"/api/assignments/student/{assignment['id']}", headers=student_headers)

    assert response.status_code == 200
    for question in response.json()["data"]["questions"]:
        assert "correct_answer" not in question
        assert "explanation" not in question
        assert "rubric" not in question


def test_draft_is_updated_in_place(client, db, create_assignment, student_headers):
    assignment = create_assignment()
    url = f"/api/assignments/student/{assignment['id']}/draft"

    first = client.put(url, headers=student_headers, json={"answers": {"x": "1"}})
    second = client.put(url, headers=student_headers, json={"answers": {"x": "2"}})

    assert first.status_code == second.status_code == 200
    rows = db.rows("student_submissions", assignment_id=assignment["id"])
    assert len(rows) == 1
    assert rows[0]["answers"] == {"x": "2"}
    assert rows[0]["attempt_number"] == 1

    listed = client.get("/api/assignments/student", headers=student_headers).json()["data"]
    assert listed[0]["display_status"] == "Draft Saved"


def test_submit_requires_every_answer(client, create_assignment, student_headers):
    assignment = create_assignment()
    answers = _answers(assignment)
    answers.pop(assignment["questions"][1]["id"])

    response = client.post(
        f"/api/assignments/student/{assignment['id']}/submit",
        headers=student_headers,
        json={"answers": answers},
    )
    assert response.status_code == 400


def test_auto_submit_accepts_partial_answers(client, create_assignment, student_headers):
    assignment = create_assignment()

    response = client.post(
        f"/api/assignments/student/{assignment['id']}/submit",
        headers=student_headers,
        json={"answers": {}, "auto_submit": True},
    )
    assert response.status_code == 200
    assert response.json()["data"]["auto_graded_score"] == 0


def test_submit_promotes_draft_and_auto_grades(client, db, create_assignment, student_headers):
    assignment = create_assignment()
    started = (datetime.now(timezone.utc) - timedelta(minutes=20)).isoformat()
    client.put(
        f"/api/assignments/student/{assignment['id']}/draft",
        headers=student_headers,
        json={"answers": {}, "started_at": started},
    )

    response = client.post(
        f"/api/assignments/student/{assignment['id']}/submit",
        headers=student_headers,
        json={"answers": _answers(assignment)},
    )

    assert response.status_code == 200
    assert response.json()["data"]["auto_graded_score"] == 4
    rows = db.rows("student_submissions", assignment_id=assignment["id"])
    assert len(rows) == 1
    assert rows[0]["grading_status"] == "auto_graded"
    assert rows[0]["is_late"] is False
    assert rows[0]["time_taken_minutes"] == 20

    listed = client.get("/api/assignments/student", headers=student_headers).json()["data"]
    assert listed[0]["display_status"] == "Auto-graded"


def test_max_attempts_is_enforced(client, create_assignment, student_headers):
    assignment = create_assignment(max_attempts=1)
    url = f"/api/assignments/student/{assignment['id']}/submit"

    assert client.post(url, headers=student_headers, json={"answers": _answers(assignment)}).status_code == 200
    again = client.post(url, headers=student_headers, json={"answers": _answers(assignment)})
    assert again.status_code == 409

    draft = client.put(f"/api/assignments/student/{assignment['id']}/draft", headers=student_headers, json={})
    assert draft.status_code == 409


def test_second_attempt_allowed_when_configured(client, db, create_assignment, student_headers):
    assignment = create_assignment(max_attempts=2)
    url = f"/api/assignments/student/{assignment['id']}/submit"

    client.post(url, headers=student_headers, json={"answers": _answers(assignment)})
    second = client.post(url, headers=student_headers, json={"answers": _answers(assignment)})

    assert second.status_code == 200
    attempts = sorted(r["attempt_number"] for r in db.rows("student_submissions", assignment_id=assignment["id"]))
    assert attempts == [1, 2]


def test_late_submission_rejected_unless_allowed(client, db, create_assignment, student_headers):
    closed = create_assignment(deadline=_deadline(-1))
    response = client.post(
        f"/api/assignments/student/{closed['id']}/submit",
        headers=student_headers,
        json={"answers": _answers(closed)},
    )
    assert response.status_code == 409

    lenient = create_assignment(deadline=_deadline(-1), late_submission_allowed=True, late_penalty_percentage=25)
    response = client.post(
        f"/api/assignments/student/{lenient['id']}/submit",
        headers=student_headers,
        json={"answers": _answers(lenient)},
    )
    assert response.status_code == 200
    assert response.json()["data"]["is_late"] is True
    assert response.json()["data"]["auto_graded_score"] == 3
    assert db.rows("student_submissions", assignment_id=lenient["id"])[0]["penalty_applied"] == 1


def test_grading_adds_manual_points_to_auto_score(client, db, create_assignment, student_headers, teacher_headers):
    assignment = create_assignment()
    submitted = client.post(
        f"/api/assignments/student/{assignment['id']}/submit",
        headers=student_headers,
        json={"answers": _answers(assignment)},
    ).json()["data"]["submission"]
    text_q = assignment["questions"][1]["id"]

    pending = client.get(f"/api/assignments/{assignment['id']}/submissions?status=pending", headers=teacher_headers)
    assert [s["student_name"] for s in pending.json()["data"]] == ["Arjun Rao"]

    too_many = client.patch(
        f"/api/assignments/submissions/{submitted['id']}/grade",
        headers=teacher_headers,
        json={"question_points": {text_q: 7}},
    )
    assert too_many.status_code == 400

    graded = client.patch(
        f"/api/assignments/submissions/{submitted['id']}/grade",
        headers=teacher_headers,
        json={"question_points": {text_q: 5}, "feedback": "Good"},
    )
    assert graded.status_code == 200

    stored = db.rows("student_submissions", id=submitted["id"])[0]
    assert stored["total_score"] == 9
    assert stored["grading_status"] == "completed"
    assert len(db.rows("question_grades", submission_id=submitted["id"])) == 1

    # Regrading replaces question grades
    client.patch(
        f"/api/assignments/submissions/{submitted['id']}/grade",
        headers=teacher_headers,
        json={"question_points": {text_q: 6}},
    )
    assert len(db.rows("question_grades", submission_id=submitted["id"])) == 1
    assert db.rows("student_submissions", id=submitted["id"])[0]["total_score"] == 10


def test_auto_graded_mcq_cannot_be_scored_again(client, db, create_assignment, student_headers, teacher_headers):
    assignment = create_assignment()
    submitted = client.post(
        f"/api/assignments/student/{assignment['id']}/submit",
        headers=student_headers,
        json={"answers": _answers(assignment)},
    ).json()["data"]["submission"]
    mcq_q, text_q = (q["id"] for q in assignment["questions"])

    response = client.patch(
        f"/api/assignments/submissions/{submitted['id']}/grade",
        headers=teacher_headers,
        json={"question_points": {mcq_q: 4, text_q: 6}},
    )

    assert response.status_code == 400
    stored = db.rows("student_submissions", id=submitted["id"])[0]
    assert stored["total_score"] == 4
    assert stored["grading_status"] == "auto_graded"


def test_report_and_export(client, create_assignment, student_headers, teacher_headers):
    assignment = create_assignment()
    submission = client.post(
        f"/api/assignments/student/{assignment['id']}/submit",
        headers=student_headers,
        json={"answers": _answers(assignment)},
    ).json()["data"]["submission"]
    client.patch(
        f"/api/assignments/submissions/{submission['id']}/grade",
        headers=teacher_headers,
        json={"question_points": {assignment["questions"][1]["id"]: 4}},
    )

    report = client.get(f"/api/assignments/{assignment['id']}/report", headers=teacher_headers).json()["data"]
    assert report["submitted"] == 1
    assert report["graded"] == 1
    assert report["average"] == 8
    assert report["late"] == 0

    export = client.get(f"/api/assignments/{assignment['id']}/report/export", headers=teacher_headers)
    rows = list(csv.reader(io.StringIO(export.text)))
    assert rows[0][0] == "Student ID"
    assert rows[1][0] == "STU001"
    assert rows[1][-1] == "Graded"

    per_student = client.get("/api/assignments/reports/student/student-1", headers=teacher_headers).json()["data"]
    assert per_student["submitted"] == 1
    assert per_student["percentage"] == 80


def test_teacher_list_counts_submissions(client, create_assignment, student_headers, teacher_headers):
    assignment = create_assignment()
    client.put(f"/api/assignments/student/{assignment['id']}/draft", headers=student_headers, json={})

    listed = client.get("/api/assignments", headers=teacher_headers).json()["data"]
    assert listed[0]["submission_count"] == 0
    assert listed[0]["subject_name"] == "Data Structures"
