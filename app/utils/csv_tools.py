"""
CSV import/export helpers for attendance, marks and directory uploads.
"""

import csv
import io
from collections import OrderedDict

STUDENT_COLUMNS = ["name", "email", "mobile", "department", "semester", "section", "password"]
TEACHER_COLUMNS = ["name", "email", "mobile", "department", "qualification", "experience", "subjects", "password"]


def decode_upload(content: bytes) -> str:
    # Spreadsheet exports often carry a BOM
    return content.decode("utf-8-sig")


def read_rows(text: str) -> list[list[str]]:
    """Parse CSV text, trimming cells and dropping blank lines."""
    rows = []
    for row in csv.reader(io.StringIO(text)):
        cells = [cell.strip() for cell in row]
        if any(cells):
            rows.append(cells)
    return rows


def parse_attendance_csv(text: str) -> tuple[dict[str, bool], list[str]]:
    """
    Header row, then `student_id,status` rows.
    Returns ({student_id: present}, [row errors]).
    """
    rows = read_rows(text)
    records: dict[str, bool] = {}
    errors: list[str] = []
    for row_number, row in enumerate(rows[1:], start=2):
        if len(row) < 2 or not row[0] or not row[1]:
            errors.append(f"Row {row_number}: expected student_id and status")
            continue
        # Anything other than "present" counts as absent
        records[row[0]] = row[1].lower() == "present"
    return records, errors


def parse_directory_csv(text: str, columns: list[str]) -> tuple[list[tuple[int, dict]], list[str]]:
    """
    Map data rows onto `columns` by position (header row skipped).
    Returns ([(row_number, record)], [row errors]).
    """
    rows = read_rows(text)
    parsed = []
    errors = []
    for row_number, row in enumerate(rows[1:], start=2):
        record = {column: (row[i] if i < len(row) else "") for i, column in enumerate(columns)}
        missing = [c for c in ("name", "email") if not record.get(c)]
        if missing:
            errors.append(f"Row {row_number}: missing {', '.join(missing)}")
            continue
        parsed.append((row_number, record))
    return parsed, errors


def format_percentage(part: int | float, whole: int | float) -> str:
    if not whole:
        return "0%"
    return f"{part / whole * 100:.2f}%"


def attendance_report(records: list[dict]) -> tuple[list[str], list[list]]:
    """
    Pivot attendance rows into one line per student.

    Each record: {date, present, students: {login_id, name, semester, section}}.
    Returns (header, rows) with P/A per date, totals and percentage.
    """
    dates = sorted({r["date"] for r in records})
    students: "OrderedDict[str, dict]" = OrderedDict()
    for r in records:
        info = r.get("students") or {}
        key = info.get("login_id") or r.get("student_id")
        entry = students.setdefault(key, {
            "login_id": key,
            "name": info.get("name", ""),
            "semester": info.get("semester", ""),
            "section": info.get("section", ""),
            "days": {},
        })
        entry["days"][r["date"]] = bool(r.get("present"))

    header = ["Student ID", "Student Name", "Semester", "Section", *dates,
              "Total Present", "Total Absent", "Attendance %"]
    rows = []
    for s in students.values():
        marks = ["P" if s["days"].get(d) else "A" for d in dates]
        total = len(s["days"])
        present = sum(1 for v in s["days"].values() if v)
        rows.append([
            s["login_id"], s["name"], s["semester"], s["section"], *marks,
            present, total - present, format_percentage(present, total),
        ])
    return header, rows
