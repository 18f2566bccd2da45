"""
Semester/section matching for class targeting.

A class targets a comma-separated list of semesters ("1st, 2nd") and of
sections ("A,B"). Semesters compare by their digits only, sections by their
upper-cased text.
"""

import re

_NON_DIGITS = re.compile(r"[^0-9]")


def normalize_semester(value) -> str:
    return _NON_DIGITS.sub("", str(value or "").strip().lower())


def normalize_section(value) -> str:
    return str(value or "").strip().upper()


def semester_criteria(value) -> set[str]:
    return {s for s in (normalize_semester(p) for p in str(value or "").split(",")) if s}


def section_criteria(value) -> set[str]:
    return {s for s in (normalize_section(p) for p in str(value or "").split(",")) if s}


def matches_class(student: dict, semesters, sections) -> bool:
    """True when the student's semester and section are both targeted."""
    student_semester = normalize_semester(student.get("semester"))
    student_section = normalize_section(student.get("section"))
    if not student_semester or not student_section:
        return False
    return (
        student_semester in semester_criteria(semesters)
        and student_section in section_criteria(sections)
    )


def filter_matching(students: list[dict], semesters, sections) -> list[dict]:
    return [s for s in students if matches_class(s, semesters, sections)]
