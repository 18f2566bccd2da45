"""
Pydantic schemas for attendance and marks workflows.
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import date


# ---- Attendance ----
class AttendanceRecord(BaseModel):
    student_id: str
    present: bool


class AttendanceMark(BaseModel):
    date: date
    records: List[AttendanceRecord]


# ---- Marks ----
class MarksConfig(BaseModel):
    subject_id: str
    semester: str
    section: str
    max_internal_marks: int = Field(default=50, ge=0)
    max_practical_marks: int = Field(default=25, ge=0)
    max_assignment_marks: int = Field(default=25, ge=0)


class MarkEntry(BaseModel):
    student_id: str
    internal_marks: float = Field(default=0, ge=0)
    practical_marks: float = Field(default=0, ge=0)
    assignment_marks: float = Field(default=0, ge=0)


class MarksSubmit(BaseModel):
    subject_id: str
    semester: str
    section: str
    entries: List[MarkEntry]
    reason: Optional[str] = None
