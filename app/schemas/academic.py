"""
Pydantic schemas for academic structure: departments, courses, subjects,
topics, materials and enrollments.
"""

from pydantic import BaseModel, Field
from typing import Optional, List, Literal

TopicStatus = Literal["pending", "in_progress", "completed"]


# ---- Department ----
class DepartmentCreate(BaseModel):
    name: str = Field(min_length=1)
    head_name: Optional[str] = None
    established_year: Optional[int] = None


class DepartmentUpdate(BaseModel):
    name: Optional[str] = None
    head_name: Optional[str] = None
    established_year: Optional[int] = None


# ---- Course ----
class CourseCreate(BaseModel):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    semester: str
    department_id: Optional[str] = None
    credits: Optional[int] = None
    duration: Optional[str] = None
    status: str = "active"


class CourseUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    semester: Optional[str] = None
    department_id: Optional[str] = None
    credits: Optional[int] = None
    duration: Optional[str] = None
    status: Optional[str] = None


class TeacherCourseAssign(BaseModel):
    teacher_id: str
    course_id: str


class SubjectCourseAssign(BaseModel):
    subject_id: str
    course_id: str
    semester: str
    section: str
    academic_year: Optional[str] = None


# ---- Subject ----
class SubjectCreate(BaseModel):
    name: str = Field(min_length=1)
    code: str = Field(min_length=1)
    description: Optional[str] = None
    syllabus_url: Optional[str] = None


class SubjectUpdate(BaseModel):
    name: Optional[str] = None
    code: Optional[str] = None
    description: Optional[str] = None
    syllabus_url: Optional[str] = None


# ---- Topics ----
class TopicCreate(BaseModel):
    topic_name: str = Field(min_length=1)
    description: Optional[str] = None
    week_number: Optional[int] = 1
    estimated_hours: Optional[int] = 2
    status: TopicStatus = "pending"


class TopicUpdate(BaseModel):
    topic_name: Optional[str] = None
    description: Optional[str] = None
    week_number: Optional[int] = None
    estimated_hours: Optional[int] = None
    status: Optional[TopicStatus] = None


class BulkTopicEntry(BaseModel):
    topic_name: str = ""
    description: Optional[str] = None
    week_number: Optional[int] = None
    estimated_hours: Optional[int] = None
    status: TopicStatus = "pending"


class BulkTopics(BaseModel):
    topics: List[BulkTopicEntry]


# ---- Materials ----
class MaterialLink(BaseModel):
    title: str = Field(min_length=1)
    file_url: str = Field(min_length=1)
    description: Optional[str] = None


# ---- Enrollment ----
class SubjectEnrollment(BaseModel):
    student_ids: List[str]
