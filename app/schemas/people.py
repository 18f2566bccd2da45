"""
Pydantic schemas for the admin-managed directory: teachers, students,
email settings.
"""

from pydantic import BaseModel, Field
from typing import Optional, List


# ---- Teachers ----
class TeacherCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    mobile: str = ""
    department_id: Optional[str] = None
    qualification: Optional[str] = None
    experience: Optional[str] = None
    subjects: List[str] = []
    password: Optional[str] = None


class TeacherUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    department_id: Optional[str] = None
    qualification: Optional[str] = None
    experience: Optional[str] = None
    subjects: Optional[List[str]] = None
    password: Optional[str] = None


# ---- Students ----
class StudentCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=3)
    mobile: str = ""
    department_id: Optional[str] = None
    semester: str = Field(min_length=1)
    section: str = Field(min_length=1)
    password: Optional[str] = None


class StudentUpdate(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    mobile: Optional[str] = None
    department_id: Optional[str] = None
    semester: Optional[str] = None
    section: Optional[str] = None
    password: Optional[str] = None


# ---- Email settings ----
class EmailSettingsUpdate(BaseModel):
    from_email: Optional[str] = None
    from_name: Optional[str] = None
    use_smtp: Optional[bool] = None
    smtp_host: Optional[str] = None
    smtp_port: Optional[int] = None
    smtp_user: Optional[str] = None
    smtp_password: Optional[str] = None
    resend_api_key: Optional[str] = None
