from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Literal

QuestionType = Literal["mcq", "short_answer", "essay", "file_upload"]
AssignmentType = Literal["assignment", "quiz", "exam", "project"]
AssignmentStatus = Literal["draft", "published", "closed", "archived"]


class QuestionCreate(BaseModel):
    question_text: str = Field(min_length=1)
    question_type: QuestionType = "mcq"
    marks: int = Field(default=1, ge=0)
    options: Optional[Dict[str, str]] = None
    correct_answer: Optional[str] = None
    explanation: Optional[str] = None
    rubric: Optional[str] = None
    time_limit_seconds: Optional[int] = None

    @model_validator(mode="after")
    def check_mcq(self):
        if self.question_type == "mcq":
            if not self.options:
                raise ValueError("MCQ questions need options")
            if self.correct_answer not in self.options:
                raise ValueError("MCQ correct_answer must be one of the option keys")
        return self


class AssignmentCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    instructions: Optional[str] = None
    assignment_type: AssignmentType = "assignment"
    subject_id: Optional[str] = None
    semester: str = Field(min_length=1)
    section: str = Field(min_length=1)
    deadline: str = Field(min_length=1)
    total_marks: int = Field(default=100, ge=0)
    duration_minutes: Optional[int] = None
    max_attempts: Optional[int] = 1
    late_submission_allowed: bool = False
    late_penalty_percentage: Optional[float] = 0
    auto_grade_mcq: bool = True
    rubric_enabled: bool = False
    questions: List[QuestionCreate] = []


class AssignmentUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    instructions: Optional[str] = None
    deadline: Optional[str] = None
    total_marks: Optional[int] = None
    duration_minutes: Optional[int] = None
    max_attempts: Optional[int] = None
    late_submission_allowed: Optional[bool] = None
    late_penalty_percentage: Optional[float] = None
    auto_grade_mcq: Optional[bool] = None


class AssignmentStatusUpdate(BaseModel):
    status: AssignmentStatus


class DraftSave(BaseModel):
    answers: Dict[str, str] = {}
    file_attachments: Optional[Dict[str, str]] = None
    started_at: Optional[str] = None


class AssignmentSubmit(DraftSave):
    auto_submit: bool = False


class SubmissionGrade(BaseModel):
    question_points: Dict[str, float] = {}
    feedback: Optional[str] = None
