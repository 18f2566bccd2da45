"""
Pydantic schemas for live classes and calendars.
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Literal
from datetime import date, time

Platform = Literal["zoom", "google_meet", "microsoft_teams", "other"]
ClassStatus = Literal["scheduled", "live", "completed", "cancelled"]
EventType = Literal["task", "live_class", "assignment", "topic", "meeting", "reminder", "personal"]
EventStatus = Literal["pending", "in_progress", "completed", "cancelled"]
Priority = Literal["low", "medium", "high", "urgent"]


# ---- Live classes ----
class LiveClassCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    subject_id: Optional[str] = None
    class_date: date
    start_time: time
    end_time: time
    platform: Platform = "google_meet"
    meeting_link: str = Field(min_length=1)
    meeting_id: Optional[str] = None
    meeting_password: Optional[str] = None
    semester: str = Field(min_length=1)
    section: str = Field(min_length=1)
    max_participants: Optional[int] = 100
    notes: Optional[str] = None

    @model_validator(mode="after")
    def check_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self


class LiveClassUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    subject_id: Optional[str] = None
    class_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    platform: Optional[Platform] = None
    meeting_link: Optional[str] = None
    meeting_id: Optional[str] = None
    meeting_password: Optional[str] = None
    semester: Optional[str] = None
    section: Optional[str] = None
    max_participants: Optional[int] = None
    recording_link: Optional[str] = None
    notes: Optional[str] = None


class LiveClassStatusUpdate(BaseModel):
    status: ClassStatus


# ---- Calendar ----
class EventCreate(BaseModel):
    title: str = Field(min_length=1)
    description: Optional[str] = None
    event_type: EventType = "task"
    start_date: str
    end_date: Optional[str] = None
    all_day: bool = False
    status: EventStatus = "pending"
    priority: Priority = "medium"
    color: Optional[str] = None
    location: Optional[str] = None
    attendees: List[str] = []
    reminder_minutes: Optional[int] = 15
    recurring_pattern: Optional[str] = None
    recurring_end_date: Optional[str] = None
    subject_id: Optional[str] = None
    notes: Optional[str] = None


class EventUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    event_type: Optional[EventType] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    all_day: Optional[bool] = None
    status: Optional[EventStatus] = None
    priority: Optional[Priority] = None
    color: Optional[str] = None
    location: Optional[str] = None
    reminder_minutes: Optional[int] = None
    notes: Optional[str] = None


class EventStatusUpdate(BaseModel):
    status: EventStatus
