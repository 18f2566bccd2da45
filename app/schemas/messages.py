from pydantic import BaseModel, Field, model_validator
from typing import Optional, Literal

RecipientType = Literal["teacher", "student", "admin", "class", "semester", "section"]
MessageType = Literal["text", "image", "pdf", "link", "file"]

GROUP_RECIPIENTS = ("class", "semester", "section")


class RecipientFilters(BaseModel):
    semester: Optional[str] = None
    section: Optional[str] = None


class MessageCreate(BaseModel):
    recipient_type: RecipientType
    recipient_id: Optional[str] = None
    recipient_filters: Optional[RecipientFilters] = None
    subject: Optional[str] = None
    content: str = Field(min_length=1)
    message_type: MessageType = "text"
    file_url: Optional[str] = None
    file_name: Optional[str] = None
    file_size: Optional[int] = None
    scheduled_at: Optional[str] = None
    is_important: bool = False

    @model_validator(mode="after")
    def check_recipient(self):
        if self.recipient_type in GROUP_RECIPIENTS:
            if self.recipient_type != "class" and not self.recipient_filters:
                raise ValueError(f"recipient_filters required for {self.recipient_type} messages")
        elif not self.recipient_id:
            raise ValueError("recipient_id required for direct messages")
        return self
