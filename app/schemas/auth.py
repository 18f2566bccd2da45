"""
Pydantic schemas for authentication and account security.
"""

from pydantic import BaseModel, Field
from typing import Literal

UserType = Literal["admin", "teacher", "student"]


class UserLogin(BaseModel):
    user_type: UserType
    login_id: str = Field(min_length=1)
    password: str = Field(min_length=1)


class PasswordChange(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6)


class ForgotPassword(BaseModel):
    email: str
    user_type: UserType


class PasswordReset(BaseModel):
    email: str
    user_type: UserType
    token: str
    new_password: str = Field(min_length=6)
