"""
Pydantic models for request and response bodies.

The wire format is camelCase; requests also accept the snake_case field names.
"""
from typing import List, Optional
from datetime import datetime

from pydantic import BaseModel, ConfigDict, EmailStr, Field, ValidationInfo, computed_field, field_validator
from pydantic.alias_generators import to_camel

from todo_api import config
from todo_api.models import DEFAULT_PRIORITY, priority_label, to_utc


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


def _normalize_email(value):
    if isinstance(value, str):
        value = value.strip().lower()
        if len(value) > config.EMAIL_MAX_LENGTH:
            raise ValueError(f"Email cannot exceed {config.EMAIL_MAX_LENGTH} characters")
    return value


# --- Authentication ---

class RegisterRequest(CamelModel):
    email: EmailStr
    password: str = Field(min_length=config.PASSWORD_MIN_LENGTH, max_length=config.PASSWORD_MAX_LENGTH)
    confirm_password: str

    @field_validator("email", mode="before")
    @classmethod
    def normalize_email(cls, value):
        return _normalize_email(value)

    @field_validator("confirm_password")
    @classmethod
    def passwords_match(cls, value, info: ValidationInfo):
        # Only compare once the password itself passed its own checks.
        if "password" in info.data and value != info.data["password"]:
            raise ValueError("Passwords do not match")
        return value


class LoginRequest(CamelModel):
    # No format rules here: a malformed email is simply an unknown account.
    email: str
    password: str


class UserInfo(CamelModel):
    id: int
    email: str


class UserOut(CamelModel):
    id: int
    email: str
    created_at: datetime


class AuthResponse(CamelModel):
    token: str
    expires_at: datetime
    user: UserInfo


# --- Tasks ---

class TaskCreate(CamelModel):
    title: str = Field(max_length=config.TITLE_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=config.DESCRIPTION_MAX_LENGTH)
    due_date: Optional[datetime] = None
    priority: int = Field(default=DEFAULT_PRIORITY, ge=1, le=3)

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value):
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("Title is required")
        return value

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value):
        return to_utc(value)


class TaskUpdate(CamelModel):
    """
    Partial update: only fields present in the request are applied.
    An explicit null clears ``description`` or ``dueDate``; ``title``,
    ``priority`` and ``isCompleted`` cannot be null.
    """
    title: Optional[str] = Field(default=None, max_length=config.TITLE_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=config.DESCRIPTION_MAX_LENGTH)
    due_date: Optional[datetime] = None
    priority: Optional[int] = Field(default=None, ge=1, le=3)
    is_completed: Optional[bool] = None

    @field_validator("title", mode="before")
    @classmethod
    def strip_title(cls, value):
        if value is None:
            raise ValueError("Title cannot be null")
        if isinstance(value, str):
            value = value.strip()
            if not value:
                raise ValueError("Title cannot be empty")
        return value

    @field_validator("description", mode="before")
    @classmethod
    def strip_description(cls, value):
        if isinstance(value, str):
            return value.strip() or None
        return value

    @field_validator("due_date")
    @classmethod
    def normalize_due_date(cls, value):
        return to_utc(value)

    @field_validator("priority", "is_completed", mode="before")
    @classmethod
    def reject_null(cls, value):
        if value is None:
            raise ValueError("Field cannot be null")
        return value


class TaskRead(CamelModel):
    id: int
    title: str
    description: Optional[str]
    due_date: Optional[datetime]
    priority: int
    is_completed: bool
    created_at: datetime
    updated_at: Optional[datetime]

    @computed_field(alias="priorityLabel")
    @property
    def priority_label(self) -> str:
        return priority_label(self.priority)


class TaskListResponse(CamelModel):
    tasks: List[TaskRead]
    total: int
    completed: int
    pending: int
