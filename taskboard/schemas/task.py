from pydantic import BaseModel, field_validator
from pydantic.alias_generators import to_camel
from datetime import datetime
from typing import Optional

from ..models import TaskPriority, TaskStatus

TITLE_MAX = 100
DESCRIPTION_MAX = 500


def _check_description(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if len(value) > DESCRIPTION_MAX:
        raise ValueError(f"Description cannot exceed {DESCRIPTION_MAX} characters")
    return value


class TaskCreate(BaseModel):
    """Schema for creating new tasks.

    `status` and `priority` are free strings here: unrecognized values fall
    back to the defaults when the task is created.
    """
    title: str
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("Title is required")
        if len(value) > TITLE_MAX:
            raise ValueError(f"Title cannot exceed {TITLE_MAX} characters")
        return value

    @field_validator("description")
    @classmethod
    def validate_description(cls, value: Optional[str]) -> Optional[str]:
        return _check_description(value)


class TaskUpdate(BaseModel):
    """Schema for partial task updates. Unknown keys are dropped."""
    title: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    priority: Optional[str] = None

    @field_validator("title")
    @classmethod
    def validate_title(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip()
        if not value:
            raise ValueError("Title cannot be empty")
        if len(value) > TITLE_MAX:
            raise ValueError(f"Title cannot exceed {TITLE_MAX} characters")
        return value

    @field_validator("description")
    @classmethod
    def validate_description(cls, value: Optional[str]) -> Optional[str]:
        return _check_description(value)


class TaskRead(BaseModel):
    """Task as returned by the API."""
    id: str
    title: str
    description: str
    status: TaskStatus
    priority: TaskPriority
    user_id: str
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
        alias_generator = to_camel
        populate_by_name = True


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int
    has_next_page: bool
    has_prev_page: bool

    class Config:
        alias_generator = to_camel
        populate_by_name = True
