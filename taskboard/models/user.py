from sqlmodel import SQLModel, Field, Relationship
from datetime import datetime
from typing import Optional, List, TYPE_CHECKING
from uuid import uuid4

from .timestamps import timestamp_column, utcnow

if TYPE_CHECKING:
    from .task import Task


class User(SQLModel, table=True):
    """User model for authentication and task ownership.

    `refresh_token` holds the single live refresh token; NULL means the
    user has no active session.
    """
    __tablename__ = "users"

    id: str = Field(default_factory=lambda: str(uuid4()), primary_key=True)
    name: str = Field(max_length=50)
    email: str = Field(unique=True, index=True, max_length=255)
    password: str
    refresh_token: Optional[str] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utcnow, sa_column=timestamp_column())
    updated_at: datetime = Field(default_factory=utcnow, sa_column=timestamp_column(onupdate=True))

    # Relationship to tasks
    tasks: List["Task"] = Relationship(back_populates="user")
