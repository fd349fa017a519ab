"""User profile model for SQLModel."""
from sqlmodel import SQLModel, Field
from datetime import datetime
from typing import Optional
import uuid


class User(SQLModel, table=True):
    """Profile of a volunteer, organization or admin account."""
    __tablename__ = "users"

    id: str = Field(
        default_factory=lambda: str(uuid.uuid4()),
        primary_key=True,
        index=True,
        max_length=64
    )
    email: str = Field(unique=True, index=True, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=255)
    role: str = Field(default="volunteer", max_length=32)  # volunteer, organization, admin
    created_at: datetime = Field(default_factory=datetime.utcnow)
