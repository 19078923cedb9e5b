# models/project.py
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import CheckConstraint, DateTime
from typing import Optional, List, TYPE_CHECKING
from datetime import datetime, timezone

if TYPE_CHECKING:
    from models.user import User
    from models.task import Task
    from models.project_member import ProjectMember

INVITE_CODE_LENGTH = 12

class Project(SQLModel, table=True):
    __tablename__ = "projects"
    __table_args__ = (
        CheckConstraint("task_count >= 0", name="ck_project_task_count"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    color: str = Field(default="blue")
    # immutable once created
    invite_code: str = Field(index=True, unique=True, max_length=INVITE_CODE_LENGTH)
    owner_id: int = Field(foreign_key="users.id", index=True, ondelete="CASCADE")
    task_count: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), sa_type=DateTime(timezone=True))

    owner: "User" = Relationship(back_populates="owned_projects")
    members: List["ProjectMember"] = Relationship(
        back_populates="project",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    tasks: List["Task"] = Relationship(
        back_populates="project",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
