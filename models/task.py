# models/task.py
from sqlmodel import SQLModel, Field, Relationship
from sqlalchemy import DateTime, UniqueConstraint
from typing import Optional, TYPE_CHECKING
from datetime import date, datetime, timezone
from enum import Enum

if TYPE_CHECKING:
    from models.project import Project

class TaskStatus(str, Enum):
    BACKLOG = "backlog"
    IN_PROGRESS = "in_progress"
    DONE = "done"

class TaskPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

# Kanban column order
STATUS_ORDER = [TaskStatus.BACKLOG, TaskStatus.IN_PROGRESS, TaskStatus.DONE]

class Task(SQLModel, table=True):
    __tablename__ = "tasks"
    __table_args__ = (
        UniqueConstraint("project_id", "status", "position", name="uq_task_column_slot"),
        {"extend_existing": True},
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    project_id: int = Field(foreign_key="projects.id", index=True, ondelete="CASCADE")
    title: str
    description: Optional[str] = None
    status: TaskStatus = Field(default=TaskStatus.BACKLOG, index=True)
    priority: TaskPriority = Field(default=TaskPriority.MEDIUM)
    assignee_id: Optional[int] = Field(default=None, foreign_key="users.id", index=True, ondelete="SET NULL")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    position: int = Field(default=0)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), sa_type=DateTime(timezone=True))

    project: "Project" = Relationship(back_populates="tasks")
