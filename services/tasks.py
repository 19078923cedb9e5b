# services/tasks.py
"""
Task mutations. Every write runs in one ``db.transaction()``: the project row
is locked first so column ordering and ``task_count`` are re-derived from the
store, never trusted from the client.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlmodel import Session, select

import db
from errors import NotFound, ValidationError
from models.project import Project
from models.task import Task, TaskPriority, TaskStatus, STATUS_ORDER
from services.permissions import Action, is_participant, require
from utils.coerce import coerce_priority, coerce_status, coerce_title, parse_date
from utils.log import get_logger

logger = get_logger(__name__)

UPDATABLE_FIELDS = ("title", "description", "priority", "assignee_id",
                    "start_date", "end_date", "status")


def task_to_dict(t: Task) -> Dict:
    return {
        "id": t.id,
        "project_id": t.project_id,
        "title": t.title,
        "description": t.description,
        "status": TaskStatus(t.status).value,
        "priority": TaskPriority(t.priority).value,
        "assignee_id": t.assignee_id,
        "start_date": t.start_date,
        "end_date": t.end_date,
        "position": t.position,
        "updated_at": t.updated_at,
    }


# ---- locking / ordering helpers ----
def lock_project(session: Session, project_id: int) -> Project:
    project = session.exec(
        select(Project).where(Project.id == project_id).with_for_update()
    ).first()
    if project is None:
        raise NotFound(f"Project {project_id} not found.")
    return project


def _load_task(session: Session, task_id: int) -> Task:
    t = session.get(Task, task_id)
    if t is None:
        raise NotFound(f"Task {task_id} not found.")
    return t


def _column(session: Session, project_id: int, status: TaskStatus, exclude_id: Optional[int] = None) -> List[Task]:
    q = select(Task).where(Task.project_id == project_id, Task.status == status)
    if exclude_id is not None:
        q = q.where(Task.id != exclude_id)
    return list(session.exec(q.order_by(Task.position, Task.id)).all())


def _renumber(session: Session, *columns: List[Task]) -> None:
    # Two passes so no intermediate UPDATE collides on uq_task_column_slot:
    # park everyone on distinct negative slots, then assign 0..n-1.
    for col in columns:
        for i, t in enumerate(col):
            t.position = -(i + 1)
    session.flush()
    for col in columns:
        for i, t in enumerate(col):
            t.position = i
    session.flush()


def _place(session: Session, task: Task, status: TaskStatus, position: Optional[int]) -> None:
    """Move ``task`` into ``status`` at ``position`` (clamped; None = end)."""
    old_status = TaskStatus(task.status)
    target = _column(session, task.project_id, status, exclude_id=task.id)
    columns = [target]
    if old_status != status:
        columns.insert(0, _column(session, task.project_id, old_status, exclude_id=task.id))
    if position is None:
        position = len(target)
    try:
        position = int(position)
    except (TypeError, ValueError):
        raise ValidationError("Position must be a whole number.", field="position")
    position = max(0, min(position, len(target)))
    target.insert(position, task)
    # no queries past this point until _renumber parks the rows
    task.status = status
    _renumber(session, *columns)


def count_tasks(session: Session, project_id: int) -> int:
    return session.exec(select(func.count(Task.id)).where(Task.project_id == project_id)).one()


# ---- validation ----
def _validate_fields(session: Session, project: Project, task: Optional[Task], fields: Dict) -> Dict:
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown task fields: {', '.join(sorted(unknown))}.")
    clean = {}
    if "title" in fields:
        clean["title"] = coerce_title(fields["title"])
    if "description" in fields:
        desc = fields["description"]
        clean["description"] = str(desc).strip() if desc is not None else None
    if "priority" in fields:
        clean["priority"] = coerce_priority(fields["priority"])
    if "status" in fields:
        clean["status"] = coerce_status(fields["status"])
    if "start_date" in fields:
        clean["start_date"] = parse_date(fields["start_date"], "start_date")
    if "end_date" in fields:
        clean["end_date"] = parse_date(fields["end_date"], "end_date")
    if "assignee_id" in fields:
        assignee = fields["assignee_id"]
        if assignee is not None:
            try:
                assignee = int(assignee)
            except (TypeError, ValueError):
                raise ValidationError("Assignee must be a user id.", field="assignee_id")
            if not is_participant(session, assignee, project):
                raise ValidationError("Assignee is not a member of this project.", field="assignee_id")
        clean["assignee_id"] = assignee

    start = clean.get("start_date", task.start_date if task else None)
    end = clean.get("end_date", task.end_date if task else None)
    if start and end and end < start:
        raise ValidationError("End date must be on or after the start date.", field="end_date")
    return clean


# ---- operations ----
def create_task(identity: Optional[int], project_id: int, title: str,
                position: Optional[int] = None, **fields) -> Dict:
    with db.transaction() as s:
        project = lock_project(s, project_id)
        require(s, identity, project, Action.CREATE_TASK)
        clean = _validate_fields(s, project, None, dict(fields, title=title))
        status = clean.pop("status", TaskStatus.BACKLOG)

        column = _column(s, project.id, status)
        next_slot = (column[-1].position + 1) if column else 0
        t = Task(project_id=project.id, status=status, position=next_slot, **clean)
        s.add(t)
        s.flush()
        if position is not None:
            _place(s, t, status, position)

        project.task_count = project.task_count + 1
        s.add(project)
        s.flush()
        s.refresh(t)
        logger.info("User %s created task %s in project %s", identity, t.id, project.id)
        return task_to_dict(t)


def update_task(identity: Optional[int], task_id: int, fields: Dict) -> Dict:
    """Partial update: fields not present in ``fields`` are left as stored."""
    with db.transaction() as s:
        t = _load_task(s, task_id)
        project = lock_project(s, t.project_id)
        # the row may have moved while we waited for the lock
        s.refresh(t)
        require(s, identity, project, Action.UPDATE_TASK)
        clean = _validate_fields(s, project, t, fields)

        new_status = clean.pop("status", None)
        for name, value in clean.items():
            setattr(t, name, value)
        if new_status is not None and new_status != TaskStatus(t.status):
            _place(s, t, new_status, None)
        t.updated_at = datetime.now(timezone.utc)
        s.add(t)
        s.flush()
        logger.info("User %s updated task %s: %s", identity, t.id, ", ".join(sorted(fields)) or "-")
        return task_to_dict(t)


def move_task(identity: Optional[int], task_id: int, status, position: Optional[int] = None) -> Dict:
    with db.transaction() as s:
        t = _load_task(s, task_id)
        project = lock_project(s, t.project_id)
        require(s, identity, project, Action.UPDATE_TASK)
        target = coerce_status(status)
        # the row may have moved while we waited for the lock
        s.refresh(t)
        _place(s, t, target, position)
        t.updated_at = datetime.now(timezone.utc)
        s.add(t)
        s.flush()
        logger.info("User %s moved task %s to %s[%s]", identity, t.id, target.value, t.position)
        return task_to_dict(t)


def delete_task(identity: Optional[int], task_id: int) -> None:
    with db.transaction() as s:
        t = _load_task(s, task_id)
        project = lock_project(s, t.project_id)
        s.refresh(t)
        require(s, identity, project, Action.DELETE_TASK)
        status = TaskStatus(t.status)
        s.delete(t)
        s.flush()
        _renumber(s, _column(s, project.id, status))
        project.task_count = project.task_count - 1
        s.add(project)
        logger.info("User %s deleted task %s from project %s", identity, task_id, project.id)


def get_task(identity: Optional[int], task_id: int) -> Dict:
    with db.get_session() as s:
        t = _load_task(s, task_id)
        require(s, identity, s.get(Project, t.project_id), Action.READ_TASK)
        return task_to_dict(t)


def list_tasks(identity: Optional[int], project_id: int, status=None) -> List[Dict]:
    """Return plain dicts ordered by Kanban column, then position."""
    with db.get_session() as s:
        project = s.get(Project, project_id)
        if project is None:
            raise NotFound(f"Project {project_id} not found.")
        require(s, identity, project, Action.READ_TASK)
        q = select(Task).where(Task.project_id == project_id)
        if status is not None:
            q = q.where(Task.status == coerce_status(status))
        rows = s.exec(q).all()
        rows = sorted(rows, key=lambda t: (STATUS_ORDER.index(TaskStatus(t.status)), t.position, t.id))
        return [task_to_dict(t) for t in rows]


def recount_tasks(project_id: int) -> int:
    """Resynchronize the cached ``task_count`` with the stored rows."""
    with db.transaction() as s:
        project = lock_project(s, project_id)
        actual = count_tasks(s, project_id)
        if project.task_count != actual:
            logger.warning("Project %s task_count drifted (%s != %s)", project_id, project.task_count, actual)
            project.task_count = actual
            s.add(project)
        return actual
