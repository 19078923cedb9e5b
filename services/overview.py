# services/overview.py
from typing import Dict, Optional

from sqlalchemy import func
from sqlmodel import select

import db
from errors import Unauthenticated
from models.project import Project
from models.project_member import ProjectMember
from models.task import Task
from services.projects import visible_project_ids


def overview(identity: Optional[int]) -> Dict[str, int]:
    """Dashboard counts: projects, tasks assigned to me, people I share projects with."""
    if identity is None:
        raise Unauthenticated("Sign in to see your overview.")
    with db.get_session() as s:
        ids = visible_project_ids(s, identity)
        if not ids:
            return {"projects": 0, "tasks_assigned": 0, "collaborators": 0}
        assigned = s.exec(
            select(func.count(Task.id)).where(Task.assignee_id == identity, Task.project_id.in_(ids))
        ).one()
        people = set(s.exec(select(Project.owner_id).where(Project.id.in_(ids))).all())
        people.update(s.exec(select(ProjectMember.user_id).where(ProjectMember.project_id.in_(ids))).all())
        people.discard(identity)
        return {"projects": len(ids), "tasks_assigned": int(assigned), "collaborators": len(people)}
