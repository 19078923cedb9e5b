# services/projects.py
from typing import Dict, List, Optional

from sqlalchemy import or_
from sqlmodel import Session, select

import db
from errors import NotFound, Unauthenticated, ValidationError
from models.project import Project
from models.project_member import ProjectMember
from models.task import Task
from models.user import User
from services import invitations
from services.permissions import Action, is_member, require
from services.tasks import lock_project
from utils.log import get_logger

logger = get_logger(__name__)


def project_to_dict(p: Project) -> Dict:
    return {
        "id": p.id,
        "name": p.name,
        "color": p.color,
        "invite_code": p.invite_code,
        "owner_id": p.owner_id,
        "task_count": p.task_count,
        "created_at": p.created_at,
    }


def _clean_name(name) -> str:
    name = str(name or "").strip()
    if not name:
        raise ValidationError("Please enter a project name.", field="name")
    return name


def _clean_color(color) -> str:
    color = str(color or "").strip().lower()
    if not color:
        raise ValidationError("Please pick a color.", field="color")
    return color


def create_project(identity: Optional[int], name: str, color: str = "blue") -> Dict:
    if identity is None:
        raise Unauthenticated("Sign in to create a project.")
    with db.transaction() as s:
        p = Project(name=_clean_name(name), color=_clean_color(color), owner_id=identity)
        invitations.insert_with_code(s, p)
        s.refresh(p)
        logger.info("User %s created project %s", identity, p.id)
        return project_to_dict(p)


def join_project(identity: Optional[int], code: str) -> Dict:
    with db.transaction() as s:
        return invitations.redeem(s, code, identity)


def update_project(identity: Optional[int], project_id: int, name=None, color=None) -> Dict:
    """Rename/recolor. The invitation code is never touched here."""
    with db.transaction() as s:
        p = lock_project(s, project_id)
        require(s, identity, p, Action.UPDATE_PROJECT)
        if name is not None:
            p.name = _clean_name(name)
        if color is not None:
            p.color = _clean_color(color)
        s.add(p)
        s.flush()
        return project_to_dict(p)


def _purge_tasks(session: Session, project_id: int) -> None:
    for t in session.exec(select(Task).where(Task.project_id == project_id)).all():
        session.delete(t)
    session.flush()


def _purge_memberships(session: Session, project_id: int) -> None:
    for m in session.exec(select(ProjectMember).where(ProjectMember.project_id == project_id)).all():
        session.delete(m)
    session.flush()


def unassign(session: Session, user_id: int, project_id: Optional[int] = None) -> None:
    q = select(Task).where(Task.assignee_id == user_id)
    if project_id is not None:
        q = q.where(Task.project_id == project_id)
    for t in session.exec(q).all():
        t.assignee_id = None
        session.add(t)
    session.flush()


def purge_project(session: Session, project: Project) -> None:
    """Delete tasks, memberships and the project row in the caller's transaction."""
    _purge_tasks(session, project.id)
    _purge_memberships(session, project.id)
    session.delete(project)
    session.flush()


def delete_project(identity: Optional[int], project_id: int) -> None:
    with db.transaction() as s:
        p = lock_project(s, project_id)
        require(s, identity, p, Action.DELETE_PROJECT)
        purge_project(s, p)
        logger.info("User %s deleted project %s", identity, project_id)


def get_project(identity: Optional[int], project_id: int) -> Dict:
    with db.get_session() as s:
        p = s.get(Project, project_id)
        if p is None:
            raise NotFound(f"Project {project_id} not found.")
        require(s, identity, p, Action.READ_PROJECT)
        return project_to_dict(p)


def visible_project_ids(session: Session, user_id: int) -> List[int]:
    joined = select(ProjectMember.project_id).where(ProjectMember.user_id == user_id)
    rows = session.exec(
        select(Project.id).where(or_(Project.owner_id == user_id, Project.id.in_(joined)))
    ).all()
    return list(rows)


def list_projects(identity: Optional[int]) -> List[Dict]:
    """Projects the user owns or has joined, newest first."""
    if identity is None:
        raise Unauthenticated("Sign in to see your projects.")
    with db.get_session() as s:
        ids = visible_project_ids(s, identity)
        if not ids:
            return []
        rows = s.exec(
            select(Project).where(Project.id.in_(ids)).order_by(Project.created_at.desc(), Project.id.desc())
        ).all()
        return [project_to_dict(p) for p in rows]


def list_members(identity: Optional[int], project_id: int) -> List[Dict]:
    """Owner first, then collaborators by join time."""
    with db.get_session() as s:
        p = s.get(Project, project_id)
        if p is None:
            raise NotFound(f"Project {project_id} not found.")
        require(s, identity, p, Action.READ_PROJECT)
        owner = s.get(User, p.owner_id)
        out = [{"user_id": owner.id, "handle": owner.handle, "role": "owner", "joined_at": p.created_at}]
        rows = s.exec(
            select(ProjectMember, User)
            .join(User, ProjectMember.user_id == User.id)
            .where(ProjectMember.project_id == project_id)
            .order_by(ProjectMember.joined_at, ProjectMember.id)
        ).all()
        out.extend({"user_id": u.id, "handle": u.handle, "role": "member", "joined_at": m.joined_at}
                   for m, u in rows)
        return out


def remove_member(identity: Optional[int], project_id: int, user_id: int) -> None:
    """
    Owners may remove anyone; a collaborator may only remove themselves.
    Tasks assigned to the leaving user in this project are unassigned.
    """
    with db.transaction() as s:
        p = lock_project(s, project_id)
        leaving = identity is not None and identity == user_id
        require(s, identity, p, Action.READ_PROJECT if leaving else Action.MANAGE_MEMBERS)
        if p.owner_id == user_id:
            raise ValidationError("The owner cannot leave their own project.", field="user_id")
        if not is_member(s, user_id, project_id):
            raise NotFound("That user is not a member of this project.")
        m = s.exec(select(ProjectMember).where(ProjectMember.project_id == project_id,
                                               ProjectMember.user_id == user_id)).one()
        s.delete(m)
        unassign(s, user_id, project_id)
        logger.info("User %s removed user %s from project %s", identity, user_id, project_id)
