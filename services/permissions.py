# services/permissions.py
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from sqlmodel import Session, select

from errors import DenialReason, Forbidden, Unauthenticated
from models.project import Project
from models.project_member import ProjectMember
from utils.log import get_logger

logger = get_logger(__name__)


class Action(str, Enum):
    READ_PROJECT = "read_project"
    UPDATE_PROJECT = "update_project"
    DELETE_PROJECT = "delete_project"
    MANAGE_MEMBERS = "manage_members"
    READ_TASK = "read_task"
    CREATE_TASK = "create_task"
    UPDATE_TASK = "update_task"
    DELETE_TASK = "delete_task"


OWNER_ONLY = {Action.UPDATE_PROJECT, Action.DELETE_PROJECT, Action.MANAGE_MEMBERS}


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: Optional[DenialReason] = None

    def __bool__(self) -> bool:
        return self.allowed


ALLOWED = Decision(True)


def is_member(session: Session, user_id: int, project_id: int) -> bool:
    row = session.exec(
        select(ProjectMember.id).where(
            ProjectMember.project_id == project_id,
            ProjectMember.user_id == user_id,
        )
    ).first()
    return row is not None


def is_participant(session: Session, user_id: Optional[int], project: Project) -> bool:
    """Owner or collaborator. Owners have no membership row."""
    if user_id is None:
        return False
    return project.owner_id == user_id or is_member(session, user_id, project.id)


def authorize(session: Session, identity: Optional[int], project: Project, action: Action) -> Decision:
    if identity is None:
        return Decision(False, DenialReason.UNAUTHENTICATED)
    if project.owner_id == identity:
        return ALLOWED
    if action in OWNER_ONLY:
        return Decision(False, DenialReason.NOT_OWNER)
    if is_member(session, identity, project.id):
        return ALLOWED
    return Decision(False, DenialReason.NOT_MEMBER)


def require(session: Session, identity: Optional[int], project: Project, action: Action) -> None:
    decision = authorize(session, identity, project, action)
    if decision:
        return
    logger.warning("Denied %s on project %s for user %s: %s",
                   action.value, project.id, identity, decision.reason.value)
    if decision.reason is DenialReason.UNAUTHENTICATED:
        raise Unauthenticated("Sign in to continue.")
    raise Forbidden(decision.reason)
