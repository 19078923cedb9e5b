# services/invitations.py
import re
import secrets
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

import config
from errors import ConflictError, NotFound, Unauthenticated
from models.project import Project, INVITE_CODE_LENGTH
from models.project_member import ProjectMember
from services.permissions import is_member
from utils.log import get_logger

logger = get_logger(__name__)

CODE_RE = re.compile(r"^[0-9a-f]{%d}$" % INVITE_CODE_LENGTH)


def new_code() -> str:
    return secrets.token_hex(INVITE_CODE_LENGTH // 2)


def normalize_code(code: Optional[str]) -> str:
    return (code or "").strip().lower()


def is_valid_code(code: Optional[str]) -> bool:
    return bool(CODE_RE.match(code or ""))


def _code_taken(session: Session, code: str) -> bool:
    return session.exec(select(Project.id).where(Project.invite_code == code)).first() is not None


def generate(session: Session) -> str:
    """Return a fresh code not present in the store, re-rolling on collision."""
    for _ in range(config.INVITE_CODE_ATTEMPTS):
        code = new_code()
        if not _code_taken(session, code):
            return code
        logger.warning("Invitation code collision, re-rolling")
    raise ConflictError("Could not allocate a unique invitation code.")


def insert_with_code(session: Session, project: Project) -> Project:
    """
    Give ``project`` a code and insert it. The unique index is the final
    arbiter: a concurrent insert of the same code rolls back only the
    savepoint and the code is re-rolled.
    """
    for _ in range(config.INVITE_CODE_ATTEMPTS):
        project.invite_code = generate(session)
        try:
            with session.begin_nested():
                session.add(project)
                session.flush()
            return project
        except IntegrityError as exc:
            if "invite_code" not in str(exc.orig):
                raise
            logger.warning("Invitation code %s lost an insert race, re-rolling", project.invite_code)
    raise ConflictError("Could not allocate a unique invitation code.")


def redeem(session: Session, code: str, identity: Optional[int]) -> dict:
    """Join the project behind ``code``. Owners and existing members are a no-op."""
    if identity is None:
        raise Unauthenticated("Sign in to join a project.")
    code = normalize_code(code)
    if not is_valid_code(code):
        raise NotFound("No project matches this invitation code.")
    project = session.exec(select(Project).where(Project.invite_code == code)).first()
    if project is None:
        raise NotFound("No project matches this invitation code.")

    joined = False
    if project.owner_id != identity and not is_member(session, identity, project.id):
        try:
            with session.begin_nested():
                session.add(ProjectMember(project_id=project.id, user_id=identity))
                session.flush()
            joined = True
            logger.info("User %s joined project %s", identity, project.id)
        except IntegrityError as exc:
            msg = str(exc.orig)
            if "uq_project_user" not in msg and "project_members.user_id" not in msg:
                raise
            # someone else inserted the same membership first
            logger.info("User %s already joined project %s", identity, project.id)
    return {"id": project.id, "name": project.name, "color": project.color, "joined": joined}
