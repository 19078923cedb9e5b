# services/accounts.py
from typing import Dict, Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import select

import db
from auth import TokenSigner, hash_password, verify_password
from errors import TransactionFailure, Unauthenticated, ValidationError
from models.project import Project
from models.project_member import ProjectMember
from models.user import User
from services.projects import purge_project, unassign
from utils.log import get_logger

logger = get_logger(__name__)


def normalize_handle(handle: Optional[str]) -> str:
    return (handle or "").strip().lower()


def user_to_dict(u: User) -> Dict:
    return {"id": u.id, "handle": u.handle, "created_at": u.created_at}


def register(handle: str, password: str) -> Dict:
    handle = normalize_handle(handle)
    if not handle:
        raise ValidationError("Please choose a handle.", field="handle")
    if not password:
        raise ValidationError("Please choose a password.", field="password")
    try:
        with db.transaction() as s:
            if s.exec(select(User.id).where(User.handle == handle)).first() is not None:
                raise ValidationError("That handle is already taken.", field="handle")
            u = User(handle=handle, password_hash=hash_password(password))
            s.add(u)
            s.flush()
            logger.info("Registered user %s (%s)", u.id, handle)
            return user_to_dict(u)
    except TransactionFailure as exc:
        if isinstance(exc.__cause__, IntegrityError):
            raise ValidationError("That handle is already taken.", field="handle") from exc
        raise


def login(handle: str, password: str, signer: TokenSigner) -> str:
    with db.get_session() as s:
        u = s.exec(select(User).where(User.handle == normalize_handle(handle))).first()
        if u is None or not verify_password(password or "", u.password_hash):
            logger.warning("Failed login for %r", normalize_handle(handle))
            raise Unauthenticated("Wrong handle or password.")
        return signer.issue(u.id)


def resolve_identity(token: Optional[str], signer: TokenSigner) -> int:
    """Verify the token and make sure its user still exists."""
    user_id = signer.verify(token)
    with db.get_session() as s:
        if s.get(User, user_id) is None:
            raise Unauthenticated("This account no longer exists.")
    return user_id


def delete_account(identity: int) -> None:
    """Remove the user with every project they own, their memberships and assignments."""
    with db.transaction() as s:
        u = s.get(User, identity)
        if u is None:
            raise Unauthenticated("This account no longer exists.")
        owned = s.exec(select(Project).where(Project.owner_id == identity).with_for_update()).all()
        for p in owned:
            purge_project(s, p)
        for m in s.exec(select(ProjectMember).where(ProjectMember.user_id == identity)).all():
            s.delete(m)
        unassign(s, identity)
        s.delete(u)
        s.flush()
        logger.info("Deleted account %s and %d owned project(s)", identity, len(owned))
