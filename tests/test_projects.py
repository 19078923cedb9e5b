# tests/test_projects.py
import pytest
from sqlalchemy.exc import OperationalError
from sqlmodel import select

import db
from errors import Forbidden, NotFound, TransactionFailure, Unauthenticated, ValidationError
from models.project_member import ProjectMember
from models.task import Task
from services import projects


def _rows(model, project_id):
    with db.get_session() as s:
        return s.exec(select(model).where(model.project_id == project_id)).all()


def test_create_project_returns_code_and_zero_count(api, world):
    p = world["project"]
    assert p["name"] == "Launch"
    assert p["color"] == "blue"
    assert p["task_count"] == 0
    assert p["owner_id"] == world["ids"]["alice"]


def test_create_project_validates(api, world):
    with pytest.raises(ValidationError):
        api.create_project(world["tokens"]["alice"], "  ", "red")


def test_list_projects_owned_and_joined(api, world):
    t = world["tokens"]
    api.create_project(t["bob"], "Bob's own", "green")
    assert [p["name"] for p in api.list_projects(t["bob"])] == ["Bob's own", "Launch"]
    assert [p["name"] for p in api.list_projects(t["alice"])] == ["Launch"]


def test_update_project_keeps_invite_code(api, world):
    t = world["tokens"]
    pid = world["project"]["id"]
    updated = api.update_project(t["alice"], pid, name="Launch v2", color="Purple")
    assert updated["name"] == "Launch v2"
    assert updated["color"] == "purple"
    assert updated["invite_code"] == world["project"]["invite_code"]
    with pytest.raises(Forbidden):
        api.update_project(t["bob"], pid, name="Mine now")


def test_delete_project_cascades(api, world):
    t = world["tokens"]
    pid = world["project"]["id"]
    api.create_task(t["bob"], pid, "one")
    api.create_task(t["alice"], pid, "two")
    api.delete_project(t["alice"], pid)
    assert _rows(Task, pid) == []
    assert _rows(ProjectMember, pid) == []
    with pytest.raises(NotFound):
        api.get_project(t["alice"], pid)
    assert api.list_projects(t["bob"]) == []


def test_failed_delete_leaves_everything(api, world, monkeypatch):
    t = world["tokens"]
    pid = world["project"]["id"]
    api.create_task(t["bob"], pid, "one")
    api.create_task(t["alice"], pid, "two")

    def boom(session, project_id):
        raise OperationalError("DELETE FROM project_members", {}, Exception("disk I/O error"))

    # tasks are already gone inside the transaction when this fires
    monkeypatch.setattr(projects, "_purge_memberships", boom)
    with pytest.raises(TransactionFailure) as exc:
        api.delete_project(t["alice"], pid)
    assert exc.value.retryable

    assert len(_rows(Task, pid)) == 2
    assert len(_rows(ProjectMember, pid)) == 1
    assert api.get_project(t["alice"], pid)["task_count"] == 2


def test_delete_account_cascades(api, world):
    t, ids = world["tokens"], world["ids"]
    pid = world["project"]["id"]
    bob_project = api.create_project(t["bob"], "Side", "red")
    api.join_project(t["alice"], bob_project["invite_code"])
    task = api.create_task(t["alice"], pid, "Assigned to bob", assignee_id=ids["bob"])

    api.delete_account(t["bob"])

    assert [p["name"] for p in api.list_projects(t["alice"])] == ["Launch"]
    assert _rows(ProjectMember, pid) == []
    assert _rows(Task, bob_project["id"]) == []
    assert api.get_task(t["alice"], task["id"])["assignee_id"] is None
    with pytest.raises(Unauthenticated):
        api.list_projects(t["bob"])
    with pytest.raises(Unauthenticated):
        api.login("bob", "pw-bob")


def test_owner_cannot_leave(api, world):
    t, ids = world["tokens"], world["ids"]
    with pytest.raises(ValidationError):
        api.remove_member(t["alice"], world["project"]["id"], ids["alice"])


def test_remove_unknown_member(api, world):
    t, ids = world["tokens"], world["ids"]
    with pytest.raises(NotFound):
        api.remove_member(t["alice"], world["project"]["id"], ids["carol"])


def test_logout_validates_token(api, world):
    api.logout(world["tokens"]["alice"])
    with pytest.raises(Unauthenticated):
        api.logout("bogus")
