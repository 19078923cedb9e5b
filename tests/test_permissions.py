# tests/test_permissions.py
import pytest

import db
from errors import DenialReason, Forbidden
from models.project import Project
from services.permissions import Action, authorize


def _decide(world, who, action):
    with db.get_session() as s:
        p = s.get(Project, world["project"]["id"])
        return authorize(s, world["ids"].get(who), p, action)


@pytest.mark.parametrize("action", list(Action))
def test_owner_may_do_anything_without_membership_row(world, action):
    assert _decide(world, "alice", action)


@pytest.mark.parametrize("action", [Action.READ_PROJECT, Action.READ_TASK, Action.CREATE_TASK,
                                    Action.UPDATE_TASK, Action.DELETE_TASK])
def test_member_task_actions(world, action):
    assert _decide(world, "bob", action)


@pytest.mark.parametrize("action", [Action.UPDATE_PROJECT, Action.DELETE_PROJECT, Action.MANAGE_MEMBERS])
def test_member_denied_owner_actions(world, action):
    decision = _decide(world, "bob", action)
    assert not decision
    assert decision.reason is DenialReason.NOT_OWNER


def test_outsider_is_not_member(world):
    decision = _decide(world, "carol", Action.READ_TASK)
    assert decision.reason is DenialReason.NOT_MEMBER


def test_anonymous_is_unauthenticated(world):
    decision = _decide(world, "nobody", Action.READ_PROJECT)
    assert decision.reason is DenialReason.UNAUTHENTICATED


def test_collaborator_cannot_delete_project(api, world):
    t = world["tokens"]
    pid = world["project"]["id"]
    api.create_task(t["bob"], pid, "Draft outline")
    with pytest.raises(Forbidden) as exc:
        api.delete_project(t["bob"], pid)
    assert exc.value.reason is DenialReason.NOT_OWNER
    assert api.get_project(t["alice"], pid)["task_count"] == 1
    assert len(api.list_members(t["alice"], pid)) == 2


def test_collaborator_cannot_remove_others_but_can_leave(api, world):
    t, ids = world["tokens"], world["ids"]
    pid = world["project"]["id"]
    api.join_project(t["carol"], world["project"]["invite_code"])
    with pytest.raises(Forbidden):
        api.remove_member(t["bob"], pid, ids["carol"])
    api.remove_member(t["bob"], pid, ids["bob"])
    handles = [m["handle"] for m in api.list_members(t["alice"], pid)]
    assert handles == ["alice", "carol"]


def test_outsider_cannot_touch_tasks(api, world):
    t = world["tokens"]
    task = api.create_task(t["alice"], world["project"]["id"], "Secret")
    with pytest.raises(Forbidden) as exc:
        api.update_task(t["carol"], task["id"], {"title": "pwned"})
    assert exc.value.reason is DenialReason.NOT_MEMBER
    assert api.get_task(t["alice"], task["id"])["title"] == "Secret"
