# tests/test_tasks.py
import threading
from datetime import date, timedelta

import pytest
from sqlalchemy import update

from errors import NotFound, ValidationError
from models.task import Task, TaskStatus
from services import tasks as task_service
from services.tasks import recount_tasks


@pytest.fixture
def ctx(world):
    return world["tokens"], world["ids"], world["project"]["id"]


def _positions(api, token, pid, status):
    return [(t["title"], t["position"]) for t in api.list_tasks(token, pid, status)]


def test_create_task_defaults_and_count(api, ctx):
    t, ids, pid = ctx
    before = api.get_project(t["alice"], pid)["task_count"]
    task = api.create_task(t["bob"], pid, "Draft outline")
    assert task["status"] == "backlog"
    assert task["priority"] == "medium"
    assert task["assignee_id"] is None
    titles = [x["title"] for x in api.list_tasks(t["alice"], pid)]
    assert titles.count("Draft outline") == 1
    assert api.get_project(t["alice"], pid)["task_count"] == before + 1


def test_create_requires_title(api, ctx):
    t, ids, pid = ctx
    with pytest.raises(ValidationError):
        api.create_task(t["alice"], pid, "   ")
    assert api.get_project(t["alice"], pid)["task_count"] == 0


def test_create_appends_to_column(api, ctx):
    t, ids, pid = ctx
    for title in ("a", "b", "c"):
        api.create_task(t["alice"], pid, title)
    api.create_task(t["alice"], pid, "first", position=0)
    assert _positions(api, t["alice"], pid, "backlog") == [("first", 0), ("a", 1), ("b", 2), ("c", 3)]


def test_partial_update_leaves_other_fields(api, ctx):
    t, ids, pid = ctx
    task = api.create_task(t["alice"], pid, "Write docs", description="v1", priority="high",
                           start_date="2026-01-05", end_date="2026-01-09")
    updated = api.update_task(t["bob"], task["id"], {"title": "Write better docs"})
    assert updated["title"] == "Write better docs"
    assert updated["description"] == "v1"
    assert updated["priority"] == "high"
    assert updated["start_date"] == date(2026, 1, 5)
    assert updated["end_date"] == date(2026, 1, 9)


def test_end_before_start_is_rejected(api, ctx):
    t, ids, pid = ctx
    task = api.create_task(t["alice"], pid, "Plan", start_date=date(2026, 3, 10))
    with pytest.raises(ValidationError):
        api.update_task(t["alice"], task["id"], {"end_date": date(2026, 3, 1)})
    with pytest.raises(ValidationError):
        api.create_task(t["alice"], pid, "Backwards", start_date="2026-05-02", end_date="2026-05-01")
    assert api.get_task(t["alice"], task["id"])["end_date"] is None


def test_same_day_range_is_fine(api, ctx):
    t, ids, pid = ctx
    task = api.create_task(t["alice"], pid, "Standup", start_date="2026-02-02", end_date="2026-02-02")
    assert task["start_date"] == task["end_date"]


def test_assign_to_non_member_leaves_assignee(api, ctx):
    t, ids, pid = ctx
    task = api.create_task(t["alice"], pid, "Review", assignee_id=ids["bob"])
    with pytest.raises(ValidationError):
        api.update_task(t["alice"], task["id"], {"assignee_id": ids["carol"], "title": "Changed"})
    stored = api.get_task(t["alice"], task["id"])
    assert stored["assignee_id"] == ids["bob"]
    assert stored["title"] == "Review"


def test_member_may_assign_owner_and_fellow_member(api, ctx):
    t, ids, pid = ctx
    task = api.create_task(t["bob"], pid, "Pair up")
    assert api.update_task(t["bob"], task["id"], {"assignee_id": ids["alice"]})["assignee_id"] == ids["alice"]
    assert api.update_task(t["bob"], task["id"], {"assignee_id": ids["bob"]})["assignee_id"] == ids["bob"]
    assert api.update_task(t["bob"], task["id"], {"assignee_id": None})["assignee_id"] is None


def test_unknown_fields_and_bad_values(api, ctx):
    t, ids, pid = ctx
    task = api.create_task(t["alice"], pid, "X")
    for fields in ({"project_id": 99}, {"priority": "urgent"}, {"status": "blocked"},
                   {"start_date": "2026-02-30"}, {"title": ""}):
        with pytest.raises(ValidationError):
            api.update_task(t["alice"], task["id"], fields)
    assert api.get_task(t["alice"], task["id"])["title"] == "X"


def test_status_update_moves_to_end_of_column(api, ctx):
    t, ids, pid = ctx
    a = api.create_task(t["alice"], pid, "a")
    b = api.create_task(t["alice"], pid, "b")
    api.create_task(t["alice"], pid, "c", status="done")
    api.update_task(t["alice"], a["id"], {"status": "done"})
    assert _positions(api, t["alice"], pid, "done") == [("c", 0), ("a", 1)]
    assert _positions(api, t["alice"], pid, "backlog") == [("b", 0)]
    assert api.get_task(t["alice"], b["id"])["position"] == 0


def test_move_task_between_and_within_columns(api, ctx):
    t, ids, pid = ctx
    tasks = [api.create_task(t["alice"], pid, name) for name in "abcd"]
    api.move_task(t["bob"], tasks[3]["id"], "backlog", 0)
    assert _positions(api, t["alice"], pid, "backlog") == [("d", 0), ("a", 1), ("b", 2), ("c", 3)]
    moved = api.move_task(t["bob"], tasks[1]["id"], "in_progress", 5)
    assert moved["status"] == "in_progress" and moved["position"] == 0
    assert _positions(api, t["alice"], pid, "backlog") == [("d", 0), ("a", 1), ("c", 2)]


def test_move_accepts_display_names(api, ctx):
    t, ids, pid = ctx
    task = api.create_task(t["alice"], pid, "a")
    assert api.move_task(t["alice"], task["id"], "In Progress")["status"] == "in_progress"
    with pytest.raises(ValidationError):
        api.move_task(t["alice"], task["id"], "Archived")


def test_concurrent_moves_into_same_slot(api, ctx):
    t, ids, pid = ctx
    done = [api.create_task(t["alice"], pid, f"done-{i}", status="done") for i in range(3)]
    movers = [api.create_task(t["alice"], pid, f"todo-{i}") for i in range(2)]
    barrier = threading.Barrier(2)
    errors = []

    def move(task, token):
        barrier.wait()
        try:
            api.move_task(token, task["id"], "done", 1)
        except Exception as exc:  # surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=move, args=(movers[0], t["alice"])),
               threading.Thread(target=move, args=(movers[1], t["bob"]))]
    for th in threads:
        th.start()
    for th in threads:
        th.join()

    assert errors == []
    column = api.list_tasks(t["alice"], pid, "done")
    positions = [x["position"] for x in column]
    assert positions == list(range(len(done) + 2))
    assert {x["title"] for x in column[1:3]} == {"todo-0", "todo-1"}


def test_delete_task_closes_gap_and_counts(api, ctx):
    t, ids, pid = ctx
    a, b, c = (api.create_task(t["alice"], pid, name) for name in "abc")
    api.delete_task(t["bob"], b["id"])
    assert _positions(api, t["alice"], pid, "backlog") == [("a", 0), ("c", 1)]
    assert api.get_project(t["alice"], pid)["task_count"] == 2
    with pytest.raises(NotFound):
        api.get_task(t["alice"], b["id"])
    with pytest.raises(NotFound):
        api.delete_task(t["alice"], b["id"])


def test_task_count_matches_rows(api, ctx):
    t, ids, pid = ctx
    for i in range(4):
        api.create_task(t["alice"], pid, f"t{i}")
    api.delete_task(t["alice"], api.list_tasks(t["alice"], pid)[0]["id"])
    assert recount_tasks(pid) == 3
    assert api.get_project(t["alice"], pid)["task_count"] == 3


def test_removing_member_unassigns_their_tasks(api, ctx):
    t, ids, pid = ctx
    task = api.create_task(t["alice"], pid, "Hand-off", assignee_id=ids["bob"])
    api.remove_member(t["alice"], pid, ids["bob"])
    assert api.get_task(t["alice"], task["id"])["assignee_id"] is None


def test_move_position_must_be_a_whole_number(api, ctx):
    t, ids, pid = ctx
    a = api.create_task(t["alice"], pid, "a")
    api.create_task(t["alice"], pid, "b")
    assert api.move_task(t["alice"], a["id"], "backlog", "1")["position"] == 1
    with pytest.raises(ValidationError):
        api.move_task(t["alice"], a["id"], "done", "top")
    with pytest.raises(ValidationError):
        api.create_task(t["alice"], pid, "c", position="first")
    assert _positions(api, t["alice"], pid, "backlog") == [("b", 0), ("a", 1)]
    assert api.get_project(t["alice"], pid)["task_count"] == 2


@pytest.fixture
def raced(api, ctx, monkeypatch):
    """a, b in backlog and c in done; once the project lock is granted, a has
    already been moved to the top of done by another request."""
    t, ids, pid = ctx
    a, b = (api.create_task(t["alice"], pid, name) for name in "ab")
    c = api.create_task(t["alice"], pid, "c", status="done")
    real_lock = task_service.lock_project

    def lock_after_move(session, project_id):
        project = real_lock(session, project_id)
        conn = session.connection()
        conn.execute(update(Task).where(Task.id == c["id"]).values(position=1))
        conn.execute(update(Task).where(Task.id == a["id"]).values(status=TaskStatus.DONE, position=0))
        conn.execute(update(Task).where(Task.id == b["id"]).values(position=0))
        return project

    monkeypatch.setattr(task_service, "lock_project", lock_after_move)
    return a


def test_delete_uses_current_column_after_lock(api, ctx, raced):
    t, ids, pid = ctx
    api.delete_task(t["alice"], raced["id"])
    assert _positions(api, t["alice"], pid, "done") == [("c", 0)]
    assert _positions(api, t["alice"], pid, "backlog") == [("b", 0)]


def test_status_update_uses_current_column_after_lock(api, ctx, raced):
    t, ids, pid = ctx
    api.update_task(t["alice"], raced["id"], {"status": "in_progress"})
    assert _positions(api, t["alice"], pid, "done") == [("c", 0)]
    assert _positions(api, t["alice"], pid, "in_progress") == [("a", 0)]
    assert _positions(api, t["alice"], pid, "backlog") == [("b", 0)]


def test_new_rows_are_stamped_in_utc():
    task = Task(project_id=1, title="x")
    assert task.created_at.utcoffset() == timedelta(0)
    assert task.updated_at.utcoffset() == timedelta(0)
