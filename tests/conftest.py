# tests/conftest.py
import pytest

import config
import db
from api import Api
from auth import TokenSigner


class _Handle:
    def __init__(self, when, fn):
        self.when = when
        self.fn = fn
        self.cancelled = False

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Timer stand-in: callbacks run only when the test advances the clock."""

    def __init__(self):
        self.now = 0.0
        self.handles = []

    def call_later(self, delay, fn):
        h = _Handle(self.now + delay, fn)
        self.handles.append(h)
        return h

    def advance(self, seconds):
        self.now += seconds
        due = sorted((h for h in self.handles if not h.cancelled and h.when <= self.now),
                     key=lambda h: h.when)
        self.handles = [h for h in self.handles if h not in due and not h.cancelled]
        for h in due:
            h.fn()

    def active(self):
        return [h for h in self.handles if not h.cancelled]


@pytest.fixture(autouse=True)
def fast_hashing(monkeypatch):
    monkeypatch.setattr(config, "PASSWORD_HASH_ITERATIONS", 1000)


@pytest.fixture
def database(tmp_path):
    db.configure_engine(f"sqlite:///{tmp_path / 'taskboard.db'}")
    db.init_db()
    yield db.engine
    db.engine.dispose()


@pytest.fixture
def api(database):
    return Api(signer=TokenSigner(secret="test-secret", ttl_seconds=3600), init_schema=False)


@pytest.fixture
def scheduler():
    return ManualScheduler()


@pytest.fixture
def world(api):
    """alice owns "Launch", bob joined it, carol is an outsider."""
    ids = {}
    tokens = {}
    for handle in ("alice", "bob", "carol"):
        ids[handle] = api.register(handle, "pw-" + handle)["id"]
        tokens[handle] = api.login(handle, "pw-" + handle)
    project = api.create_project(tokens["alice"], "Launch", "blue")
    api.join_project(tokens["bob"], project["invite_code"])
    return {"ids": ids, "tokens": tokens, "project": project}
