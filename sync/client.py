# sync/client.py
from typing import Any, Dict, List, Optional

from errors import TaskboardError
from sync.debounce import Coalescer
from sync.store import ClientStore
from utils.log import get_logger

logger = get_logger(__name__)


class TaskClient:
    """
    One signed-in user's view of a project.

    ``backend`` is anything exposing the ``api.Api`` operations; calls are
    plain request/response. Inline edits go through the coalescer, moves,
    creates and deletes are sent at once. Every mutation is applied to the
    store before the request and reconciled after it; a failure that is
    not a domain error is rolled back too, then re-raised.
    """

    def __init__(self, backend, token: str, window: Optional[float] = None, scheduler=None):
        self.backend = backend
        self.token = token
        self.store = ClientStore(overview_loader=lambda: backend.overview(token))
        self.coalescer = Coalescer(self._send_fields, window=window, scheduler=scheduler)
        self.project_id: Optional[int] = None

    # ---- reads ----
    def load_project(self, project_id: int) -> List[Dict[str, Any]]:
        self.project_id = project_id
        self.refresh()
        return self.store.tasks(project_id)

    def refresh(self) -> None:
        if self.project_id is None:
            return
        self.store.load(self.backend.list_tasks(self.token, self.project_id), self.project_id)

    def task(self, task_id: int) -> Optional[Dict[str, Any]]:
        return self.store.task(task_id)

    def tasks(self) -> List[Dict[str, Any]]:
        return self.store.tasks(self.project_id)

    def overview(self) -> Optional[Dict[str, int]]:
        return self.store.overview()

    @property
    def failures(self):
        return self.store.failures

    # ---- inline edits ----
    def edit(self, task_id: int, field: str, value: Any) -> None:
        self.store.stage(task_id, field, value)
        self.coalescer.stage(task_id, field, value)

    def flush(self, task_id: Optional[int] = None) -> None:
        if task_id is None:
            self.coalescer.flush_all()
        else:
            self.coalescer.flush(task_id)

    def close(self) -> None:
        """Teardown: nothing staged may be lost."""
        self.coalescer.flush_all()

    def _send_fields(self, task_id: int, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        cid = self.store.begin_update(task_id, fields)
        try:
            result = self.backend.update_task(self.token, self.store.resolve(task_id), fields)
        except TaskboardError as exc:
            logger.warning("Update of task %s rejected: %s", task_id, exc.code)
            self.store.reject(cid, exc)
            return None
        except Exception as exc:
            self.store.reject(cid, exc)
            raise
        self.store.confirm(cid, result)
        return result

    # ---- immediate mutations ----
    def move(self, task_id: int, status: str, position: Optional[int] = None) -> Optional[Dict[str, Any]]:
        # earlier edits to this task go out first
        self.coalescer.flush(task_id)
        cid = self.store.begin_move(task_id, status, position)
        try:
            result = self.backend.move_task(self.token, self.store.resolve(task_id), status, position)
        except TaskboardError as exc:
            logger.warning("Move of task %s rejected: %s", task_id, exc.code)
            self.store.reject(cid, exc)
            return None
        except Exception as exc:
            self.store.reject(cid, exc)
            raise
        self.store.confirm(cid, result)
        # neighbours were renumbered server-side
        self.refresh()
        return result

    def create(self, title: str, **fields) -> Optional[Dict[str, Any]]:
        draft = {"project_id": self.project_id, "title": title,
                 "status": fields.get("status", "backlog"),
                 "priority": fields.get("priority", "medium"),
                 "position": 10 ** 6}
        draft.update((k, v) for k, v in fields.items() if k not in draft)
        cid, temp_id = self.store.begin_create(draft)
        try:
            result = self.backend.create_task(self.token, self.project_id, title, **fields)
        except TaskboardError as exc:
            logger.warning("Create in project %s rejected: %s", self.project_id, exc.code)
            self.store.reject(cid, exc)
            return None
        except Exception as exc:
            self.store.reject(cid, exc)
            raise
        self.store.confirm(cid, result)
        return result

    def delete(self, task_id: int) -> bool:
        # pending edits go out first
        self.coalescer.flush(task_id)
        cid = self.store.begin_delete(task_id)
        try:
            self.backend.delete_task(self.token, self.store.resolve(task_id))
        except TaskboardError as exc:
            logger.warning("Delete of task %s rejected: %s", task_id, exc.code)
            self.store.reject(cid, exc)
            return False
        except Exception as exc:
            self.store.reject(cid, exc)
            raise
        self.store.confirm(cid)
        self.refresh()
        return True
