# sync/store.py
"""
Client-side task state with optimistic apply and reconciliation.

Three layers make up what the UI sees for a task:

* ``confirmed`` - last known-good values from the server;
* pending operations - sent, awaiting a response, keyed by correlation id;
* staged edits - applied locally, still waiting in the debounce window.

A confirmation only overwrites fields no newer pending/staged edit covers,
so a late response never reverts something the user typed afterwards. A
rejection restores ``confirmed`` under the same rule. Overview aggregates
are invalidated on confirmed mutations only.
"""
import itertools
import threading
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from utils.log import get_logger

logger = get_logger(__name__)

UPDATE, MOVE, CREATE, DELETE = "update", "move", "create", "delete"
_COLUMN_RANK = {"backlog": 0, "in_progress": 1, "done": 2}


@dataclass
class PendingOp:
    cid: str
    task_id: int
    kind: str
    fields: Dict[str, Any]
    seq: int

    def affects_overview(self) -> bool:
        return self.kind in (CREATE, DELETE) or "assignee_id" in self.fields


@dataclass
class Failure:
    cid: str
    task_id: int
    kind: str
    error: Exception
    fields: Dict[str, Any] = field(default_factory=dict)


class ClientStore:
    def __init__(self, overview_loader: Optional[Callable[[], Dict[str, int]]] = None):
        self._confirmed: Dict[int, Dict[str, Any]] = {}
        self._visible: Dict[int, Dict[str, Any]] = {}
        self._staged: Dict[int, Dict[str, Any]] = {}
        self._pending: "OrderedDict[str, PendingOp]" = OrderedDict()
        self._id_map: Dict[int, int] = {}
        self._seq = itertools.count(1)
        self._temp_ids = itertools.count(-1, -1)
        self._lock = threading.RLock()
        self._overview_loader = overview_loader
        self._overview: Optional[Dict[str, int]] = None
        self.overview_invalidations = 0
        self.failures: List[Failure] = []

    # ---- reads ----
    def task(self, task_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            t = self._visible.get(self.resolve(task_id))
            return dict(t) if t is not None else None

    def confirmed(self, task_id: int) -> Optional[Dict[str, Any]]:
        with self._lock:
            t = self._confirmed.get(self.resolve(task_id))
            return dict(t) if t is not None else None

    def tasks(self, project_id: Optional[int] = None) -> List[Dict[str, Any]]:
        with self._lock:
            rows = [dict(t) for t in self._visible.values()
                    if project_id is None or t.get("project_id") == project_id]
        return sorted(rows, key=lambda t: (_COLUMN_RANK.get(t.get("status"), len(_COLUMN_RANK)),
                                           t.get("position") or 0, t["id"]))

    def resolve(self, task_id: int) -> int:
        """Map a temporary (optimistic create) id to the server id once known."""
        return self._id_map.get(task_id, task_id)

    def pending_ops(self) -> List[PendingOp]:
        with self._lock:
            return list(self._pending.values())

    def staged(self, task_id: int) -> Dict[str, Any]:
        with self._lock:
            return dict(self._staged.get(self.resolve(task_id), {}))

    # ---- server snapshots ----
    def load(self, tasks: List[Dict[str, Any]], project_id: Optional[int] = None) -> None:
        """Take a fresh server listing, keeping local pending/staged overlays."""
        with self._lock:
            incoming = {t["id"]: dict(t) for t in tasks}
            for tid in list(self._confirmed):
                if tid not in incoming and (project_id is None or self._confirmed[tid].get("project_id") == project_id):
                    del self._confirmed[tid]
            self._confirmed.update(incoming)
            known = set(self._confirmed) | {op.task_id for op in self._pending.values() if op.kind == CREATE}
            for tid in list(self._visible):
                if tid not in known:
                    del self._visible[tid]
                    self._staged.pop(tid, None)
            for tid in self._confirmed:
                self._rebuild(tid)

    def _rebuild(self, task_id: int) -> None:
        if task_id not in self._confirmed:
            return
        row = dict(self._confirmed[task_id])
        for op in self._pending.values():
            if op.task_id != task_id:
                continue
            if op.kind == DELETE:
                self._visible.pop(task_id, None)
                return
            row.update(op.fields)
        row.update(self._staged.get(task_id, {}))
        self._visible[task_id] = row

    # ---- optimistic writes ----
    def stage(self, task_id: int, field_name: str, value: Any) -> None:
        with self._lock:
            task_id = self.resolve(task_id)
            if task_id not in self._visible:
                raise KeyError(task_id)
            self._staged.setdefault(task_id, {})[field_name] = value
            self._visible[task_id][field_name] = value

    def begin_update(self, task_id: int, fields: Dict[str, Any]) -> str:
        """Register a send of ``fields``; their values are already visible via ``stage``."""
        with self._lock:
            task_id = self.resolve(task_id)
            staged = self._staged.get(task_id, {})
            for name, value in fields.items():
                # a newer stage keeps its own entry
                if name in staged and staged[name] == value:
                    del staged[name]
                if task_id in self._visible and name not in staged:
                    self._visible[task_id][name] = value
            if not staged:
                self._staged.pop(task_id, None)
            return self._open(task_id, UPDATE, fields)

    def begin_move(self, task_id: int, status: str, position: Optional[int] = None) -> str:
        with self._lock:
            task_id = self.resolve(task_id)
            fields: Dict[str, Any] = {"status": status}
            if position is not None:
                fields["position"] = position
            if task_id in self._visible:
                self._visible[task_id].update(fields)
            return self._open(task_id, MOVE, fields)

    def begin_create(self, task: Dict[str, Any]) -> Tuple[str, int]:
        with self._lock:
            temp_id = next(self._temp_ids)
            row = dict(task, id=temp_id)
            self._visible[temp_id] = row
            return self._open(temp_id, CREATE, dict(task)), temp_id

    def begin_delete(self, task_id: int) -> str:
        with self._lock:
            task_id = self.resolve(task_id)
            self._visible.pop(task_id, None)
            self._staged.pop(task_id, None)
            return self._open(task_id, DELETE, {})

    def _open(self, task_id: int, kind: str, fields: Dict[str, Any]) -> str:
        cid = uuid.uuid4().hex
        self._pending[cid] = PendingOp(cid, task_id, kind, dict(fields), next(self._seq))
        return cid

    # ---- reconciliation ----
    def _newer_fields(self, op: PendingOp) -> set:
        covered = set(self._staged.get(op.task_id, {}))
        for other in self._pending.values():
            if other.task_id == op.task_id and other.seq > op.seq:
                covered.update(other.fields)
        return covered

    def confirm(self, cid: str, response: Optional[Dict[str, Any]] = None) -> None:
        with self._lock:
            op = self._pending.pop(cid, None)
            if op is None:
                logger.warning("Confirmation for unknown operation %s", cid)
                return
            if op.kind == DELETE:
                self._confirmed.pop(op.task_id, None)
                self._visible.pop(op.task_id, None)
            elif op.kind == CREATE:
                server_id = response["id"]
                self._id_map[op.task_id] = server_id
                self._confirmed[server_id] = dict(response)
                self._visible.pop(op.task_id, None)
                staged = self._staged.pop(op.task_id, None)
                if staged:
                    self._staged[server_id] = staged
                for other in self._pending.values():
                    if other.task_id == op.task_id:
                        other.task_id = server_id
                self._rebuild(server_id)
            else:
                response = response or {}
                covered = self._newer_fields(op)
                base = self._confirmed.setdefault(op.task_id, {})
                base.update(response)
                row = self._visible.get(op.task_id)
                if row is not None:
                    for name, value in response.items():
                        if name not in covered:
                            row[name] = value
            if op.affects_overview():
                self.invalidate_overview()

    def reject(self, cid: str, error: Exception) -> None:
        with self._lock:
            op = self._pending.pop(cid, None)
            if op is None:
                logger.warning("Rejection for unknown operation %s", cid)
                return
            logger.info("Rolling back %s on task %s: %s", op.kind, op.task_id, error)
            self.failures.append(Failure(cid, op.task_id, op.kind, error, dict(op.fields)))
            if op.kind == CREATE:
                self._visible.pop(op.task_id, None)
                self._staged.pop(op.task_id, None)
            elif op.kind == DELETE:
                self._rebuild(op.task_id)
            else:
                covered = self._newer_fields(op)
                base = self._confirmed.get(op.task_id, {})
                row = self._visible.get(op.task_id)
                if row is not None:
                    for name in op.fields:
                        if name not in covered and name in base:
                            row[name] = base[name]

    # ---- aggregates ----
    def invalidate_overview(self) -> None:
        with self._lock:
            self._overview = None
            self.overview_invalidations += 1

    def overview(self) -> Optional[Dict[str, int]]:
        with self._lock:
            if self._overview is None and self._overview_loader is not None:
                self._overview = dict(self._overview_loader())
            return dict(self._overview) if self._overview is not None else None
