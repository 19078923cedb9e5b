# sync/debounce.py
"""
Debounce coalescer for inline edits.

Edits are keyed by ``(task_id, field)``. Each ``stage`` replaces the pending
value for its key and restarts that key's quiet-window timer, so only the
last value is sent. ``flush`` sends everything pending for a task right away
(navigation, explicit save). Sends are serialized, which keeps one client's
edits to a task in issue order.
"""
import threading
from typing import Any, Callable, Dict, Optional, Tuple

import config
from utils.log import get_logger

logger = get_logger(__name__)

SendFn = Callable[[int, Dict[str, Any]], Any]


class ThreadingScheduler:
    """Runs callbacks on ``threading.Timer`` threads."""

    def call_later(self, delay: float, fn: Callable[[], None]):
        timer = threading.Timer(delay, fn)
        timer.daemon = True
        timer.start()
        return timer


class Coalescer:
    def __init__(self, send: SendFn, window: Optional[float] = None, scheduler=None):
        self._send = send
        self.window = config.DEBOUNCE_WINDOW_SECONDS if window is None else window
        self._scheduler = scheduler or ThreadingScheduler()
        self._pending: Dict[int, Dict[str, Any]] = {}
        self._timers: Dict[Tuple[int, str], Any] = {}
        self._generation: Dict[Tuple[int, str], int] = {}
        self._lock = threading.RLock()
        self._send_lock = threading.Lock()
        self.requests_sent = 0

    def stage(self, task_id: int, field: str, value: Any) -> None:
        key = (task_id, field)
        with self._lock:
            self._cancel(key)
            self._pending.setdefault(task_id, {})[field] = value
            gen = self._generation.get(key, 0) + 1
            self._generation[key] = gen
            self._timers[key] = self._scheduler.call_later(
                self.window, lambda: self._fire(task_id, field, gen))

    def pending(self, task_id: int) -> Dict[str, Any]:
        with self._lock:
            return dict(self._pending.get(task_id, {}))

    def has_pending(self, task_id: Optional[int] = None) -> bool:
        with self._lock:
            if task_id is None:
                return any(self._pending.values())
            return bool(self._pending.get(task_id))

    def discard(self, task_id: int) -> Dict[str, Any]:
        """Drop pending edits for a task without sending them (the task is going away)."""
        with self._lock:
            for field in list(self._pending.get(task_id, {})):
                self._cancel((task_id, field))
            return self._pending.pop(task_id, {})

    def flush(self, task_id: int):
        """Send all pending fields of ``task_id`` now, in one request."""
        with self._send_lock:
            with self._lock:
                fields = self._pending.pop(task_id, {})
                for field in fields:
                    self._cancel((task_id, field))
            if not fields:
                return None
            return self._dispatch(task_id, fields)

    def flush_all(self) -> None:
        with self._lock:
            task_ids = [tid for tid, fields in self._pending.items() if fields]
        for task_id in task_ids:
            self.flush(task_id)

    # ---- internals ----
    def _cancel(self, key: Tuple[int, str]) -> None:
        timer = self._timers.pop(key, None)
        if timer is not None:
            timer.cancel()

    def _fire(self, task_id: int, field: str, gen: int) -> None:
        with self._send_lock:
            with self._lock:
                key = (task_id, field)
                # superseded by a newer stage, or already flushed
                if self._generation.get(key) != gen or field not in self._pending.get(task_id, {}):
                    return
                self._timers.pop(key, None)
                value = self._pending[task_id].pop(field)
                if not self._pending[task_id]:
                    del self._pending[task_id]
            try:
                self._dispatch(task_id, {field: value})
            except Exception:
                logger.exception("Debounced send for task %s failed", task_id)

    def _dispatch(self, task_id: int, fields: Dict[str, Any]):
        self.requests_sent += 1
        logger.debug("Sending task %s fields %s", task_id, sorted(fields))
        return self._send(task_id, fields)
