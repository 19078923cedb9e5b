# utils/progress.py
from typing import Dict, Iterable

from models.task import TaskStatus

def compute_project_progress(tasks: Iterable[Dict]) -> float:
    """Percent of tasks in the Done column, 0..100."""
    tasks = list(tasks)
    if not tasks:
        return 0.0
    done = sum(1 for t in tasks if t["status"] == TaskStatus.DONE.value)
    return round(100.0 * done / len(tasks), 1)
