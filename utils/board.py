# utils/board.py
from typing import Dict, Iterable, List

from models.task import STATUS_ORDER

COLUMN_TITLES = {"backlog": "Backlog", "in_progress": "In Progress", "done": "Done"}

def board_columns(tasks: Iterable[Dict]) -> Dict[str, List[Dict]]:
    """Group task dicts into Kanban columns, each ordered by position."""
    columns = {s.value: [] for s in STATUS_ORDER}
    for t in tasks:
        columns[t["status"]].append(t)
    for col in columns.values():
        col.sort(key=lambda t: (t["position"], t["id"]))
    return columns
