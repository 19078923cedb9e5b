# utils/coerce.py
from datetime import date, datetime
from typing import Optional

from dateutil import parser

from errors import ValidationError
from models.task import TaskPriority, TaskStatus

_STATUS_ALIASES = {
    "backlog": TaskStatus.BACKLOG, "todo": TaskStatus.BACKLOG, "to-do": TaskStatus.BACKLOG,
    "to do": TaskStatus.BACKLOG,
    "in_progress": TaskStatus.IN_PROGRESS, "in-progress": TaskStatus.IN_PROGRESS,
    "in progress": TaskStatus.IN_PROGRESS, "inprogress": TaskStatus.IN_PROGRESS,
    "done": TaskStatus.DONE,
}


def parse_date(x, field: str = "date") -> Optional[date]:
    if x is None or x == "":
        return None
    if isinstance(x, datetime):
        return x.date()
    if isinstance(x, date):
        return x
    try:
        return parser.parse(str(x)).date()
    except (ValueError, OverflowError):
        raise ValidationError(f"{x!r} is not a valid date.", field=field)


def coerce_status(s) -> TaskStatus:
    if isinstance(s, TaskStatus):
        return s
    status = _STATUS_ALIASES.get(str(s or "").strip().lower())
    if status is None:
        raise ValidationError(f"Unknown status {s!r}.", field="status")
    return status


def coerce_priority(p) -> TaskPriority:
    if isinstance(p, TaskPriority):
        return p
    try:
        return TaskPriority(str(p or "").strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown priority {p!r}.", field="priority")


def coerce_title(title) -> str:
    title = str(title or "").strip()
    if not title:
        raise ValidationError("Title is required.", field="title")
    return title
