# models/__init__.py
from .user import User
from .project import Project, INVITE_CODE_LENGTH
from .project_member import ProjectMember
from .task import Task, TaskStatus, TaskPriority, STATUS_ORDER
