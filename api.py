# api.py

#============================================================#
#                         Taskboard                          #
#============================================================#
# Version     : V1.0.0                                       #
#------------------------------------------------------------#
# Purpose     : Logical operation surface of the server of   #
#               record. Every call carries a session token;  #
#               the transport in front of it is not our      #
#               concern.                                     #
#============================================================#

from typing import Dict, List, Optional

import pandas as pd

import config
import db
from auth import TokenSigner
from services import accounts, overview as overview_service, projects, tasks
from utils.board import board_columns
from utils.log import configure_logging, get_logger
from utils.progress import compute_project_progress
from utils.timeline import timeline_df

logger = get_logger(__name__)


class Api:
    def __init__(self, signer: Optional[TokenSigner] = None, database_url: Optional[str] = None,
                 init_schema: bool = True):
        self.signer = signer or TokenSigner()
        if database_url is not None:
            db.configure_engine(database_url)
        if init_schema:
            db.init_db()

    def _identity(self, token: Optional[str]) -> int:
        return accounts.resolve_identity(token, self.signer)

    # ---- accounts ----
    def register(self, handle: str, password: str) -> Dict:
        return accounts.register(handle, password)

    def login(self, handle: str, password: str) -> str:
        return accounts.login(handle, password, self.signer)

    def logout(self, token: str) -> None:
        # tokens are stateless; the client drops it
        user_id = self._identity(token)
        logger.info("User %s signed out", user_id)

    def delete_account(self, token: str) -> None:
        accounts.delete_account(self._identity(token))

    # ---- projects ----
    def create_project(self, token: str, name: str, color: str = "blue") -> Dict:
        return projects.create_project(self._identity(token), name, color)

    def join_project(self, token: str, code: str) -> Dict:
        return projects.join_project(self._identity(token), code)

    def delete_project(self, token: str, project_id: int) -> None:
        projects.delete_project(self._identity(token), project_id)

    def update_project(self, token: str, project_id: int, name=None, color=None) -> Dict:
        return projects.update_project(self._identity(token), project_id, name=name, color=color)

    def get_project(self, token: str, project_id: int) -> Dict:
        return projects.get_project(self._identity(token), project_id)

    def list_projects(self, token: str) -> List[Dict]:
        return projects.list_projects(self._identity(token))

    def list_members(self, token: str, project_id: int) -> List[Dict]:
        return projects.list_members(self._identity(token), project_id)

    def remove_member(self, token: str, project_id: int, user_id: int) -> None:
        projects.remove_member(self._identity(token), project_id, user_id)

    # ---- tasks ----
    def create_task(self, token: str, project_id: int, title: str, **fields) -> Dict:
        return tasks.create_task(self._identity(token), project_id, title, **fields)

    def update_task(self, token: str, task_id: int, fields: Dict) -> Dict:
        return tasks.update_task(self._identity(token), task_id, fields)

    def move_task(self, token: str, task_id: int, status, position: Optional[int] = None) -> Dict:
        return tasks.move_task(self._identity(token), task_id, status, position)

    def delete_task(self, token: str, task_id: int) -> None:
        tasks.delete_task(self._identity(token), task_id)

    def get_task(self, token: str, task_id: int) -> Dict:
        return tasks.get_task(self._identity(token), task_id)

    def list_tasks(self, token: str, project_id: int, status=None) -> List[Dict]:
        return tasks.list_tasks(self._identity(token), project_id, status)

    # ---- read models ----
    def board(self, token: str, project_id: int) -> Dict[str, List[Dict]]:
        return board_columns(self.list_tasks(token, project_id))

    def timeline(self, token: str, project_id: int) -> pd.DataFrame:
        identity = self._identity(token)
        handles = {m["user_id"]: m["handle"] for m in projects.list_members(identity, project_id)}
        return timeline_df(tasks.list_tasks(identity, project_id), handles)

    def progress(self, token: str, project_id: int) -> float:
        return compute_project_progress(self.list_tasks(token, project_id))

    def overview(self, token: str) -> Dict[str, int]:
        return overview_service.overview(self._identity(token))


def create_app(database_url: Optional[str] = None) -> Api:
    configure_logging(config.LOG_LEVEL)
    return Api(database_url=database_url or config.DATABASE_URL)
