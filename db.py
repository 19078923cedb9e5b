# db.py

#============================================================#
#                         Taskboard                          #
#============================================================#
# Version     : V1.0.0                                       #
#------------------------------------------------------------#
# Purpose     : Collaborative Kanban/Gantt task tracker.     #
#               Engine, sessions and transaction scope for   #
#               the SQLite/Postgres store of record.         #
#============================================================#

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import event
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, SQLModel, create_engine

import config
from errors import TaskboardError, TransactionFailure
from utils.log import get_logger

logger = get_logger(__name__)

# ---- Engine / Session ----
engine = None


def _install_sqlite_hooks(eng) -> None:
    # pysqlite: enforce FKs and take the write lock up front so concurrent
    # writers queue instead of failing on lock upgrade.
    @event.listens_for(eng, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(eng, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def configure_engine(url: str | None = None, echo: bool = False):
    """(Re)bind the module engine. Returns the new engine."""
    global engine
    url = url or config.DATABASE_URL
    if engine is not None:
        engine.dispose()
    if url.startswith("sqlite"):
        engine = create_engine(
            url, echo=echo,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
        _install_sqlite_hooks(engine)
    else:
        engine = create_engine(url, echo=echo, pool_pre_ping=True)
    logger.info("Database engine bound to %s", engine.url.render_as_string(hide_password=True))
    return engine


def init_db() -> None:
    import models  # noqa: F401  registers the tables on SQLModel.metadata
    if engine is None:
        configure_engine()
    SQLModel.metadata.create_all(engine)


def get_session() -> Session:
    if engine is None:
        configure_engine()
    return Session(engine, expire_on_commit=False)


@contextmanager
def transaction() -> Iterator[Session]:
    """
    One unit of work: commit on success, roll back everything on any error.
    Domain errors pass through untouched; store errors surface as a
    retryable TransactionFailure.
    """
    session = get_session()
    try:
        yield session
        session.commit()
    except TaskboardError:
        session.rollback()
        raise
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("Transaction rolled back")
        raise TransactionFailure("The operation could not be saved, please retry.") from exc
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
