from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.errors import StorageError
from app.core.extensions import db

logger = logging.getLogger(__name__)


@event.listens_for(Engine, "connect")
def _enable_sqlite_foreign_keys(dbapi_connection, _connection_record) -> None:
    # SQLite ignores REFERENCES unless asked per connection.
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


@contextmanager
def unit_of_work(message: str = "Error al guardar en la base de datos") -> Iterator[Session]:
    """Run a block of writes as one transaction.

    Commits when the block finishes, rolls back on any exception. Driver and
    constraint failures surface as ``StorageError``; domain errors raised inside
    the block propagate unchanged after the rollback.
    """
    session = db.session
    try:
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.exception("%s", message)
        raise StorageError(message, detail=str(exc.orig if getattr(exc, "orig", None) else exc)) from exc
    except BaseException:
        session.rollback()
        raise
