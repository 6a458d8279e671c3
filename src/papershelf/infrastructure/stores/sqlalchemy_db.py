from __future__ import annotations

import os
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from papershelf.config.settings import DB_FILE_NAME
from papershelf.domain.errors import StoreError


def get_db_url(root: Optional[Path] = None) -> str:
    """``PAPERSHELF_DB_URL`` if set, else the database file inside ``root`` (default cwd)."""
    env_url = os.getenv("PAPERSHELF_DB_URL")
    if env_url:
        return env_url
    base = Path(root) if root is not None else Path.cwd()
    return f"sqlite:///{base / DB_FILE_NAME}"


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    try:
        cursor.execute("PRAGMA foreign_keys=ON")
    finally:
        cursor.close()


def create_db_engine(db_url: str) -> Engine:
    engine = create_engine(db_url, future=True)
    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


class SessionProvider:
    """
    Owns the engine for one invocation and hands out short-lived sessions.

    Database failures inside ``session()`` roll back and surface as
    ``StoreError``; other exceptions propagate unchanged.
    """

    def __init__(self, db_url: str):
        self.db_url = db_url
        self.engine = create_db_engine(db_url)
        self._factory = sessionmaker(bind=self.engine, expire_on_commit=False, future=True)

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self._factory()
        try:
            yield session
        except SQLAlchemyError as exc:
            session.rollback()
            raise StoreError(f"database error: {exc}") from exc
        finally:
            session.close()

    def dispose(self) -> None:
        self.engine.dispose()
