from __future__ import annotations

from pathlib import Path
from typing import Optional

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from alembic.script.revision import ResolutionError
from alembic.util import CommandError
from sqlalchemy.exc import SQLAlchemyError

from papershelf.domain.errors import StoreError
from papershelf.infrastructure.stores.sqlalchemy_db import create_db_engine, get_db_url
from papershelf.utils.logging_config import LogFiles, Logger

MIGRATIONS_DIR = Path(__file__).resolve().parents[2] / "migrations"


def alembic_config(db_url: str) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(MIGRATIONS_DIR))
    # configparser interpolation: a literal % must be doubled
    cfg.set_main_option("sqlalchemy.url", db_url.replace("%", "%%"))
    return cfg


def head_revision() -> Optional[str]:
    script = ScriptDirectory.from_config(alembic_config("sqlite://"))
    return script.get_current_head()


def current_revision(db_url: Optional[str] = None) -> Optional[str]:
    """Revision recorded in the store's ``alembic_version`` table, or None."""
    url = db_url or get_db_url()
    engine = create_db_engine(url)
    try:
        with engine.connect() as connection:
            return MigrationContext.configure(connection).get_current_revision()
    except SQLAlchemyError as exc:
        raise StoreError(f"cannot read schema version: {exc}") from exc
    finally:
        engine.dispose()


def migrate(db_url: Optional[str] = None) -> Optional[str]:
    """
    Bring the store to the latest schema revision.

    Pending revisions run in order, each once, on one connection opened with
    ``engine.begin()``. SQLite commits DDL as it goes, so a failure can leave
    the revisions before it applied; the revisions skip tables that already
    exist, so running ``migrate()`` again picks up where it stopped. A store
    already at head, or at a revision this release does not know (written by a
    newer version), is left untouched. Returns the revision the store is at.
    """
    url = db_url or get_db_url()
    cfg = alembic_config(url)
    script = ScriptDirectory.from_config(cfg)
    head = script.get_current_head()

    current = current_revision(url)
    if current == head:
        Logger.debug(f"Schema already at {head}", file=LogFiles.MIGRATE)
        return current

    if current is not None:
        try:
            script.get_revision(current)
        except (CommandError, ResolutionError):
            Logger.warning(
                f"Schema revision {current} is newer than this release ({head}), skipping migrate",
                file=LogFiles.MIGRATE,
            )
            return current

    engine = create_db_engine(url)
    try:
        with engine.begin() as connection:
            cfg.attributes["connection"] = connection
            command.upgrade(cfg, "head")
    except (SQLAlchemyError, CommandError) as exc:
        Logger.error(f"Migration from {current} to {head} failed: {exc}", file=LogFiles.MIGRATE)
        raise StoreError(f"migration failed: {exc}") from exc
    finally:
        engine.dispose()

    Logger.info(f"Migrated schema from {current or 'empty'} to {head}", file=LogFiles.MIGRATE)
    return head
