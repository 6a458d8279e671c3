from __future__ import annotations

from pathlib import Path
from typing import Optional

from papershelf.config.settings import Settings
from papershelf.domain.errors import Conflict, InvalidInput, NotFound
from papershelf.infrastructure.stores.migrations import migrate
from papershelf.infrastructure.stores.paper_store import PaperStore
from papershelf.utils.logging_config import LogFiles, Logger


class PaperRepository:
    """
    A directory holding ``papers.db`` and the stored paper files.

    ``init`` creates a fresh repository; ``load`` opens an existing one.
    Both bring the schema to the latest revision before returning.
    """

    def __init__(self, settings: Settings, store: PaperStore):
        self.settings = settings
        self.root = Path(settings.root).resolve()
        self.store = store

    @classmethod
    def init(cls, settings: Settings) -> "PaperRepository":
        root = settings.root
        root.mkdir(parents=True, exist_ok=True)
        if settings.db_url is None and settings.db_path.exists():
            raise Conflict(f"a paper repository already exists in {root}")

        db_url = settings.resolved_db_url()
        migrate(db_url)
        Logger.info(f"Initialised paper repository in {root}", file=LogFiles.STORE)
        return cls(settings, PaperStore(db_url))

    @classmethod
    def load(cls, settings: Settings) -> "PaperRepository":
        if settings.db_url is None and not settings.db_path.is_file():
            raise NotFound(f"no paper repository in {settings.root}, run `papershelf init` first")

        db_url = settings.resolved_db_url()
        migrate(db_url)
        return cls(settings, PaperStore(db_url))

    def close(self) -> None:
        self.store.close()

    def __enter__(self) -> "PaperRepository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def contains(self, path: Path) -> bool:
        try:
            Path(path).resolve().relative_to(self.root)
        except ValueError:
            return False
        return True

    def relative_filename(self, path: Path) -> str:
        """Name stored in the ``filename`` column for a file under the root."""
        resolved = Path(path).resolve()
        try:
            return resolved.relative_to(self.root).as_posix()
        except ValueError as exc:
            raise InvalidInput(f"{path} does not live in the repository {self.root}") from exc

    def file_path(self, filename: Optional[str]) -> Optional[Path]:
        if not filename:
            return None
        return self.root / filename
