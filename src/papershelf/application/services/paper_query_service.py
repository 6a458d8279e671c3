from __future__ import annotations

from typing import Iterable, List, Mapping, Optional

from papershelf.domain.errors import InvalidInput
from papershelf.domain.paper import Paper
from papershelf.infrastructure.stores.paper_store import PaperStore
from papershelf.utils.logging_config import LogFiles, Logger


class PaperQueryService:
    """
    Read-only views over the store.

    Search is a literal, case-sensitive substring match: ``"KV"`` finds
    "KV store design" but ``"kv"`` does not, and ``%``/``_`` are plain
    characters. Soft-deleted papers never appear in search results.
    """

    def __init__(self, store: PaperStore):
        self.store = store

    def search(self, text: str) -> List[Paper]:
        if text is None or text == "":
            raise InvalidInput("search text must not be empty")
        papers = self.store.search(str(text))
        Logger.debug(f"search {text!r} matched {len(papers)} papers", file=LogFiles.STORE)
        return papers

    def list(
        self,
        tags: Optional[Iterable[str]] = None,
        *,
        authors: Optional[Iterable[str]] = None,
        labels: Optional[Mapping[str, str]] = None,
        title: Optional[str] = None,
        file: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[Paper]:
        return self.store.list_papers(
            tags,
            authors=authors,
            labels=labels,
            title=title,
            file=file,
            include_deleted=include_deleted,
        )

    def get(self, paper_id: int, *, include_deleted: bool = False) -> Paper:
        return self.store.get(paper_id, include_deleted=include_deleted)
