# src/papershelf/application/services/ingestion_service.py
"""
Ingestion pipeline: turn a URL or a local file into a stored paper.

Per item:
1. resolve the source (URL or filesystem path)
2. acquire the content (download into the repository, or reference/copy the file)
3. persist the paper row together with its initial tags, authors and labels

Items in a batch are independent units of work: each gets its own
transaction and its own outcome, and one failure never rolls back another.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from papershelf.domain.errors import Conflict, InvalidInput, PapershelfError
from papershelf.domain.paper import Paper, clean_names
from papershelf.domain.source import Source, filename_for_url, resolve_source
from papershelf.infrastructure.connectors.http_fetcher import HttpFetcher
from papershelf.infrastructure.repository import PaperRepository
from papershelf.utils.logging_config import LogFiles, Logger


@dataclass
class IngestOutcome:
    """Result of ingesting one source."""

    source: str
    paper: Optional[Paper] = None
    error: Optional[PapershelfError] = None
    skipped: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "ok": self.ok,
            "skipped": self.skipped,
            "paper": self.paper.to_dict() if self.paper else None,
            "error": (
                {"kind": self.error.kind, "message": self.error.message} if self.error else None
            ),
        }


@dataclass
class IngestBatchResult:
    """Aggregated outcomes of a multi-source ingestion."""

    outcomes: List[IngestOutcome] = field(default_factory=list)
    started_at: Optional[datetime] = None
    ended_at: Optional[datetime] = None

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.ok)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.ok)

    @property
    def status(self) -> str:
        if not self.outcomes or self.failed == 0:
            return "success"
        if self.succeeded == 0:
            return "failed"
        return "partial"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "items": [o.to_dict() for o in self.outcomes],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
        }


class IngestionService:
    def __init__(self, repository: PaperRepository, fetcher: Optional[HttpFetcher] = None):
        self.repository = repository
        self.store = repository.store
        settings = repository.settings
        self.fetcher = fetcher or HttpFetcher(
            timeout_s=settings.http_timeout, user_agent=settings.user_agent
        )
        self.default_tags = list(settings.default_tags)

    def ingest(
        self,
        source: str,
        *,
        title: Optional[str] = None,
        tags: Iterable[str] = (),
        authors: Iterable[str] = (),
        labels: Optional[Mapping[str, str]] = None,
        name: Optional[str] = None,
    ) -> Paper:
        """Ingest one source. Errors propagate to the caller."""
        return self._ingest_one(
            resolve_source(source),
            title=title,
            tags=tags,
            authors=authors,
            labels=labels,
            name=name,
            skip_existing=False,
        ).paper

    def ingest_many(
        self,
        sources: Sequence[str],
        *,
        title: Optional[str] = None,
        tags: Iterable[str] = (),
        authors: Iterable[str] = (),
        labels: Optional[Mapping[str, str]] = None,
        name: Optional[str] = None,
        skip_existing: bool = False,
    ) -> IngestBatchResult:
        """
        Ingest each source independently and report one outcome per source.

        ``name`` fixes the stored file name, so it only makes sense for a
        single source.
        """
        if name and len(sources) > 1:
            raise InvalidInput("a file name can only be given when ingesting a single source")

        tags = list(tags)
        authors = list(authors)
        result = IngestBatchResult(started_at=datetime.now(timezone.utc))
        for raw in sources:
            try:
                outcome = self._ingest_one(
                    resolve_source(raw),
                    title=title,
                    tags=tags,
                    authors=authors,
                    labels=labels,
                    name=name,
                    skip_existing=skip_existing,
                )
            except PapershelfError as exc:
                Logger.error(f"Ingesting {raw} failed [{exc.kind}]: {exc}", file=LogFiles.INGEST)
                outcome = IngestOutcome(source=raw, error=exc)
            result.outcomes.append(outcome)

        result.ended_at = datetime.now(timezone.utc)
        Logger.info(
            f"Ingested batch of {len(result.outcomes)}: "
            f"{result.succeeded} succeeded, {result.failed} failed",
            file=LogFiles.INGEST,
        )
        return result

    def _ingest_one(
        self,
        source: Source,
        *,
        title: Optional[str],
        tags: Iterable[str],
        authors: Iterable[str],
        labels: Optional[Mapping[str, str]],
        name: Optional[str],
        skip_existing: bool,
    ) -> IngestOutcome:
        all_tags = clean_names([*self.default_tags, *tags])

        if source.is_url and skip_existing:
            existing = self.store.find_by_url(source.url)
            if existing:
                Logger.info(
                    f"Skipping {source.url}: already stored as paper {existing[0].id}",
                    file=LogFiles.INGEST,
                )
                return IngestOutcome(source=source.raw, paper=existing[0], skipped=True)

        if source.is_url:
            stored_path, created_file = self._download(source.url, name)
            url = source.url
        else:
            stored_path, created_file = self._place_local(source.path)
            url = None

        try:
            paper = self.store.create_paper(
                url=url,
                filename=self.repository.relative_filename(stored_path),
                title=title,
                tags=all_tags,
                authors=authors,
                labels=labels,
            )
        except PapershelfError:
            if created_file:
                stored_path.unlink(missing_ok=True)
            raise

        Logger.info(
            f"Added paper {paper.id} from {source.raw} as {paper.filename}", file=LogFiles.INGEST
        )
        return IngestOutcome(source=source.raw, paper=paper)

    def _download(self, url: str, name: Optional[str]) -> tuple[Path, bool]:
        destination = self.repository.root / filename_for_url(url, name)
        result = self.fetcher.fetch(url, destination)
        if result.content_type and "html" in result.content_type.lower():
            Logger.warning(
                f"{url} returned {result.content_type}, not a document", file=LogFiles.INGEST
            )
        return result.path, True

    def _place_local(self, path: Optional[Path]) -> tuple[Path, bool]:
        """Reference a file already under the root; copy anything else in."""
        if path is None or not path.is_file():
            raise InvalidInput(f"no such file: {path}")

        if self.repository.contains(path):
            return path.resolve(), False

        destination = self.repository.root / path.name
        try:
            handle = open(destination, "xb")
        except FileExistsError as exc:
            raise Conflict(f"file already exists: {destination}") from exc
        except OSError as exc:
            raise InvalidInput(f"cannot create {destination}: {exc}") from exc

        try:
            with handle, open(path, "rb") as src:
                shutil.copyfileobj(src, handle)
        except OSError as exc:
            destination.unlink(missing_ok=True)
            raise InvalidInput(f"cannot copy {path}: {exc}") from exc

        Logger.info(f"Copied {path} into the repository as {destination.name}", file=LogFiles.INGEST)
        return destination, True
