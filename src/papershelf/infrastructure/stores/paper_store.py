from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import and_, delete, exists, func, or_, select
from sqlalchemy.orm import Session, selectinload

from papershelf.domain.errors import InvalidInput, NotFound
from papershelf.domain.paper import Paper, PaperState, clean_names
from papershelf.infrastructure.stores.models import (
    AuthorModel,
    LabelModel,
    NoteModel,
    PaperModel,
    TagModel,
)
from papershelf.infrastructure.stores.sqlalchemy_db import SessionProvider, get_db_url
from papershelf.utils.logging_config import LogFiles, Logger


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET: Any = _Unset()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _clean_optional(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _contains(column, text: str):
    # instr() is a literal, case-sensitive match: no LIKE wildcards, no case folding
    return func.instr(column, text) > 0


class PaperStore:
    """
    Repository access layer for papers and their tags, labels, authors and notes.

    Every public method runs in one session and commits at most once, so the
    paper row and its children are written atomically. Reads state explicitly
    whether soft-deleted papers are included.
    """

    def __init__(self, db_url: Optional[str] = None):
        self._provider = SessionProvider(db_url or get_db_url())
        self.db_url = self._provider.db_url

    def close(self) -> None:
        self._provider.dispose()

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_paper(
        self,
        url: Optional[str] = None,
        filename: Optional[str] = None,
        title: Optional[str] = None,
        *,
        tags: Iterable[str] = (),
        authors: Iterable[str] = (),
        labels: Optional[Mapping[str, str]] = None,
    ) -> Paper:
        url = _clean_optional(url)
        filename = _clean_optional(filename)
        if url is None and filename is None:
            raise InvalidInput("a paper needs a url or a filename")

        now = _utcnow()
        with self._provider.session() as session:
            row = PaperModel(
                url=url,
                filename=filename,
                title=_clean_optional(title),
                deleted=False,
                created_at=now,
                modified_at=now,
            )
            for tag in clean_names(tags):
                row.tags.append(TagModel(tag=tag))
            for author in clean_names(authors):
                row.authors.append(AuthorModel(author=author))
            for key, value in self._clean_labels(labels).items():
                row.labels.append(LabelModel(label_key=key, label_value=value))

            session.add(row)
            session.commit()

            Logger.info(
                f"Created paper {row.id} url={url!r} filename={filename!r}", file=LogFiles.STORE
            )
            return self._load(session, row.id, include_deleted=True)

    def attach_tags(self, paper_id: int, tags: Iterable[str]) -> Paper:
        wanted = clean_names(tags)
        with self._provider.session() as session:
            row = self._require_row(session, paper_id, include_deleted=True)
            existing = {t.tag for t in row.tags}
            added = [tag for tag in wanted if tag not in existing]
            for tag in added:
                row.tags.append(TagModel(tag=tag))
            if added:
                row.modified_at = _utcnow()
                session.commit()
                Logger.info(f"Tagged paper {paper_id} with {added}", file=LogFiles.STORE)
            return self._load(session, paper_id, include_deleted=True)

    def detach_tags(self, paper_id: int, tags: Iterable[str]) -> Paper:
        unwanted = set(clean_names(tags))
        with self._provider.session() as session:
            row = self._require_row(session, paper_id, include_deleted=True)
            removed = [t for t in row.tags if t.tag in unwanted]
            for tag_row in removed:
                row.tags.remove(tag_row)
            if removed:
                row.modified_at = _utcnow()
                session.commit()
                Logger.info(
                    f"Removed tags {[t.tag for t in removed]} from paper {paper_id}",
                    file=LogFiles.STORE,
                )
            return self._load(session, paper_id, include_deleted=True)

    def attach_authors(self, paper_id: int, authors: Iterable[str]) -> Paper:
        wanted = clean_names(authors)
        with self._provider.session() as session:
            row = self._require_row(session, paper_id, include_deleted=True)
            existing = {a.author for a in row.authors}
            added = [name for name in wanted if name not in existing]
            for name in added:
                row.authors.append(AuthorModel(author=name))
            if added:
                row.modified_at = _utcnow()
                session.commit()
                Logger.info(f"Added authors {added} to paper {paper_id}", file=LogFiles.STORE)
            return self._load(session, paper_id, include_deleted=True)

    def detach_authors(self, paper_id: int, authors: Iterable[str]) -> Paper:
        unwanted = set(clean_names(authors))
        with self._provider.session() as session:
            row = self._require_row(session, paper_id, include_deleted=True)
            removed = [a for a in row.authors if a.author in unwanted]
            for author_row in removed:
                row.authors.remove(author_row)
            if removed:
                row.modified_at = _utcnow()
                session.commit()
                Logger.info(
                    f"Removed authors {[a.author for a in removed]} from paper {paper_id}",
                    file=LogFiles.STORE,
                )
            return self._load(session, paper_id, include_deleted=True)

    def set_label(self, paper_id: int, key: str, value: str) -> Paper:
        """Insert or overwrite the value for ``key``; one value per key per paper."""
        return self.set_labels(paper_id, {key: value})

    def set_labels(
        self, paper_id: int, labels: Mapping[str, str], *, remove: Iterable[str] = ()
    ) -> Paper:
        """
        Upsert every pair in ``labels`` and drop the ``remove`` keys, all in
        one transaction. A key both set and removed ends up removed.
        """
        wanted = self._clean_labels(labels)
        dropped = set(clean_names(remove))
        for key in dropped:
            wanted.pop(key, None)

        with self._provider.session() as session:
            row = self._require_row(session, paper_id, include_deleted=True)
            current = {lbl.label_key: lbl for lbl in row.labels}
            for key, value in wanted.items():
                if key in current:
                    current[key].label_value = value
                else:
                    row.labels.append(LabelModel(label_key=key, label_value=value))
            removed = [current[key] for key in sorted(dropped) if key in current]
            for label in removed:
                row.labels.remove(label)

            if wanted or removed:
                row.modified_at = _utcnow()
                session.commit()
                Logger.info(
                    f"Set labels {wanted} and removed {[lbl.label_key for lbl in removed]} "
                    f"on paper {paper_id}",
                    file=LogFiles.STORE,
                )
            return self._load(session, paper_id, include_deleted=True)

    def remove_label(self, paper_id: int, key: str) -> Paper:
        key = str(key or "").strip()
        with self._provider.session() as session:
            row = self._require_row(session, paper_id, include_deleted=True)
            label = next((lbl for lbl in row.labels if lbl.label_key == key), None)
            if label is not None:
                row.labels.remove(label)
                row.modified_at = _utcnow()
                session.commit()
                Logger.info(f"Removed label {key} from paper {paper_id}", file=LogFiles.STORE)
            return self._load(session, paper_id, include_deleted=True)

    def update_paper(
        self,
        paper_id: int,
        *,
        title: Any = UNSET,
        url: Any = UNSET,
        filename: Any = UNSET,
    ) -> Paper:
        """
        Partial update: only the fields passed change. ``None`` (or an empty
        string) clears a field, but url and filename cannot both be cleared.
        """
        with self._provider.session() as session:
            row = self._require_row(session, paper_id, include_deleted=False)

            new_url = row.url if url is UNSET else _clean_optional(url)
            new_filename = row.filename if filename is UNSET else _clean_optional(filename)
            if new_url is None and new_filename is None:
                raise InvalidInput("a paper needs a url or a filename")

            changed: Dict[str, Any] = {}
            if title is not UNSET:
                changed["title"] = _clean_optional(title)
            if url is not UNSET:
                changed["url"] = new_url
            if filename is not UNSET:
                changed["filename"] = new_filename

            for field_name, value in changed.items():
                setattr(row, field_name, value)
            row.modified_at = _utcnow()
            session.commit()

            Logger.info(f"Updated paper {paper_id}: {changed}", file=LogFiles.STORE)
            return self._load(session, paper_id, include_deleted=False)

    def soft_delete(self, paper_id: int) -> Paper:
        with self._provider.session() as session:
            row = self._require_row(session, paper_id, include_deleted=True)
            if not row.deleted:
                row.deleted = True
                row.modified_at = _utcnow()
                session.commit()
                Logger.info(f"Soft-deleted paper {paper_id}", file=LogFiles.STORE)
            return self._load(session, paper_id, include_deleted=True)

    def restore(self, paper_id: int) -> Paper:
        with self._provider.session() as session:
            row = self._require_row(session, paper_id, include_deleted=True)
            if row.deleted:
                row.deleted = False
                row.modified_at = _utcnow()
                session.commit()
                Logger.info(f"Restored paper {paper_id}", file=LogFiles.STORE)
            return self._load(session, paper_id, include_deleted=True)

    def hard_delete(self, paper_id: int) -> None:
        """Physically remove a paper; children go first to satisfy the foreign keys."""
        with self._provider.session() as session:
            self._require_row(session, paper_id, include_deleted=True)
            for child in (NoteModel, LabelModel, AuthorModel, TagModel):
                session.execute(delete(child).where(child.paper_id == int(paper_id)))
            session.execute(delete(PaperModel).where(PaperModel.id == int(paper_id)))
            session.commit()
            Logger.info(f"Hard-deleted paper {paper_id}", file=LogFiles.STORE)

    def set_note(self, paper_id: int, content: str) -> Paper:
        with self._provider.session() as session:
            row = self._require_row(session, paper_id, include_deleted=False)
            if row.note is None:
                row.note = NoteModel(content=content or "")
            else:
                row.note.content = content or ""
            row.modified_at = _utcnow()
            session.commit()
            Logger.info(f"Saved notes for paper {paper_id}", file=LogFiles.STORE)
            return self._load(session, paper_id, include_deleted=False)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, paper_id: int, *, include_deleted: bool = False) -> Paper:
        with self._provider.session() as session:
            return self._load(session, paper_id, include_deleted=include_deleted)

    def get_note(self, paper_id: int) -> str:
        return self.get(paper_id).notes

    def list_papers(
        self,
        tags: Optional[Iterable[str]] = None,
        *,
        authors: Optional[Iterable[str]] = None,
        labels: Optional[Mapping[str, str]] = None,
        title: Optional[str] = None,
        file: Optional[str] = None,
        include_deleted: bool = False,
    ) -> List[Paper]:
        """
        Papers carrying ALL of ``tags``, ALL of ``authors`` and ALL of the
        ``labels`` pairs, ascending id. ``title`` and ``file`` are
        case-insensitive substring filters. No filters means every paper.
        """
        stmt = self._base_query(include_deleted=include_deleted)
        for tag in clean_names(tags):
            stmt = stmt.where(
                exists().where(and_(TagModel.paper_id == PaperModel.id, TagModel.tag == tag))
            )
        for author in clean_names(authors):
            stmt = stmt.where(
                exists().where(
                    and_(AuthorModel.paper_id == PaperModel.id, AuthorModel.author == author)
                )
            )
        for key, value in self._clean_labels(labels).items():
            stmt = stmt.where(
                exists().where(
                    and_(
                        LabelModel.paper_id == PaperModel.id,
                        LabelModel.label_key == key,
                        LabelModel.label_value == value,
                    )
                )
            )
        if title:
            stmt = stmt.where(_contains(func.lower(PaperModel.title), title.lower()))
        if file:
            stmt = stmt.where(_contains(func.lower(PaperModel.filename), file.lower()))
        with self._provider.session() as session:
            rows = session.execute(stmt).scalars().all()
            return [self._row_to_paper(row) for row in rows]

    def search(self, text: str, *, include_deleted: bool = False) -> List[Paper]:
        """
        Literal, case-sensitive substring match over title, url, filename,
        note content, tags, label values and author names. Ascending id.
        """
        stmt = self._base_query(include_deleted=include_deleted).where(
            or_(
                _contains(PaperModel.title, text),
                _contains(PaperModel.url, text),
                _contains(PaperModel.filename, text),
                exists().where(
                    and_(NoteModel.paper_id == PaperModel.id, _contains(NoteModel.content, text))
                ),
                exists().where(
                    and_(TagModel.paper_id == PaperModel.id, _contains(TagModel.tag, text))
                ),
                exists().where(
                    and_(
                        LabelModel.paper_id == PaperModel.id,
                        _contains(LabelModel.label_value, text),
                    )
                ),
                exists().where(
                    and_(AuthorModel.paper_id == PaperModel.id, _contains(AuthorModel.author, text))
                ),
            )
        )
        with self._provider.session() as session:
            rows = session.execute(stmt).scalars().all()
            return [self._row_to_paper(row) for row in rows]

    def find_by_url(self, url: str, *, include_deleted: bool = False) -> List[Paper]:
        stmt = self._base_query(include_deleted=include_deleted).where(
            PaperModel.url == str(url or "").strip()
        )
        with self._provider.session() as session:
            rows = session.execute(stmt).scalars().all()
            return [self._row_to_paper(row) for row in rows]

    def count(self, *, include_deleted: bool = False) -> int:
        stmt = select(func.count(PaperModel.id))
        if not include_deleted:
            stmt = stmt.where(PaperModel.deleted.is_(False))
        with self._provider.session() as session:
            return int(session.execute(stmt).scalar_one())

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _base_query(*, include_deleted: bool):
        stmt = select(PaperModel).options(
            selectinload(PaperModel.tags),
            selectinload(PaperModel.labels),
            selectinload(PaperModel.authors),
            selectinload(PaperModel.note),
        )
        if not include_deleted:
            stmt = stmt.where(PaperModel.deleted.is_(False))
        return stmt.order_by(PaperModel.id.asc())

    @staticmethod
    def _clean_labels(labels: Optional[Mapping[str, str]]) -> Dict[str, str]:
        cleaned: Dict[str, str] = {}
        for key, value in (labels or {}).items():
            key_text = str(key or "").strip()
            if not key_text:
                raise InvalidInput("label key must not be empty")
            cleaned[key_text] = "" if value is None else str(value).strip()
        return cleaned

    @staticmethod
    def _require_row(session: Session, paper_id: int, *, include_deleted: bool) -> PaperModel:
        row = session.get(PaperModel, int(paper_id))
        if row is None:
            raise NotFound(f"paper {paper_id} not found")
        if row.deleted and not include_deleted:
            raise NotFound(f"paper {paper_id} is deleted")
        return row

    def _load(self, session: Session, paper_id: int, *, include_deleted: bool) -> Paper:
        stmt = self._base_query(include_deleted=True).where(PaperModel.id == int(paper_id))
        row = session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise NotFound(f"paper {paper_id} not found")
        if row.deleted and not include_deleted:
            raise NotFound(f"paper {paper_id} is deleted")
        return self._row_to_paper(row)

    @staticmethod
    def _row_to_paper(row: PaperModel) -> Paper:
        return Paper(
            id=int(row.id),
            url=row.url,
            filename=row.filename,
            title=row.title,
            state=PaperState.from_flag(bool(row.deleted)),
            created_at=_as_utc(row.created_at),
            modified_at=_as_utc(row.modified_at),
            tags=frozenset(t.tag for t in row.tags),
            labels={lbl.label_key: lbl.label_value for lbl in row.labels},
            authors=frozenset(a.author for a in row.authors),
            notes=row.note.content if row.note is not None else "",
        )
