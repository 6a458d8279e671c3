# src/papershelf/domain/paper.py
"""
Paper aggregate and its value types.

Contains:
- PaperState: lifecycle of a paper (active or soft-deleted)
- Label: a ``key=value`` pair attached to a paper
- Paper: the aggregate root with its tags, labels, authors and note
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from papershelf.domain.errors import InvalidInput


class PaperState(str, Enum):
    """Lifecycle of a paper row."""

    ACTIVE = "active"
    DELETED = "deleted"

    @classmethod
    def from_flag(cls, deleted: bool) -> "PaperState":
        return cls.DELETED if deleted else cls.ACTIVE


@dataclass(frozen=True, order=True)
class Label:
    """A single ``key=value`` pair. One value per key per paper."""

    key: str
    value: str

    @classmethod
    def parse(cls, text: str) -> "Label":
        """Parse ``key=value``. The value may itself contain ``=``."""
        raw = str(text or "")
        key, sep, value = raw.partition("=")
        key = key.strip()
        if not sep or not key:
            raise InvalidInput(f"label must take the form key=value, got {raw!r}")
        return cls(key=key, value=value.strip())

    def __str__(self) -> str:
        return f"{self.key}={self.value}"


def clean_names(values: Any) -> List[str]:
    """Strip, drop empties and deduplicate while keeping first-seen order."""
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    seen: List[str] = []
    for value in values:
        text = str(value or "").strip()
        if text and text not in seen:
            seen.append(text)
    return seen


@dataclass
class Paper:
    """
    One managed document.

    At least one of ``url`` and ``filename`` is always set. Tags and authors
    are sets (no ordering is stored); labels map key to value.
    """

    id: int
    url: Optional[str] = None
    filename: Optional[str] = None
    title: Optional[str] = None
    state: PaperState = PaperState.ACTIVE
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None
    tags: FrozenSet[str] = field(default_factory=frozenset)
    labels: Dict[str, str] = field(default_factory=dict)
    authors: FrozenSet[str] = field(default_factory=frozenset)
    notes: str = ""

    @property
    def deleted(self) -> bool:
        return self.state is PaperState.DELETED

    @property
    def has_notes(self) -> bool:
        return bool(self.notes.strip())

    def label_list(self) -> List[Label]:
        return sorted(Label(key=k, value=v) for k, v in self.labels.items())

    def display_title(self) -> str:
        return self.title or self.filename or self.url or f"paper {self.id}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "id": self.id,
            "url": self.url,
            "filename": self.filename,
            "title": self.title,
            "state": self.state.value,
            "deleted": self.deleted,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "modified_at": self.modified_at.isoformat() if self.modified_at else None,
            "tags": sorted(self.tags),
            "labels": dict(sorted(self.labels.items())),
            "authors": sorted(self.authors),
            "notes": self.has_notes,
        }
