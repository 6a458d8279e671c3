from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Integer,
    Text,
    false,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    pass


class PaperModel(Base):
    """
    One managed document.

    Rows are never removed by a soft delete; ``deleted`` flips instead.
    A paper always references a remote source, a local file, or both.
    """

    __tablename__ = "papers"
    __table_args__ = (
        CheckConstraint(
            "url IS NOT NULL OR filename IS NOT NULL", name="ck_papers_url_or_filename"
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True, index=True)
    filename: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    deleted: Mapped[bool] = mapped_column(Boolean, default=False, server_default=false())

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    modified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))

    tags: Mapped[List["TagModel"]] = relationship(
        back_populates="paper", cascade="all, delete-orphan", order_by="TagModel.tag"
    )
    labels: Mapped[List["LabelModel"]] = relationship(
        back_populates="paper", cascade="all, delete-orphan", order_by="LabelModel.label_key"
    )
    authors: Mapped[List["AuthorModel"]] = relationship(
        back_populates="paper", cascade="all, delete-orphan", order_by="AuthorModel.author"
    )
    note: Mapped[Optional["NoteModel"]] = relationship(
        back_populates="paper", cascade="all, delete-orphan", uselist=False
    )


class TagModel(Base):
    __tablename__ = "tags"

    paper_id: Mapped[int] = mapped_column(Integer, ForeignKey("papers.id"), primary_key=True)
    tag: Mapped[str] = mapped_column(Text, primary_key=True)

    paper: Mapped[PaperModel] = relationship(back_populates="tags")


class LabelModel(Base):
    """Key/value pair; at most one value per key per paper."""

    __tablename__ = "labels"

    paper_id: Mapped[int] = mapped_column(Integer, ForeignKey("papers.id"), primary_key=True)
    label_key: Mapped[str] = mapped_column(Text, primary_key=True)
    label_value: Mapped[str] = mapped_column(Text)

    paper: Mapped[PaperModel] = relationship(back_populates="labels")


class AuthorModel(Base):
    __tablename__ = "authors"

    paper_id: Mapped[int] = mapped_column(Integer, ForeignKey("papers.id"), primary_key=True)
    author: Mapped[str] = mapped_column(Text, primary_key=True)

    paper: Mapped[PaperModel] = relationship(back_populates="authors")


class NoteModel(Base):
    """Free-form notes, one document per paper."""

    __tablename__ = "notes"

    paper_id: Mapped[int] = mapped_column(Integer, ForeignKey("papers.id"), primary_key=True)
    content: Mapped[str] = mapped_column(Text, default="", server_default="")

    paper: Mapped[PaperModel] = relationship(back_populates="note")
