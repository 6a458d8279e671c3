"""create notes

Revision ID: 0005_create_notes
Revises: 0004_create_authors
Create Date: 2023-01-02 10:12:05
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import context, op


revision = "0005_create_notes"
down_revision = "0004_create_authors"
branch_labels = None
depends_on = None


def _is_offline() -> bool:
    try:
        return bool(context.is_offline_mode())
    except Exception:
        return False


def _has_table(name: str) -> bool:
    if _is_offline():
        return False
    return bool(sa.inspect(op.get_bind()).has_table(name))


def upgrade() -> None:
    if _has_table("notes"):
        return
    op.create_table(
        "notes",
        sa.Column(
            "paper_id",
            sa.Integer(),
            sa.ForeignKey("papers.id"),
            primary_key=True,
            nullable=False,
        ),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
    )


def downgrade() -> None:
    op.drop_table("notes")
