"""create authors

Revision ID: 0004_create_authors
Revises: 0003_create_labels
Create Date: 2022-12-25 08:33:39
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import context, op


revision = "0004_create_authors"
down_revision = "0003_create_labels"
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
    if _has_table("authors"):
        return
    op.create_table(
        "authors",
        sa.Column("paper_id", sa.Integer(), sa.ForeignKey("papers.id"), nullable=False),
        sa.Column("author", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("paper_id", "author"),
    )


def downgrade() -> None:
    op.drop_table("authors")
