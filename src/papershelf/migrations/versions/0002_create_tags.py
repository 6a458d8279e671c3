"""create tags

Revision ID: 0002_create_tags
Revises: 0001_create_papers
Create Date: 2022-12-23 14:32:17
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import context, op


revision = "0002_create_tags"
down_revision = "0001_create_papers"
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
    if _has_table("tags"):
        return
    op.create_table(
        "tags",
        sa.Column("paper_id", sa.Integer(), sa.ForeignKey("papers.id"), nullable=False),
        sa.Column("tag", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("paper_id", "tag"),
    )


def downgrade() -> None:
    op.drop_table("tags")
