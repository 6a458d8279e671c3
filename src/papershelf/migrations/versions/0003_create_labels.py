"""create labels

Revision ID: 0003_create_labels
Revises: 0002_create_tags
Create Date: 2022-12-23 16:59:49

Single value per key: the key is part of the primary key, so a second
value for the same key replaces the first instead of adding a row.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import context, op


revision = "0003_create_labels"
down_revision = "0002_create_tags"
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
    if _has_table("labels"):
        return
    op.create_table(
        "labels",
        sa.Column("paper_id", sa.Integer(), sa.ForeignKey("papers.id"), nullable=False),
        sa.Column("label_key", sa.Text(), nullable=False),
        sa.Column("label_value", sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint("paper_id", "label_key"),
    )


def downgrade() -> None:
    op.drop_table("labels")
