"""create papers

Revision ID: 0001_create_papers
Revises:
Create Date: 2022-12-23 13:41:47

Papers table: one row per managed document, soft-deleted via ``deleted``.
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import context, op


revision = "0001_create_papers"
down_revision = None
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
    if _has_table("papers"):
        return
    op.create_table(
        "papers",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("url", sa.Text(), nullable=True),
        sa.Column("filename", sa.Text(), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("deleted", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.Column(
            "modified_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.current_timestamp(),
        ),
        sa.CheckConstraint(
            "url IS NOT NULL OR filename IS NOT NULL", name="ck_papers_url_or_filename"
        ),
    )
    op.create_index("ix_papers_url", "papers", ["url"])


def downgrade() -> None:
    op.drop_index("ix_papers_url", table_name="papers")
    op.drop_table("papers")
