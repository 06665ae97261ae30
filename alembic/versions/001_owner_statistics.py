"""Owner statistics table.

Revision ID: 001_owner_statistics
Revises: None
Create Date: 2024-01-01 00:00:00.000000
"""
from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_owner_statistics"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "owner_statistics",
        sa.Column("owner_id", sa.String(256), primary_key=True),
        sa.Column("total", sa.BigInteger, server_default="0", nullable=False),
        sa.Column("success", sa.BigInteger, server_default="0", nullable=False),
        sa.Column("failed", sa.BigInteger, server_default="0", nullable=False),
        sa.Column("download_success_count", sa.BigInteger, server_default="0", nullable=False),
        sa.Column("download_success_bytes", sa.BigInteger, server_default="0", nullable=False),
        sa.Column("download_failed_count", sa.BigInteger, server_default="0", nullable=False),
        sa.Column("download_failed_bytes", sa.BigInteger, server_default="0", nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("exited_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), onupdate=sa.func.now()),
    )
    op.create_index("ix_owner_statistics_updated_at", "owner_statistics", ["updated_at"])


def downgrade() -> None:
    op.drop_index("ix_owner_statistics_updated_at", table_name="owner_statistics")
    op.drop_table("owner_statistics")
